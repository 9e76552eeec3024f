import os

import pytest

from revcrypt.diskfiles import (
    DIR_IV_FILENAME,
    DIR_IV_LEN,
    LONG_NAME_FILE_LIMIT,
    delete_long_name_at,
    encrypt_and_hash_bad_name,
    read_dir_iv_at,
    read_long_name_at,
    write_dir_iv_at,
    write_long_name_at,
)
from revcrypt.names import BADNAME_SUFFIX, Eme, NameTransform


@pytest.fixture
def dirfd(tmp_path):
    fd = os.open(tmp_path, os.O_RDONLY | os.O_DIRECTORY)
    yield fd
    os.close(fd)


@pytest.fixture
def transform():
    return NameTransform(Eme(bytes(32)), True, 0, True, None, False)


IV = bytes(range(16))


def test_write_then_read_dir_iv(tmp_path, dirfd, transform):
    write_dir_iv_at(dirfd)
    iv = read_dir_iv_at(transform, dirfd)
    assert len(iv) == DIR_IV_LEN
    assert iv != bytes(DIR_IV_LEN)
    assert (tmp_path / DIR_IV_FILENAME).read_bytes() == iv


def test_write_dir_iv_twice_fails(dirfd):
    write_dir_iv_at(dirfd)
    with pytest.raises(FileExistsError):
        write_dir_iv_at(dirfd)


def test_read_missing_dir_iv(dirfd, transform):
    with pytest.raises(FileNotFoundError):
        read_dir_iv_at(transform, dirfd)


def test_deterministic_names_give_zero_iv(dirfd):
    t = NameTransform(Eme(bytes(32)), True, 0, True, None, True)
    assert read_dir_iv_at(t, dirfd) == bytes(DIR_IV_LEN)


@pytest.mark.parametrize("content", [b"", b"short", bytes(range(17))])
def test_dir_iv_wrong_length(tmp_path, dirfd, transform, content):
    (tmp_path / DIR_IV_FILENAME).write_bytes(content)
    with pytest.raises(ValueError):
        read_dir_iv_at(transform, dirfd)


def test_dir_iv_all_zero_rejected(tmp_path, dirfd, transform):
    (tmp_path / DIR_IV_FILENAME).write_bytes(bytes(DIR_IV_LEN))
    with pytest.raises(ValueError, match="all-zero"):
        read_dir_iv_at(transform, dirfd)


def test_long_name_round_trip(dirfd, transform):
    write_dir_iv_at(dirfd)
    iv = read_dir_iv_at(transform, dirfd)
    hash_name = transform.hash_long_name("x" * 300)
    write_long_name_at(transform, dirfd, hash_name, "some/dir/file.txt")
    assert read_long_name_at(dirfd, hash_name) == transform.encrypt_name("file.txt", iv)
    assert transform.decrypt_name(read_long_name_at(dirfd, hash_name), iv) == "file.txt"


def test_long_name_write_existing_fails(dirfd, transform):
    write_dir_iv_at(dirfd)
    write_long_name_at(transform, dirfd, "gocryptfs.longname.abc", "a")
    with pytest.raises(FileExistsError):
        write_long_name_at(transform, dirfd, "gocryptfs.longname.abc", "b")


def test_long_name_write_needs_dir_iv(dirfd, transform):
    with pytest.raises(FileNotFoundError):
        write_long_name_at(transform, dirfd, "gocryptfs.longname.abc", "a")


def test_delete_long_name(dirfd, transform):
    write_dir_iv_at(dirfd)
    write_long_name_at(transform, dirfd, "gocryptfs.longname.abc", "a")
    delete_long_name_at(dirfd, "gocryptfs.longname.abc")
    with pytest.raises(FileNotFoundError):
        read_long_name_at(dirfd, "gocryptfs.longname.abc")
    with pytest.raises(FileNotFoundError):
        delete_long_name_at(dirfd, "gocryptfs.longname.abc")


def test_read_long_name_empty(tmp_path, dirfd):
    (tmp_path / "h.name").write_bytes(b"")
    with pytest.raises(ValueError, match="empty"):
        read_long_name_at(dirfd, "h")


def test_read_long_name_limits(tmp_path, dirfd):
    (tmp_path / "ok.name").write_bytes(b"A" * LONG_NAME_FILE_LIMIT)
    assert read_long_name_at(dirfd, "ok") == "A" * LONG_NAME_FILE_LIMIT
    (tmp_path / "big.name").write_bytes(b"A" * (LONG_NAME_FILE_LIMIT + 1))
    with pytest.raises(ValueError):
        read_long_name_at(dirfd, "big")


def test_bad_name_without_suffix(dirfd, transform):
    assert encrypt_and_hash_bad_name(transform, "plain", IV, dirfd) == (
        transform.encrypt_and_hash_name("plain", IV)
    )


def test_bad_name_regular_match(tmp_path, dirfd, transform):
    name = "file" + BADNAME_SUFFIX
    c_name = transform.encrypt_and_hash_name(name, IV)
    (tmp_path / c_name).write_bytes(b"")
    assert encrypt_and_hash_bad_name(transform, name, IV, dirfd) == c_name


def test_bad_name_unchanged_cipher_name(tmp_path, dirfd, transform):
    (tmp_path / "undecryptable").write_bytes(b"")
    name = "undecryptable" + BADNAME_SUFFIX
    assert encrypt_and_hash_bad_name(transform, name, IV, dirfd) == "undecryptable"


def test_bad_name_prefix_match(tmp_path, dirfd, transform):
    on_disk = transform.encrypt_name("foo", IV) + "xyz"
    (tmp_path / on_disk).write_bytes(b"")
    name = "fooxyz" + BADNAME_SUFFIX
    assert encrypt_and_hash_bad_name(transform, name, IV, dirfd) == on_disk


def test_bad_name_ambiguous(tmp_path, dirfd, transform):
    (tmp_path / "fooxyz").write_bytes(b"")
    (tmp_path / (transform.encrypt_name("foo", IV) + "xyz")).write_bytes(b"")
    with pytest.raises(FileNotFoundError):
        encrypt_and_hash_bad_name(transform, "fooxyz" + BADNAME_SUFFIX, IV, dirfd)


def test_bad_name_nothing_found(dirfd, transform):
    with pytest.raises(FileNotFoundError):
        encrypt_and_hash_bad_name(transform, "nothing" + BADNAME_SUFFIX, IV, dirfd)