import io
import sys

import pytest

from revcrypt.readpassword import (
    MAX_PASSWORD_LEN,
    PasswordError,
    once,
    read_line_unbuffered,
    read_pass_file,
    read_pass_file_concatenate,
    read_password_extpass,
    read_password_stdin,
    twice,
)

FILES = {
    "simple.txt": b"password\n",
    "trailing_garbage.txt": b"password\ngarbage\nmore garbage\n",
    "missing_newline.txt": b"password",
    "file with spaces.txt": b"password\n",
    "empty.txt": b"",
    "newline.txt": b"\n",
    "empty_first_line.txt": b"\ngarbage",
}


@pytest.fixture
def files(tmp_path):
    for name, content in FILES.items():
        (tmp_path / name).write_bytes(content)
    return tmp_path


@pytest.mark.parametrize(
    "name",
    ["simple.txt", "trailing_garbage.txt", "missing_newline.txt", "file with spaces.txt"],
)
def test_passfile(files, name):
    path = str(files / name)
    assert read_pass_file(path) == b"password"
    assert read_pass_file_concatenate([path]) == b"password"


@pytest.mark.parametrize("name", ["empty.txt", "newline.txt", "empty_first_line.txt"])
def test_passfile_invalid(files, name):
    with pytest.raises(PasswordError):
        read_pass_file(str(files / name))


def test_passfile_missing(tmp_path):
    with pytest.raises(PasswordError):
        read_pass_file(str(tmp_path / "does-not-exist"))


def test_passfile_length_limit(tmp_path):
    ok = tmp_path / "ok"
    ok.write_bytes(b"x" * MAX_PASSWORD_LEN + b"\n")
    assert read_pass_file(str(ok)) == b"x" * MAX_PASSWORD_LEN
    too_long = tmp_path / "long"
    too_long.write_bytes(b"x" * (MAX_PASSWORD_LEN + 1))
    with pytest.raises(PasswordError):
        read_pass_file(str(too_long))


def test_passfile_concatenate(files):
    paths = [str(files / "file with spaces.txt"), str(files / "trailing_garbage.txt")]
    assert read_pass_file_concatenate(paths) == b"passwordpassword"


def test_once_prefers_passfile(files):
    path = str(files / "simple.txt")
    assert once(["echo secret"], [path], "") == b"password"


def test_extpass():
    assert read_password_extpass(["echo secret"]) == b"secret"


def test_once_extpass():
    assert once(["echo token"], None, "") == b"token"


def test_once_extpass_two_args():
    assert once(["echo", "foo"], None, "") == b"foo"


def test_once_extpass_three_args():
    assert once(["echo", "foo", "bar", "baz"], None, "") == b"foo bar baz"


def test_once_extpass_spaces(files):
    assert once(["cat", str(files / "file with spaces.txt")], None, "") == b"password"


def test_twice_extpass():
    assert twice(["echo placeholder"], None) == b"placeholder"


def test_extpass_empty():
    with pytest.raises(PasswordError):
        read_password_extpass(["echo"])


def test_extpass_failing_program():
    with pytest.raises(PasswordError):
        read_password_extpass(["false"])


def test_extpass_missing_program():
    with pytest.raises(PasswordError):
        read_password_extpass(["/nonexistent/program-xyz"])


def test_stdin():
    assert read_password_stdin("foo", io.BytesIO(b"secret\n")) == b"secret"


def test_stdin_eof():
    assert read_password_stdin("foo", io.BytesIO(b"token")) == b"token"


def test_stdin_empty():
    with pytest.raises(PasswordError):
        read_password_stdin("foo", io.BytesIO(b"\n"))


def test_once_reads_non_terminal_stdin(monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b"secret\nrest\n")))
    assert once(None, None, "") == b"secret"


def test_read_line_stops_at_newline():
    stream = io.BytesIO(b"first\nsecond\n")
    assert read_line_unbuffered(stream) == b"first"
    assert stream.read() == b"second\n"


def test_read_line_length_limit():
    with pytest.raises(PasswordError):
        read_line_unbuffered(io.BytesIO(b"x" * (MAX_PASSWORD_LEN + 10)))