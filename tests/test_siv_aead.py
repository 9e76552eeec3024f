import pytest

from revcrypt.siv_aead import AuthenticationError, SivAead, new


@pytest.mark.parametrize("key_len", [32, 48, 64])
def test_key_lens(key_len):
    a = SivAead(bytes(key_len))
    nonce = bytes(16)
    plaintext = b"foobar"
    ciphertext = a.seal(nonce, plaintext, b"")
    assert len(ciphertext) - len(plaintext) == a.overhead()
    assert a.open(nonce, ciphertext, b"") == plaintext


def _check_vector(a, key_expected_hex):
    nonce = bytes([2]) * 16
    plaintext = bytes([1, 2, 3, 4, 5, 6, 7, 8, 9])
    a_data = bytes(24)
    result = nonce + a.seal(nonce, plaintext, a_data)
    assert result == bytes.fromhex(key_expected_hex)
    assert len(result) - len(plaintext) - len(nonce) == a.overhead()

    assert a.open(result[:16], result[16:], a_data) == plaintext
    dst = bytes([0xAA, 0xBB, 0xCC])
    assert dst + a.open(result[:16], result[16:], a_data) == dst + plaintext

    corrupt = bytearray(result)
    corrupt[17] = 0
    with pytest.raises(AuthenticationError):
        a.open(bytes(corrupt[:16]), bytes(corrupt[16:]), a_data)


def test_k32():
    a = SivAead(bytes([1]) * 32)
    _check_vector(
        a,
        "02020202020202020202020202020202ad7a4010649a84d8c1dd5f752e935eed57d45b8b10008f3834",
    )


def test_k64():
    a = new(bytes([1]) * 64)
    _check_vector(
        a,
        "02020202020202020202020202020202317b316f67c3ad336c01c9a01b4c5e552ba89e966bc4c1ade1",
    )


def test_sizes():
    a = new(bytes(64))
    assert a.nonce_size() == 16
    assert a.overhead() == 16


def test_new_rejects_short_key():
    with pytest.raises(ValueError):
        new(bytes(32))


def test_unsupported_key_len():
    with pytest.raises(ValueError):
        SivAead(bytes(20))


def test_wrong_nonce_len():
    a = new(bytes(64))
    with pytest.raises(ValueError):
        a.seal(bytes(12), b"x", b"")
    with pytest.raises(ValueError):
        a.open(bytes(12), bytes(32), b"")


def test_wrong_auth_data_fails():
    a = new(bytes(64))
    nonce = bytes(16)
    ct = a.seal(nonce, b"hello", b"ad1")
    with pytest.raises(AuthenticationError):
        a.open(nonce, ct, b"ad2")


def test_short_ciphertext_fails():
    a = new(bytes(64))
    with pytest.raises(AuthenticationError):
        a.open(bytes(16), bytes(10), b"")


def test_empty_plaintext_round_trip():
    a = new(bytes(range(64)))
    nonce = bytes(range(16))
    ct = a.seal(nonce, b"", b"")
    assert len(ct) == a.overhead()
    assert a.open(nonce, ct, b"") == b""


def test_long_plaintext_round_trip():
    a = new(bytes(range(64)))
    nonce = bytes(range(16))
    plaintext = bytes(range(256)) * 20
    ct = a.seal(nonce, plaintext, bytes(24))
    assert ct[16:] != plaintext
    assert a.open(nonce, ct, bytes(24)) == plaintext


def test_caller_key_copy_independent():
    key = bytearray(64)
    a = SivAead(bytes(key))
    nonce = bytes(16)
    ct = a.seal(nonce, b"abc", b"")
    key[0] = 0xFF
    assert a.open(nonce, ct, b"") == b"abc"


def test_wipe():
    a = new(bytes(64))
    a.wipe()
    with pytest.raises(RuntimeError):
        a.seal(bytes(16), b"x", b"")