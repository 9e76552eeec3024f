# revcrypt

Building blocks for presenting a plaintext directory tree as an encrypted
view of itself, and for working with such encrypted trees:

- `revcrypt.names` – EME filename encryption with PKCS#7 padding, base64
  encoding, long-name hashing (`gocryptfs.longname.<sha256>`), name
  validation, `-badname` patterns and xattr name encryption.
- `revcrypt.diskfiles` – reading and writing `gocryptfs.diriv` and
  `gocryptfs.longname.*.name` files relative to an open directory descriptor.
- `revcrypt.pathiv` – deterministic IVs and file IDs derived from a path.
- `revcrypt.inomap` – translation of `(device, tag, inode)` tuples into unique
  64-bit inode numbers, with a spill space for overflow.
- `revcrypt.openfiletable` – a reference-counted table of open files with
  per-file content locks and a global write-operation counter.
- `revcrypt.siv_aead` – AES-SIV as an AEAD with 16-byte nonces.
- `revcrypt.readpassword` – reading a password from files, from an external
  program, from standard input or from the terminal.
- `revcrypt.reverse` – exclusion patterns and plaintext/ciphertext path
  translation for the reverse (encrypted-view) mode.
- `revcrypt.speed` – throughput benchmarks of the AEAD ciphers.

The package needs Python 3.10 or newer and depends on `cryptography`.

## Encrypting file names

```python
from revcrypt.names import Eme, NameTransform, name_type, NameType

eme = Eme(bytes(32))
names = NameTransform(
    eme,
    long_names=True,
    long_name_max=0,      # 0 selects the default of 255
    raw64=True,
    badname=[],
    deterministic_names=False,
)

iv = bytes(16)
cipher_name = names.encrypt_name("report.txt", iv)
assert names.decrypt_name(cipher_name, iv) == "report.txt"

stored = names.encrypt_and_hash_name("x" * 200, iv)
assert name_type(stored) == NameType.LONG_NAME_CONTENT
```

Invalid names (empty, `.`, `..`, containing `/` or a NUL byte, or longer than
255 bytes) raise `InvalidNameError`.

## Path-derived IVs

```python
from revcrypt.pathiv import Purpose, derive, derive_file, block_iv

dir_iv = derive("some/dir", Purpose.DIRIV)
ivs = derive_file("some/dir/file")
iv_for_block_3 = block_iv(ivs.block0_iv, 3)
```

## Inode numbers

```python
from revcrypt.inomap import InoMap, QIno

inomap = InoMap(root_dev=0)
ino = inomap.translate(QIno(dev=2049, tag=0, ino=1234))
```

Inode numbers on the first device pass through unchanged; other devices get
their own 15-bit namespace in the upper bits, and inode numbers that do not
fit are mapped into the spill space starting at `1 << 63`.

## AES-SIV

```python
from revcrypt.siv_aead import new, AuthenticationError

aead = new(bytes(64))
nonce = bytes(16)
sealed = aead.seal(nonce, b"hello", b"associated")
assert aead.open(nonce, sealed, b"associated") == b"hello"
```

A tampered ciphertext raises `AuthenticationError`.

## Reading a password

```python
from revcrypt import readpassword

secret_bytes = readpassword.once(extpass=[], passfile=["passfile.txt"], prompt="")
```

`once` reads the first line of each listed file and concatenates them; with
an `extpass` command it runs that program and takes the first line of its
output; otherwise it reads from standard input or prompts on the terminal.
Failures raise `PasswordError`.

## Reverse-mode path translation

```python
from revcrypt.reverse import ExcludeOptions, ReverseNames, prepare_excluder

excluder = prepare_excluder(ExcludeOptions(exclude=["secret-dir"], exclude_wildcard=["*~"]))
reverse = ReverseNames(names, plaintext_names=False, deterministic_names=False,
                       long_names=True, excluder=excluder)
cipher_path = reverse.encrypt_path("docs/report.txt")
assert reverse.is_excluded_plain("secret-dir")
```

## Benchmarks

```python
from revcrypt import speed

speed.run(duration=0.5)
```

prints the CPU model and the throughput of each cipher in MB/s.