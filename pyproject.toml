[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "revcrypt"
version = "0.1.0"
description = "Building blocks for an encrypted overlay filesystem: filename encryption, path-derived IVs, inode mapping, AES-SIV and password input"
requires-python = ">=3.10"
dependencies = [
    "cryptography",
]
keywords = [
    "encryption",
    "filesystem",
    "aes-siv",
    "eme",
    "filename-encryption",
    "inode",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security :: Cryptography",
    "Topic :: System :: Filesystems",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["revcrypt"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
