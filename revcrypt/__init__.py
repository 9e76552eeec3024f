"""Filename encryption, path IVs, inode mapping and related tools for an encrypted overlay filesystem."""

__version__ = "0.1.0"