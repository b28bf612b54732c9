"""CRC-32 for archive headers and the uppercase MD5 used by ``.md5`` sidecars."""

from __future__ import annotations

import hashlib
import zlib


def crc32(data: bytes) -> int:
    """CRC-32 (reflected polynomial 0xEDB88320) as an unsigned int."""
    return zlib.crc32(data) & 0xFFFFFFFF


def md5_hex(data: bytes) -> str:
    """32-character uppercase hex MD5 digest.

    Bambu Studio and the printer firmware compare the sidecar text
    verbatim, and they write it in uppercase.
    """
    return hashlib.md5(data).hexdigest().upper()
