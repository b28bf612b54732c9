"""Archive codec — read, rewrite and merge ``.gcode.3mf`` containers.

Submodules:
  models     Entry dataclasses, signatures and errors.
  checksum   CRC-32 and uppercase MD5.
  reader     Central-directory listing and raw payload access.
  writer     Local headers, central directory and EOCD serialization.
  merge      Replace one plate's G-code + MD5, pass everything else through.
  minimal    Wrap bare G-code in a three-entry archive.
"""

from .models import (
    ArchiveEntry, ZipRecord, CompressionMethod,
    ArchiveError, NotAnArchive, InvalidArchive, CorruptEntry, MissingInstruction,
    plate_gcode_path, plate_md5_path,
)
from .checksum import crc32, md5_hex
from .reader import list_entries, read_entry_payload, decompress_payload, extract_instruction
from .writer import write_archive
from .merge import merge_instruction_entry, normalize_eol
from .minimal import build_minimal_archive

__all__ = [
    # Models
    "ArchiveEntry", "ZipRecord", "CompressionMethod",
    "ArchiveError", "NotAnArchive", "InvalidArchive", "CorruptEntry", "MissingInstruction",
    "plate_gcode_path", "plate_md5_path",
    # Checksums
    "crc32", "md5_hex",
    # Reader / writer
    "list_entries", "read_entry_payload", "decompress_payload", "extract_instruction",
    "write_archive",
    # Merge
    "merge_instruction_entry", "normalize_eol",
    "build_minimal_archive",
]
