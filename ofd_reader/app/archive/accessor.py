"""
Zip container access for OFD packages.

The archive is the sole I/O boundary of the reader. Every part lookup goes
through Archive.resolve, which tolerates the inconsistent casing and rooting
that different OFD producers use in their cross-references.

Lookup rules:
    1. A leading "/" on the request is dropped (archive-root reference).
    2. An entry whose upper-cased name equals the upper-cased request wins.
    3. Otherwise the first entry whose upper-cased name contains the
       upper-cased request wins.

Error handling policy:
    The zip layer signals a malformed container with BadZipFile or
    LargeZipFile, and a damaged entry with zlib.error (corrupt deflate
    stream), EOFError (truncation), RuntimeError (encryption) or
    NotImplementedError (unsupported compression). All of them are
    translated to ArchiveError. Missing parts raise PartNotFound, which
    callers treat as "part absent".
"""

from __future__ import annotations

import logging
import posixpath
import zipfile
import zlib
from io import BytesIO
from typing import Dict, List, Optional

from ofd_reader.app.config import ReaderConfig
from ofd_reader.app.errors import ArchiveError, PartNotFound

logger = logging.getLogger(__name__)


# Legacy producers write GBK-family XML without an encoding declaration.
_TEXT_ENCODINGS = ("utf-8-sig", "gb18030")

# What zipfile raises for corrupt, truncated, encrypted or exotic entries.
_CONTAINER_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    zlib.error,
    EOFError,
    RuntimeError,
    NotImplementedError,
)


def normalize_path(path: str) -> str:
    """Strip archive-root and current-directory prefixes from a part path."""
    normalized = path.strip().replace("\\", "/").lstrip("/")
    while normalized.startswith("./"):
        normalized = normalized[2:].lstrip("/")
    return normalized


def resolve_reference(base_dir: str, reference: str) -> str:
    """
    Re-root a cross-reference found inside a part.

    A reference starting with "/" is relative to the archive root; anything
    else is relative to base_dir (the directory of the referring part, or
    the Doc_N folder for document-level references).
    """
    ref = reference.strip().replace("\\", "/")
    if ref.startswith("/"):
        joined = ref
    else:
        joined = posixpath.join(base_dir, ref) if base_dir else ref

    normalized = posixpath.normpath(joined)
    if normalized == ".":
        return ""
    return normalize_path(normalized)


def parent_dir(path: str) -> str:
    """Directory component of a part path ("" for root-level parts)."""
    return posixpath.dirname(normalize_path(path))


class Archive:
    """
    Read-only view over a decompressed OFD zip container.

    Entries are read eagerly into memory at open time so the Archive does
    not hold a file handle and can be shared with nested Documents.
    """

    def __init__(self, entries: Dict[str, bytes]) -> None:
        self._entries = entries
        self._upper_index: List[tuple[str, str]] = [
            (name.upper(), name) for name in entries
        ]

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def open(
        cls,
        data: bytes,
        config: Optional[ReaderConfig] = None,
    ) -> "Archive":
        """
        Open an in-memory zip buffer.

        Raises ArchiveError for non-zip, corrupt, or oversized input.
        """
        config = config or ReaderConfig()

        if not data:
            raise ArchiveError("Empty input buffer is not an OFD archive")

        if len(data) > config.max_archive_bytes:
            raise ArchiveError(
                f"Archive exceeds {config.MAX_ARCHIVE_SIZE_MB} MB limit"
            )

        entries: Dict[str, bytes] = {}
        try:
            with zipfile.ZipFile(BytesIO(data)) as zf:
                members = [info for info in zf.infolist() if not info.is_dir()]

                # Declared sizes bound decompression: zipfile never inflates
                # an entry past its file_size.
                expanded = sum(info.file_size for info in members)
                if expanded > config.max_uncompressed_bytes:
                    raise ArchiveError(
                        f"Archive expands to {expanded} bytes, over the "
                        f"{config.MAX_UNCOMPRESSED_SIZE_MB} MB limit"
                    )

                for info in members:
                    entries[info.filename] = zf.read(info)
        except _CONTAINER_ERRORS as exc:
            logger.warning("Failed to open OFD container: %s", exc)
            raise ArchiveError(f"Not a valid zip container: {exc}") from exc

        logger.debug("Opened OFD container with %d entries", len(entries))
        return cls(entries)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def names(self) -> List[str]:
        return list(self._entries)

    def resolve(self, path: str) -> Optional[str]:
        """Return the stored entry name matching path, or None."""
        wanted = normalize_path(path).upper()
        if not wanted:
            return None

        for upper_name, name in self._upper_index:
            if upper_name == wanted:
                return name

        for upper_name, name in self._upper_index:
            if wanted in upper_name:
                logger.debug("Resolved %s by containment to %s", path, name)
                return name

        return None

    def contains(self, path: str) -> bool:
        return self.resolve(path) is not None

    def read_binary(self, path: str) -> bytes:
        name = self.resolve(path)
        if name is None:
            raise PartNotFound(path)
        return self._entries[name]

    def read_text(self, path: str) -> str:
        raw = self.read_binary(path)
        for encoding in _TEXT_ENCODINGS:
            try:
                return raw.decode(encoding)
            except UnicodeDecodeError:
                continue
        return raw.decode("utf-8", errors="replace")
