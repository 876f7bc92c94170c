"""
Error taxonomy for OFD document assembly.

Only ArchiveError, MissingRequiredPart, and MalformedPart on a required part
ever reach the caller of the assembler. All other errors are raised inside
optional stages and absorbed there, leaving the affected portion of the
Document at its empty default.
"""

from __future__ import annotations

from typing import Optional


class OfdError(Exception):
    """Base class for every domain error raised while reading an OFD."""


class ArchiveError(OfdError):
    """The input is not a readable zip container. Always fatal."""


class PartNotFound(OfdError):
    """A path was requested that no archive entry matches."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Archive part not found: {path}")
        self.path = path


class MissingRequiredPart(OfdError):
    """The manifest or document root is absent. Always fatal."""

    def __init__(self, part: str, reason: Optional[str] = None) -> None:
        message = f"Required part missing: {part}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.part = part


class MalformedPart(OfdError):
    """An XML part failed to parse. Fatal only for required parts."""

    def __init__(self, part: str, reason: str) -> None:
        super().__init__(f"Malformed part {part}: {reason}")
        self.part = part
        self.reason = reason


class UnresolvedReference(OfdError):
    """A cross-reference is empty or points at nothing in the archive."""

    def __init__(self, source_part: str, reference: Optional[str]) -> None:
        super().__init__(
            f"Unresolved reference {reference!r} in {source_part}"
        )
        self.source_part = source_part
        self.reference = reference


class SignatureDecodeError(OfdError):
    """The signed value matches neither known SES_Signature layout."""


class VerificationFailure(OfdError):
    """A seal signature did not verify against its certificate."""
