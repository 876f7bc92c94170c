"""
Runtime configuration for the OFD reader.

This module centralizes environment-driven limits and feature flags for
document assembly. It defines which optional stages are enabled and the
resource bounds applied to untrusted archives.

Configuration is read-only at runtime and must not influence the shape of
the assembled Document beyond the documented limits.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, Field, field_validator


class ReaderConfig(BaseModel):
    """
    Runtime configuration for document assembly.

    Configuration is environment-driven and immutable once constructed.
    """

    # ------------------------------------------------------------------
    # Stage gates
    # ------------------------------------------------------------------

    ENABLE_SIGNATURE_VERIFICATION: bool = Field(
        True,
        description="Cryptographically verify every decoded seal",
    )

    ENABLE_NESTED_SEAL_PARSING: bool = Field(
        True,
        description=(
            "Re-run the assembly pipeline on vector-document seals that "
            "embed their own OFD archive"
        ),
    )

    ENABLE_FONT_LOADING: bool = Field(
        True,
        description="Hand public-resource fonts to the font loader",
    )

    # ------------------------------------------------------------------
    # Safety and resource limits
    # ------------------------------------------------------------------

    MAX_ARCHIVE_SIZE_MB: int = Field(
        100,
        description="Maximum accepted size of the zip container in megabytes",
    )

    MAX_UNCOMPRESSED_SIZE_MB: int = Field(
        500,
        description=(
            "Maximum total declared size of the archive entries once "
            "decompressed, in megabytes"
        ),
    )

    MAX_PAGE_COUNT: int = Field(
        10_000,
        description="Pages beyond this count are not assembled",
    )

    MAX_SEAL_NESTING_DEPTH: int = Field(
        2,
        description=(
            "Maximum depth of seal documents nested inside seal documents. "
            "The top-level document is depth 0."
        ),
    )

    # ------------------------------------------------------------------
    # Validators (Pydantic v2)
    # ------------------------------------------------------------------

    @field_validator(
        "MAX_ARCHIVE_SIZE_MB", "MAX_UNCOMPRESSED_SIZE_MB", "MAX_PAGE_COUNT"
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Limit must be positive, got {v}")
        return v

    @field_validator("MAX_SEAL_NESTING_DEPTH")
    @classmethod
    def depth_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(
                f"MAX_SEAL_NESTING_DEPTH cannot be negative, got {v}"
            )
        return v

    @property
    def max_archive_bytes(self) -> int:
        return self.MAX_ARCHIVE_SIZE_MB * 1024 * 1024

    @property
    def max_uncompressed_bytes(self) -> int:
        return self.MAX_UNCOMPRESSED_SIZE_MB * 1024 * 1024

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "ReaderConfig":
        """
        Load configuration from environment variables.

        All values are parsed once and must remain immutable.
        """

        def env_bool(name: str, default: bool) -> bool:
            raw = os.getenv(name)
            if raw is None:
                return default
            return raw.lower() in {"1", "true", "yes", "on"}

        return cls(
            ENABLE_SIGNATURE_VERIFICATION=env_bool(
                "OFD_READER_ENABLE_SIGNATURE_VERIFICATION", True
            ),
            ENABLE_NESTED_SEAL_PARSING=env_bool(
                "OFD_READER_ENABLE_NESTED_SEAL_PARSING", True
            ),
            ENABLE_FONT_LOADING=env_bool(
                "OFD_READER_ENABLE_FONT_LOADING", True
            ),
            MAX_ARCHIVE_SIZE_MB=int(
                os.getenv("OFD_READER_MAX_ARCHIVE_SIZE_MB", "100")
            ),
            MAX_UNCOMPRESSED_SIZE_MB=int(
                os.getenv("OFD_READER_MAX_UNCOMPRESSED_SIZE_MB", "500")
            ),
            MAX_PAGE_COUNT=int(
                os.getenv("OFD_READER_MAX_PAGE_COUNT", "10000")
            ),
            MAX_SEAL_NESTING_DEPTH=int(
                os.getenv("OFD_READER_MAX_SEAL_NESTING_DEPTH", "2")
            ),
        )

    model_config = {
        "frozen": True,
    }
