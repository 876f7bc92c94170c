"""
Typed records for decoded electronic seals.

SealInfo mirrors the fields extracted from an SES_Signature structure in
either of its two on-wire layouts (v1: GM/T 0031-2014, v4: GB/T 38540-2020).
The SignatureRecord that binds a decoded seal to its OFD signature entry
lives with the Document it may own, in schemas.document.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class VerificationOutcome(str, Enum):
    """
    Result of cryptographic seal verification.

    Only VALID means the signature was checked and matched. Every other
    value leaves the document loadable; the seal is simply not trusted.
    """

    VALID = "valid"
    INVALID = "invalid"
    UNSUPPORTED_ALGORITHM = "unsupported_algorithm"
    MALFORMED = "malformed"
    NOT_CHECKED = "not_checked"


class SealType(str, Enum):
    """Kind of stamp picture embedded in the seal."""

    VECTOR_DOCUMENT = "vector_document"
    RASTER_IMAGE = "raster_image"


# ---------------------------------------------------------------------------
# Seal components
# ---------------------------------------------------------------------------


class SealHeader(BaseModel):
    id: str
    version: int
    vendor_id: str

    model_config = ConfigDict(frozen=True)


class SealProperty(BaseModel):
    type: int
    name: str
    cert_list_type: Optional[int] = None
    cert_list: List[bytes] = Field(default_factory=list)
    create_date: Optional[datetime] = None
    valid_start: Optional[datetime] = None
    valid_end: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class SealPicture(BaseModel):
    type: str = Field(..., description="Lower-cased picture type, e.g. ofd/png")
    data: bytes
    width: int
    height: int

    model_config = ConfigDict(frozen=True)


class ExtensionData(BaseModel):
    extn_id: str
    critical: bool = False
    extn_value: bytes = b""

    model_config = ConfigDict(frozen=True)


class CertificateInfo(BaseModel):
    """Signer certificate fields needed for display and verification."""

    der: bytes
    subject: Dict[str, str] = Field(default_factory=dict)
    common_name: Optional[str] = None
    public_key_algorithm: str = ""
    public_key: bytes = b""

    model_config = ConfigDict(frozen=True)


class SealInfo(BaseModel):
    """
    Decoded SES_Signature.

    to_be_signed holds the exact DER bytes of the TBS_Sign structure as
    found on the wire; verification is computed over these bytes.
    """

    schema_version: int = Field(..., description="1 or 4")
    tbs_version: int
    header: SealHeader
    es_id: str
    property: SealProperty
    picture: SealPicture
    ext_datas: List[ExtensionData] = Field(default_factory=list)
    seal_certificate: Optional[bytes] = None
    signer_certificate: CertificateInfo
    signature_algorithm: str
    signature: bytes
    to_be_signed: bytes
    time_info: Optional[str] = None
    data_hash: bytes = b""
    property_info: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def seal_type(self) -> SealType:
        if self.picture.type == "ofd":
            return SealType.VECTOR_DOCUMENT
        return SealType.RASTER_IMAGE

    @property
    def valid_start(self) -> Optional[datetime]:
        return self.property.valid_start

    @property
    def valid_end(self) -> Optional[datetime]:
        return self.property.valid_end

