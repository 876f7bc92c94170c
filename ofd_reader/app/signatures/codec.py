"""
SES_Signature decoding.

Signed values arrive as raw DER (SignedValue.dat) or as hex / base64 text.
After transport decoding, the DER is parsed against both known layouts:

    decode_v1(der) -> DecodeAttempt
    decode_v4(der) -> DecodeAttempt

Both decoders are first-class and report a structural mismatch in their
DecodeAttempt instead of raising. decode_signature tries v1 first and v4
when v1 reports a mismatch; it raises SignatureDecodeError only when both
layouts are rejected.

Error handling policy:
    asn1crypto raises ValueError (including UnicodeDecodeError), TypeError
    or KeyError for structures that do not match a schema. Those are the
    only exceptions converted into a failed attempt. Certificate parse
    failures are not structural: the seal decodes with an empty
    CertificateInfo and verification reports it as malformed.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Union

from asn1crypto import core, x509

from ofd_reader.app.errors import SignatureDecodeError
from ofd_reader.app.schemas.signature import (
    CertificateInfo,
    ExtensionData,
    SealHeader,
    SealInfo,
    SealPicture,
    SealProperty,
)
from ofd_reader.app.signatures.ses_schema import SESSignatureV1, SESSignatureV4

logger = logging.getLogger(__name__)

_HEX_TEXT = re.compile(r"^\s*(?:[0-9A-Fa-f][0-9A-Fa-f]\s*)+$")

_ASN1_SEQUENCE_TAG = 0x30

_STRUCTURE_ERRORS = (ValueError, TypeError, KeyError)


@dataclass(frozen=True)
class DecodeAttempt:
    """Outcome of parsing DER against one SES_Signature layout."""

    schema_version: int
    seal: Optional[SealInfo] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.seal is not None


# ----------------------------------------------------------------------
# Transport decoding
# ----------------------------------------------------------------------


def to_der(value: Union[bytes, str]) -> bytes:
    """
    Turn a signed value into DER bytes.

    Bytes starting with a SEQUENCE tag are taken as DER. Anything else is
    treated as text: hex when it is entirely hex digit pairs, base64
    otherwise.
    """
    if isinstance(value, bytes):
        if value[:1] == bytes([_ASN1_SEQUENCE_TAG]):
            return value
        try:
            value = value.decode("ascii")
        except UnicodeDecodeError as exc:
            raise SignatureDecodeError(
                "Signed value is neither DER nor ASCII text"
            ) from exc

    if _HEX_TEXT.match(value):
        return bytes.fromhex("".join(value.split()))

    try:
        return base64.b64decode("".join(value.split()))
    except binascii.Error as exc:
        raise SignatureDecodeError(
            f"Signed value is neither hex nor base64: {exc}"
        ) from exc


# ----------------------------------------------------------------------
# Field helpers
# ----------------------------------------------------------------------


def _time_value(value: core.Asn1Value) -> Optional[datetime]:
    """
    Native datetime of a seal time, or None when the value is unreadable.

    The tag must still be one of the time types; only the textual content
    is tolerated.
    """
    if isinstance(value, core.Choice):
        value = value.chosen
    if isinstance(value, core.Void):
        return None
    try:
        return value.native
    except ValueError:
        logger.debug("Unreadable seal time %r", value.contents)
        return None


def _bit_string_text(value: core.OctetBitString) -> str:
    return value.native.decode("ascii", errors="replace")


def _ext_datas(value: core.Asn1Value) -> List[ExtensionData]:
    if isinstance(value, core.Void):
        return []
    return [
        ExtensionData(
            extn_id=item["extn_id"].dotted,
            critical=bool(item["critical"].native),
            extn_value=item["extn_value"].native or b"",
        )
        for item in value
    ]


def _subject_map(name: x509.Name) -> Dict[str, str]:
    subject: Dict[str, str] = {}
    for key, value in name.native.items():
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        subject[str(key)] = str(value)
    return subject


def certificate_info(der: bytes) -> CertificateInfo:
    """Extract subject and public key from a DER certificate."""
    if not der:
        return CertificateInfo(der=b"")

    try:
        cert = x509.Certificate.load(der)
        tbs = cert["tbs_certificate"]
        subject = _subject_map(tbs["subject"])
        spki = tbs["subject_public_key_info"]
        algorithm = spki["algorithm"]["algorithm"].dotted
        # Drop the unused-bits octet of the BIT STRING.
        public_key = bytes(spki["public_key"].contents[1:])
    except _STRUCTURE_ERRORS as exc:
        logger.warning("Unparseable seal certificate: %s", exc)
        return CertificateInfo(der=der)

    return CertificateInfo(
        der=der,
        subject=subject,
        common_name=subject.get("common_name"),
        public_key_algorithm=algorithm,
        public_key=public_key,
    )


def _header(seal_info: core.Sequence) -> SealHeader:
    header = seal_info["header"]
    return SealHeader(
        id=header["id"].native,
        version=header["version"].native,
        vendor_id=header["vid"].native,
    )


def _picture(seal_info: core.Sequence) -> SealPicture:
    picture = seal_info["picture"]
    return SealPicture(
        type=picture["type"].native.lower(),
        data=picture["data"].native or b"",
        width=picture["width"].native,
        height=picture["height"].native,
    )


# ----------------------------------------------------------------------
# Layout decoders
# ----------------------------------------------------------------------


def decode_v1(der: bytes) -> DecodeAttempt:
    """Parse DER as a GM/T 0031-2014 SES_Signature."""
    try:
        sig = SESSignatureV1.load(der)
        tbs = sig["to_sign"]
        eseal = tbs["eseal"]
        info = eseal["eseal_info"]
        prop = info["property"]

        seal = SealInfo(
            schema_version=1,
            tbs_version=tbs["version"].native,
            header=_header(info),
            es_id=info["es_id"].native,
            property=SealProperty(
                type=prop["type"].native,
                name=prop["name"].native,
                cert_list=[c.native for c in prop["cert_list"]],
                create_date=_time_value(prop["create_date"]),
                valid_start=_time_value(prop["valid_start"]),
                valid_end=_time_value(prop["valid_end"]),
            ),
            picture=_picture(info),
            ext_datas=_ext_datas(info["ext_datas"]),
            seal_certificate=eseal["sign_info"]["cert"].native,
            signer_certificate=certificate_info(tbs["cert"].native),
            signature_algorithm=tbs["signature_algorithm"].dotted,
            signature=sig["signature"].native,
            to_be_signed=tbs.dump(),
            time_info=_bit_string_text(tbs["time_info"]),
            data_hash=tbs["data_hash"].native,
            property_info=tbs["property_info"].native,
        )
    except _STRUCTURE_ERRORS as exc:
        return DecodeAttempt(schema_version=1, error=str(exc))

    return DecodeAttempt(schema_version=1, seal=seal)


def _cert_list_v4(value: core.SequenceOf) -> List[bytes]:
    certs: List[bytes] = []
    for item in value:
        if item.name == "cert":
            certs.append(item.chosen.native)
        else:
            certs.append(item.chosen["value"].native)
    return certs


def decode_v4(der: bytes) -> DecodeAttempt:
    """Parse DER as a GB/T 38540-2020 SES_Signature."""
    try:
        sig = SESSignatureV4.load(der)
        tbs = sig["to_sign"]
        eseal = tbs["eseal"]
        info = eseal["eseal_info"]
        prop = info["property"]

        time_info = _time_value(tbs["time_info"])

        seal = SealInfo(
            schema_version=4,
            tbs_version=tbs["version"].native,
            header=_header(info),
            es_id=info["es_id"].native,
            property=SealProperty(
                type=prop["type"].native,
                name=prop["name"].native,
                cert_list_type=prop["cert_list_type"].native,
                cert_list=_cert_list_v4(prop["cert_list"]),
                create_date=_time_value(prop["create_date"]),
                valid_start=_time_value(prop["valid_start"]),
                valid_end=_time_value(prop["valid_end"]),
            ),
            picture=_picture(info),
            ext_datas=_ext_datas(info["ext_datas"]),
            seal_certificate=eseal["cert"].native,
            signer_certificate=certificate_info(sig["cert"].native),
            signature_algorithm=sig["signature_alg_id"].dotted,
            signature=sig["signature"].native,
            to_be_signed=tbs.dump(),
            time_info=time_info.isoformat() if time_info else None,
            data_hash=tbs["data_hash"].native,
            property_info=tbs["property_info"].native,
        )
    except _STRUCTURE_ERRORS as exc:
        return DecodeAttempt(schema_version=4, error=str(exc))

    return DecodeAttempt(schema_version=4, seal=seal)


def decode_signature(value: Union[bytes, str]) -> SealInfo:
    """
    Decode a signed value into SealInfo.

    Raises SignatureDecodeError when the value cannot be transport-decoded
    or matches neither layout.
    """
    der = to_der(value)
    if not der:
        raise SignatureDecodeError("Signed value is empty")

    attempt = decode_v1(der)
    if attempt.ok:
        return attempt.seal

    logger.debug("v1 layout rejected (%s); trying v4", attempt.error)
    fallback = decode_v4(der)
    if fallback.ok:
        return fallback.seal

    raise SignatureDecodeError(
        "Signed value matches no SES_Signature layout "
        f"(v1: {attempt.error}; v4: {fallback.error})"
    )
