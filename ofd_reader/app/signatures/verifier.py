"""
Cryptographic verification of decoded seals.

Algorithm selection follows the signature algorithm identifier:

    contains 1.2.156.10197.1.501 or "sm2"
        SM2 over SM3 with the standard user id 1234567812345678, computed
        over the DER of TBS_Sign (gmssl).
    anything else
        RSA PKCS#1 v1.5 against the signer certificate (cryptography).
        SHA-1 unless the identifier names a SHA-2 RSA variant.

verify_seal never raises for bad input. Every failure degrades to an
outcome other than VALID: an unreadable seal may still be displayed, it is
just not trusted.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from asn1crypto import algos
from cryptography import x509 as crypto_x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from gmssl import sm2

from ofd_reader.app.errors import VerificationFailure
from ofd_reader.app.schemas.signature import SealInfo, VerificationOutcome

logger = logging.getLogger(__name__)

SM2_SIGNATURE_OID = "1.2.156.10197.1.501"

# gmssl computes the SM2 Z value with this id built in.
SM2_DEFAULT_USER_ID = b"1234567812345678"

_SM2_COORDINATE_HEX = 64

_RSA_HASHES = {
    "1.2.840.113549.1.1.11": hashes.SHA256,
    "1.2.840.113549.1.1.12": hashes.SHA384,
    "1.2.840.113549.1.1.13": hashes.SHA512,
}


def is_sm2_algorithm(algorithm: str) -> bool:
    lowered = algorithm.lower()
    return SM2_SIGNATURE_OID in lowered or "sm2" in lowered


# ----------------------------------------------------------------------
# SM2
# ----------------------------------------------------------------------


def _sm2_public_key_hex(public_key: bytes) -> Optional[str]:
    """X||Y as 128 hex digits, without the uncompressed-point prefix."""
    key = public_key.lstrip(b"\x00") if len(public_key) > 65 else public_key
    if len(key) == 65 and key[0] == 0x04:
        key = key[1:]
    if len(key) != 64:
        return None
    return key.hex()


def _sm2_signature_hex(signature: bytes) -> Optional[str]:
    """r||s as 128 hex digits from a DER SM2 signature (or raw r||s)."""
    if len(signature) == 64:
        return signature.hex()

    try:
        parsed = algos.DSASignature.load(signature).native
    except (ValueError, TypeError) as exc:
        logger.debug("Unparseable SM2 signature value: %s", exc)
        return None

    r, s = parsed["r"], parsed["s"]
    if r.bit_length() > 256 or s.bit_length() > 256:
        return None
    return "%064x%064x" % (r, s)


def _verify_sm2(seal: SealInfo) -> VerificationOutcome:
    key_hex = _sm2_public_key_hex(seal.signer_certificate.public_key)
    if key_hex is None:
        logger.warning("Seal %s has no usable SM2 public key", seal.es_id)
        return VerificationOutcome.MALFORMED

    signature_hex = _sm2_signature_hex(seal.signature)
    if signature_hex is None:
        logger.warning("Seal %s has a malformed SM2 signature", seal.es_id)
        return VerificationOutcome.MALFORMED

    crypt = sm2.CryptSM2(private_key=None, public_key=key_hex)
    # The constructor strips a leading "04" even from bare X||Y keys.
    crypt.public_key = key_hex

    if not crypt.verify_with_sm3(signature_hex, seal.to_be_signed):
        raise VerificationFailure(f"SM2 signature mismatch for seal {seal.es_id}")
    return VerificationOutcome.VALID


# ----------------------------------------------------------------------
# RSA
# ----------------------------------------------------------------------


def _rsa_key(seal: SealInfo) -> Tuple[Optional[rsa.RSAPublicKey], VerificationOutcome]:
    der = seal.signer_certificate.der
    if not der:
        return None, VerificationOutcome.MALFORMED

    try:
        public_key = crypto_x509.load_der_x509_certificate(der).public_key()
    except UnsupportedAlgorithm as exc:
        logger.warning("Seal %s certificate key unsupported: %s", seal.es_id, exc)
        return None, VerificationOutcome.UNSUPPORTED_ALGORITHM
    except ValueError as exc:
        logger.warning("Seal %s certificate unreadable: %s", seal.es_id, exc)
        return None, VerificationOutcome.MALFORMED

    if not isinstance(public_key, rsa.RSAPublicKey):
        logger.warning(
            "Seal %s uses algorithm %s with a non-RSA key",
            seal.es_id,
            seal.signature_algorithm,
        )
        return None, VerificationOutcome.UNSUPPORTED_ALGORITHM

    return public_key, VerificationOutcome.VALID


def _verify_rsa(seal: SealInfo) -> VerificationOutcome:
    public_key, outcome = _rsa_key(seal)
    if public_key is None:
        return outcome

    signature = seal.signature
    key_bytes = (public_key.key_size + 7) // 8
    if len(signature) == key_bytes + 1 and signature[0] == 0:
        signature = signature[1:]

    hash_type = _RSA_HASHES.get(seal.signature_algorithm, hashes.SHA1)

    try:
        public_key.verify(
            signature,
            seal.to_be_signed,
            padding.PKCS1v15(),
            hash_type(),
        )
    except InvalidSignature as exc:
        raise VerificationFailure(
            f"RSA signature mismatch for seal {seal.es_id}"
        ) from exc
    return VerificationOutcome.VALID


# ----------------------------------------------------------------------
# Public entry point
# ----------------------------------------------------------------------


def verify_seal(seal: Optional[SealInfo]) -> VerificationOutcome:
    """Verify a decoded seal. Deterministic and side-effect free."""
    if seal is None:
        return VerificationOutcome.MALFORMED

    try:
        if is_sm2_algorithm(seal.signature_algorithm):
            return _verify_sm2(seal)
        return _verify_rsa(seal)
    except VerificationFailure as exc:
        logger.warning("%s", exc)
        return VerificationOutcome.INVALID
