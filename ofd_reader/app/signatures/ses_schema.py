"""
ASN.1 schema for SES_Signature electronic seals.

Two on-wire layouts exist:

    v1  GM/T 0031-2014   the signer certificate and algorithm live inside
                         TBS_Sign; the seal carries a SES_SignInfo block.
    v4  GB/T 38540-2020  the signer certificate and algorithm move to the
                         outer SES_Signature; the seal property gains a
                         certListType discriminator.

The schema classes only describe structure. asn1crypto parses lazily, so a
layout mismatch surfaces as ValueError when a field is first accessed.
"""

from __future__ import annotations

from asn1crypto import core


# ----------------------------------------------------------------------
# Shared structures
# ----------------------------------------------------------------------


class SealTime(core.Choice):
    """Producers mix UTCTime and GeneralizedTime for seal dates."""

    _alternatives = [
        ("utc_time", core.UTCTime),
        ("generalized_time", core.GeneralizedTime),
    ]


class SESHeader(core.Sequence):
    _fields = [
        ("id", core.IA5String),
        ("version", core.Integer),
        ("vid", core.IA5String),
    ]


class SESPictureInfo(core.Sequence):
    _fields = [
        ("type", core.IA5String),
        ("data", core.OctetString),
        ("width", core.Integer),
        ("height", core.Integer),
    ]


class ExtData(core.Sequence):
    _fields = [
        ("extn_id", core.ObjectIdentifier),
        ("critical", core.Boolean, {"default": False}),
        ("extn_value", core.OctetString),
    ]


class ExtensionDatas(core.SequenceOf):
    _child_spec = ExtData


class CertList(core.SequenceOf):
    _child_spec = core.OctetString


# ----------------------------------------------------------------------
# v1 (GM/T 0031-2014)
# ----------------------------------------------------------------------


class SESPropertyInfoV1(core.Sequence):
    _fields = [
        ("type", core.Integer),
        ("name", core.UTF8String),
        ("cert_list", CertList),
        ("create_date", SealTime),
        ("valid_start", SealTime),
        ("valid_end", SealTime),
    ]


class SESSealInfoV1(core.Sequence):
    _fields = [
        ("header", SESHeader),
        ("es_id", core.IA5String),
        ("property", SESPropertyInfoV1),
        ("picture", SESPictureInfo),
        ("ext_datas", ExtensionDatas, {"optional": True}),
    ]


class SESSignInfo(core.Sequence):
    _fields = [
        ("cert", core.OctetString),
        ("signature_algorithm", core.ObjectIdentifier),
        ("sign_data", core.OctetBitString),
    ]


class SESealV1(core.Sequence):
    _fields = [
        ("eseal_info", SESSealInfoV1),
        ("sign_info", SESSignInfo),
    ]


class TBSSignV1(core.Sequence):
    _fields = [
        ("version", core.Integer),
        ("eseal", SESealV1),
        ("time_info", core.OctetBitString),
        ("data_hash", core.OctetBitString),
        ("property_info", core.IA5String),
        ("cert", core.OctetString),
        ("signature_algorithm", core.ObjectIdentifier),
    ]


class SESSignatureV1(core.Sequence):
    _fields = [
        ("to_sign", TBSSignV1),
        ("signature", core.OctetBitString),
    ]


# ----------------------------------------------------------------------
# v4 (GB/T 38540-2020)
# ----------------------------------------------------------------------


class CertDigest(core.Sequence):
    _fields = [
        ("type", core.PrintableString),
        ("value", core.OctetString),
    ]


class CertInfo(core.Choice):
    """certListType 1 carries certificates, 2 carries certificate digests."""

    _alternatives = [
        ("cert", core.OctetString),
        ("digest", CertDigest),
    ]


class CertInfoList(core.SequenceOf):
    _child_spec = CertInfo


class SESPropertyInfoV4(core.Sequence):
    _fields = [
        ("type", core.Integer),
        ("name", core.UTF8String),
        ("cert_list_type", core.Integer),
        ("cert_list", CertInfoList),
        ("create_date", SealTime),
        ("valid_start", SealTime),
        ("valid_end", SealTime),
    ]


class SESSealInfoV4(core.Sequence):
    _fields = [
        ("header", SESHeader),
        ("es_id", core.IA5String),
        ("property", SESPropertyInfoV4),
        ("picture", SESPictureInfo),
        ("ext_datas", ExtensionDatas, {"optional": True}),
    ]


class SESealV4(core.Sequence):
    _fields = [
        ("eseal_info", SESSealInfoV4),
        ("cert", core.OctetString),
        ("sign_alg_id", core.ObjectIdentifier),
        ("signed_value", core.OctetBitString),
    ]


class TBSSignV4(core.Sequence):
    _fields = [
        ("version", core.Integer),
        ("eseal", SESealV4),
        ("time_info", SealTime),
        ("data_hash", core.OctetBitString),
        ("property_info", core.IA5String),
        ("ext_datas", ExtensionDatas, {"explicit": 0, "optional": True}),
    ]


class SESSignatureV4(core.Sequence):
    _fields = [
        ("to_sign", TBSSignV4),
        ("cert", core.OctetString),
        ("signature_alg_id", core.ObjectIdentifier),
        ("signature", core.OctetBitString),
        ("time_stamp", core.OctetBitString, {"explicit": 0, "optional": True}),
    ]
