"""
Tests for document assembly.

Coverage matrix:

  Missing OFD.xml                           → MissingRequiredPart, no Document
  Manifest without DocRoot / missing target → MissingRequiredPart
  Malformed manifest                        → MalformedPart
  Non-zip / corrupt / oversized input       → ArchiveError
  No Signatures reference                   → empty signature list, pages load
  Tampered SM2 seal on a page               → INVALID, page count unchanged
  Referenced Signatures.xml missing         → stage skipped and logged
  Undecodable SignedValue                   → MALFORMED record
  Missing / malformed page part             → page kept with node None
  Resources, media cache, fonts             → registered, loaded once
  Templates, outlines, annotations, DocInfo → linked to pages
  Vector-document seal                      → nested Document at depth 1
  Corrupt archive inside a seal             → no nested Document, pages load
  Nesting depth / page count limits         → enforced
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from ofd_reader.app.config import ReaderConfig
from ofd_reader.app.coordinator.assembler import DocumentAssembler, load_document
from ofd_reader.app.errors import ArchiveError, MalformedPart, MissingRequiredPart
from ofd_reader.app.geometry.path_decoder import OperationKind, decode_path
from ofd_reader.app.schemas.signature import SealType, VerificationOutcome
from ofd_reader.app.xml.query import find_text
from ofd_reader.tests.fixtures.ofd_factory import (
    PNG_BYTES,
    SHA1_RSA_OID,
    corrupt_deflate_streams,
    manifest_xml,
    minimal_ofd,
    ofd_package,
    rsa_signer,
    seal_pairs,
    ses_v1,
    ses_v4,
    sm2_signer,
    tamper_last_byte,
    zip_parts,
)

ASSEMBLER_LOGGER = "ofd_reader.app.coordinator.assembler"


class RecordingFontLoader:
    def __init__(self):
        self.calls = []

    def load_font(self, font, font_file, data):
        self.calls.append((font.get("ID"), font_file, data))


@pytest.fixture(scope="module")
def sm2_keys():
    return sm2_signer()


@pytest.fixture(scope="module")
def sm2_seal(sm2_keys):
    cert, sign = sm2_keys
    return ses_v1(cert, sign)


@pytest.fixture(scope="module")
def full_document():
    return load_document(ofd_package(page_count=2))


# ---------------------------------------------------------------------------
# Required parts
# ---------------------------------------------------------------------------

def test_missing_manifest_is_fatal():
    with pytest.raises(MissingRequiredPart) as exc_info:
        load_document(ofd_package(omit=["OFD.xml"]))

    assert exc_info.value.part == "OFD.xml"


def test_manifest_without_doc_root_is_fatal():
    data = ofd_package(extra_parts={"OFD.xml": manifest_xml(doc_root=None)})

    with pytest.raises(MissingRequiredPart):
        load_document(data)


def test_missing_doc_root_target_is_fatal():
    data = ofd_package(resources=False, omit=["Doc_0/Document.xml"])

    with pytest.raises(MissingRequiredPart) as exc_info:
        load_document(data)

    assert exc_info.value.part == "Doc_0/Document.xml"


def test_malformed_manifest_is_fatal():
    data = ofd_package(extra_parts={"OFD.xml": "<ofd:OFD><ofd:DocBody>"})

    with pytest.raises(MalformedPart) as exc_info:
        load_document(data)

    assert exc_info.value.part == "OFD.xml"


def test_non_zip_input_is_archive_error():
    with pytest.raises(ArchiveError):
        load_document(b"PK not really a zip")


def test_corrupt_archive_is_archive_error():
    with pytest.raises(ArchiveError):
        load_document(corrupt_deflate_streams(ofd_package()))


def test_oversized_input_is_archive_error():
    config = ReaderConfig(MAX_ARCHIVE_SIZE_MB=1)

    with pytest.raises(ArchiveError):
        load_document(b"\x00" * (1024 * 1024 + 1), config=config)


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

def test_document_without_signatures_still_loads_pages():
    document = load_document(ofd_package(page_count=3))

    assert document.signature_list == []
    assert document.signatures is None
    assert [p.id for p in document.pages] == ["1", "2", "3"]
    assert all(p.node is not None for p in document.pages)


def test_valid_seal_is_linked_to_its_page(sm2_seal):
    document = load_document(ofd_package(page_count=2, seals=seal_pairs([sm2_seal])))

    (record,) = document.signature_list
    assert record.id == "1"
    assert record.outcome is VerificationOutcome.VALID
    assert record.verified
    assert record.page_refs == ["1"]
    assert record.stamp_annotations[0].get("Boundary") == "10 10 40 40"
    assert record.seal.es_id == "ES-2024-0001"
    assert record.signed_value == sm2_seal
    assert document.pages[0].signatures == [record]
    assert document.pages[1].signatures == []
    assert document.signature_outcomes == {"1": VerificationOutcome.VALID}


def test_tampered_seal_is_invalid_but_document_loads(sm2_seal):
    data = ofd_package(
        page_count=2, seals=seal_pairs([tamper_last_byte(sm2_seal)])
    )

    document = load_document(data)

    assert len(document.pages) == 2
    assert document.pages[0].node is not None
    (record,) = document.pages[0].signatures
    assert record.outcome is VerificationOutcome.INVALID
    assert not record.verified


def test_v1_and_v4_seals_in_one_document(sm2_keys, sm2_seal):
    cert, sign = sm2_keys
    data = ofd_package(seals=seal_pairs([sm2_seal, ses_v4(cert, sign)]))

    document = load_document(data)

    assert [r.seal.schema_version for r in document.signature_list] == [1, 4]
    assert all(r.outcome is VerificationOutcome.VALID for r in document.signature_list)


def test_verification_can_be_disabled(sm2_seal):
    config = ReaderConfig(ENABLE_SIGNATURE_VERIFICATION=False)

    document = load_document(ofd_package(seals=seal_pairs([sm2_seal])), config=config)

    (record,) = document.signature_list
    assert record.seal is not None
    assert record.outcome is VerificationOutcome.NOT_CHECKED


def test_undecodable_signed_value_is_malformed():
    document = load_document(ofd_package(seals=[(b"garbage", "1")]))

    (record,) = document.signature_list
    assert record.seal is None
    assert record.outcome is VerificationOutcome.MALFORMED
    assert len(document.pages) == 1


def test_missing_signatures_part_skips_stage(sm2_seal, caplog):
    data = ofd_package(
        page_count=2,
        seals=seal_pairs([sm2_seal]),
        omit=["Doc_0/Signs/Signatures.xml"],
    )

    with caplog.at_level(logging.WARNING, logger=ASSEMBLER_LOGGER):
        document = load_document(data)

    assert document.signature_list == []
    assert len(document.pages) == 2
    assert "Optional stage signatures skipped" in caplog.text


def test_missing_signature_part_keeps_malformed_record(sm2_seal):
    data = ofd_package(
        seals=seal_pairs([sm2_seal]),
        omit=["Doc_0/Signs/Sign_0/Signature.xml"],
    )

    document = load_document(data)

    (record,) = document.signature_list
    assert record.signature_node is None
    assert record.outcome is VerificationOutcome.MALFORMED


# ---------------------------------------------------------------------------
# Nested seal documents
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def vector_seal():
    cert, sign = rsa_signer()
    return ses_v1(
        cert,
        sign,
        algorithm=SHA1_RSA_OID,
        picture_type="OFD",
        picture_data=minimal_ofd(),
    )


def test_vector_seal_owns_nested_document(vector_seal):
    document = load_document(ofd_package(seals=seal_pairs([vector_seal])))

    (record,) = document.signature_list
    assert record.seal_type is SealType.VECTOR_DOCUMENT
    assert record.outcome is VerificationOutcome.VALID

    nested = record.nested_document
    assert nested is not None
    assert nested.depth == 1
    assert nested.pages == []
    assert nested is not document


def test_corrupt_seal_archive_leaves_document_loadable(caplog):
    cert, sign = rsa_signer()
    seal = ses_v1(
        cert,
        sign,
        algorithm=SHA1_RSA_OID,
        picture_type="OFD",
        picture_data=corrupt_deflate_streams(minimal_ofd()),
    )

    with caplog.at_level(logging.WARNING, logger=ASSEMBLER_LOGGER):
        document = load_document(ofd_package(page_count=2, seals=seal_pairs([seal])))

    (record,) = document.signature_list
    assert record.seal_type is SealType.VECTOR_DOCUMENT
    assert record.outcome is VerificationOutcome.VALID
    assert record.nested_document is None
    assert [p.id for p in document.pages] == ["1", "2"]
    assert document.pages[0].signatures == [record]
    assert "not assembled" in caplog.text


def test_nesting_depth_limit_stops_recursion(vector_seal):
    config = ReaderConfig(MAX_SEAL_NESTING_DEPTH=0)

    document = load_document(ofd_package(seals=seal_pairs([vector_seal])), config=config)

    assert document.signature_list[0].nested_document is None


def test_nested_parsing_can_be_disabled(vector_seal):
    config = ReaderConfig(ENABLE_NESTED_SEAL_PARSING=False)

    document = load_document(ofd_package(seals=seal_pairs([vector_seal])), config=config)

    assert document.signature_list[0].nested_document is None


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

def test_missing_page_part_keeps_page_entry():
    data = ofd_package(page_count=2, omit=["Doc_0/Pages/Page_1/Content.xml"])

    document = load_document(data)

    assert [p.id for p in document.pages] == ["1", "2"]
    assert document.pages[0].node is not None
    assert document.pages[1].node is None


def test_malformed_page_part_keeps_page_entry():
    data = ofd_package(
        page_count=2,
        extra_parts={"Doc_0/Pages/Page_0/Content.xml": "<ofd:Page><broken>"},
    )

    document = load_document(data)

    assert len(document.pages) == 2
    assert document.pages[0].node is None
    assert document.pages[1].node is not None


def test_page_count_limit_truncates():
    config = ReaderConfig(MAX_PAGE_COUNT=2)

    document = load_document(ofd_package(page_count=3), config=config)

    assert [p.id for p in document.pages] == ["1", "2"]


def test_page_path_data_decodes(full_document):
    data = find_text(full_document.pages[0].node, "ofd:AbbreviatedData")

    assert [op.kind for op in decode_path(data)] == [
        OperationKind.MOVE_TO,
        OperationKind.LINE_TO,
        OperationKind.CLOSE,
    ]


def test_page_by_id(full_document):
    assert full_document.page_by_id("2").base_loc == "Pages/Page_1/Content.xml"
    assert full_document.page_by_id("9") is None


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

def test_resources_are_registered(full_document):
    assert full_document.public_res is not None
    assert full_document.document_res is not None
    assert [f.get("ID") for f in full_document.fonts] == ["60"]
    assert [m.get("ID") for m in full_document.multimedia] == ["70"]
    assert [d.get("ID") for d in full_document.draw_params] == ["80"]
    assert full_document.media_paths == {"70": "Doc_0/Res/Image_70.png"}


def test_media_is_loaded_once_and_cached():
    document = load_document(ofd_package())

    first = document.load_media("70")
    second = document.load_media("Doc_0/Res/Image_70.png")

    assert first == PNG_BYTES
    assert second is first
    assert document.cached_media_names() == ["DOC_0/RES/IMAGE_70.PNG"]


def test_missing_media_is_not_cached():
    document = load_document(ofd_package())

    assert document.load_media("Res/Missing.png") is None
    assert document.cached_media_names() == []


def test_concurrent_media_reads_share_one_entry():
    document = load_document(ofd_package())

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: document.load_media("70"), range(32)))

    assert all(r is results[0] for r in results)
    assert len(document.cached_media_names()) == 1


def test_public_fonts_reach_font_loader():
    loader = RecordingFontLoader()

    load_document(ofd_package(), font_loader=loader)

    assert loader.calls == [
        ("60", "Doc_0/Res/font_60.ttf", b"\x00\x01\x00\x00fake-font")
    ]


def test_font_loading_can_be_disabled():
    loader = RecordingFontLoader()
    config = ReaderConfig(ENABLE_FONT_LOADING=False)

    document = DocumentAssembler(config, loader).assemble(ofd_package())

    assert loader.calls == []
    assert len(document.fonts) == 1


# ---------------------------------------------------------------------------
# Templates, outlines, annotations, metadata
# ---------------------------------------------------------------------------

def test_templates_are_linked_to_pages(full_document):
    template = full_document.templates["50"]

    assert template.source_part == "Doc_0/Tpls/Tpl_0/Content.xml"
    assert full_document.pages[0].template_ids == ["50"]
    assert full_document.pages[0].templates == [template]


def test_outline_tree(full_document):
    (chapter,) = full_document.outlines

    assert chapter.title == "Chapter 1"
    assert chapter.page_id == "1"
    assert chapter.expanded is True
    (section,) = chapter.children
    assert section.title == "Section 1.1"
    assert section.page_id is None
    assert section.expanded is False


def test_annotations_are_linked_to_pages(full_document):
    annotations = full_document.annotations["1"]

    assert annotations.tag_name == "ofd:PageAnnot"
    assert full_document.pages[0].annotations is annotations
    assert full_document.pages[1].annotations is None


def test_optional_parts_absent():
    data = ofd_package(resources=False, template=False, outlines=False, annotations=False)

    document = load_document(data)

    assert document.fonts == []
    assert document.templates == {}
    assert document.outlines == []
    assert document.annotations == {}
    assert len(document.pages) == 1


def test_doc_info_is_read_from_manifest(full_document):
    info = full_document.doc_info

    assert info.title == "Lease Agreement"
    assert info.author == "Records Office"
    assert info.doc_id == "a1b2c3d4e5f60718293a4b5c6d7e8f90"
    assert info.custom_data == {"department": "legal"}


def test_assembler_is_reusable(sm2_seal):
    assembler = DocumentAssembler()

    signed = assembler.assemble(ofd_package(seals=seal_pairs([sm2_seal])))
    plain = assembler.assemble(ofd_package())

    assert len(signed.signature_list) == 1
    assert plain.signature_list == []


def test_lowercase_entry_names_resolve():
    parts = {
        "ofd.xml": manifest_xml(doc_root="/Doc_0/Document.xml"),
        "doc_0/document.xml": (
            '<ofd:Document xmlns:ofd="http://www.ofdspec.org/2016"/>'
        ),
    }

    document = load_document(zip_parts(parts))

    assert document.doc_root_path == "doc_0/document.xml"
    assert document.pages == []
