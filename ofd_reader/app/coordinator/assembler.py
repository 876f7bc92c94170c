"""
Document assembly orchestrator.

Turns an OFD zip buffer into a Document by walking the cross-references
between its XML parts:

    OFD.xml ──DocRoot──▶ Doc_N/Document.xml ──Pages──▶ page parts
       │                        ├──CommonData──▶ DocumentRes / PublicRes
       │                        ├──TemplatePage──▶ template parts
       │                        ├──Outlines
       │                        └──Annotations──▶ Annotations.xml ──▶ per-page parts
       └──Signatures──▶ Signatures.xml ──▶ Signature.xml ──▶ SignedValue.dat

STAGES
------
The manifest and document-root stages are required: their failure aborts
assembly with a single OfdError and no partial Document. Every later stage
is independently optional: an OfdError raised inside it is logged and the
affected Document fields keep their empty defaults.

Error handling policy:
    Only OfdError subclasses are absorbed. Anything else is a logic error
    and propagates.

NESTED SEALS
------------
A seal whose picture type is "ofd" embeds a complete OFD archive. It is
assembled by the same pipeline at depth + 1 and owned by its
SignatureRecord. MAX_SEAL_NESTING_DEPTH bounds the recursion.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from ofd_reader.app.archive.accessor import (
    Archive,
    normalize_path,
    parent_dir,
    resolve_reference,
)
from ofd_reader.app.config import ReaderConfig
from ofd_reader.app.coordinator.resources import FontLoader, NullFontLoader
from ofd_reader.app.errors import (
    MalformedPart,
    MissingRequiredPart,
    OfdError,
    PartNotFound,
    SignatureDecodeError,
    UnresolvedReference,
)
from ofd_reader.app.schemas.document import (
    DocInfo,
    Document,
    OutlineEntry,
    Page,
    SignatureRecord,
)
from ofd_reader.app.schemas.node import Node
from ofd_reader.app.schemas.signature import SealType, VerificationOutcome
from ofd_reader.app.signatures.codec import decode_signature
from ofd_reader.app.signatures.verifier import verify_seal
from ofd_reader.app.xml.multiplicity import local_name
from ofd_reader.app.xml.node_builder import parse_part
from ofd_reader.app.xml.query import (
    find_all_by_tag,
    find_attribute,
    find_first_by_tag,
    find_text,
    occurrences,
)

logger = logging.getLogger(__name__)

MANIFEST_PART = "OFD.xml"


# Optional stage contract
AssemblyStage = Callable[[Document, Archive], None]


def _direct_children(node: Optional[Node], tag: str) -> List[Node]:
    """Occurrences of tag directly under node (no deeper search)."""
    if node is None:
        return []
    wanted = local_name(tag)
    for child in node.children:
        if not child.is_index_entry and local_name(child.tag_name) == wanted:
            return occurrences(child)
    return []


def _text_refs(node: Optional[Node], tag: str) -> List[str]:
    """Non-empty text values of every tag occurrence under node."""
    refs = []
    for match in find_all_by_tag(node, tag):
        text = match.text_value.strip()
        if text:
            refs.append(text)
    return refs


class DocumentAssembler:
    """
    Builds Documents from OFD archives.

    Stateless between calls; one instance may assemble any number of
    archives sequentially.
    """

    def __init__(
        self,
        config: Optional[ReaderConfig] = None,
        font_loader: Optional[FontLoader] = None,
    ):
        self._config = config or ReaderConfig()
        self._font_loader = font_loader or NullFontLoader()

        self._stages: List[AssemblyStage] = [
            self._doc_info,
            self._signatures,
            self._pages,
            self._resources,
            self._templates,
            self._outlines,
            self._annotations,
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def assemble(self, data: bytes) -> Document:
        """
        Assemble a Document from zip bytes.

        Raises ArchiveError, MissingRequiredPart or MalformedPart when the
        container, manifest or document root is unusable.
        """
        return self._assemble(data, depth=0)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _assemble(self, data: bytes, depth: int) -> Document:
        archive = Archive.open(data, self._config)

        document = Document(depth=depth)
        document.attach_archive(archive)

        self._manifest(document, archive)
        self._document_root(document, archive)

        for stage in self._stages:
            try:
                stage(document, archive)
            except OfdError as exc:
                logger.warning(
                    "Optional stage %s skipped: %s",
                    stage.__name__.lstrip("_"),
                    exc,
                )

        logger.info(
            "Assembled OFD document at depth %d: %d pages, %d signatures",
            depth,
            len(document.pages),
            len(document.signature_list),
        )
        return document

    def _parse(self, archive: Archive, path: str) -> Node:
        """Read and parse one part. PartNotFound and MalformedPart propagate."""
        name = archive.resolve(path)
        if name is None:
            raise PartNotFound(path)
        return parse_part(archive.read_binary(name), name)

    def _parse_reference(
        self,
        archive: Archive,
        source_part: str,
        base_dir: str,
        reference: Optional[str],
    ) -> Node:
        """Parse the part a cross-reference points at."""
        path = self._locate(archive, source_part, base_dir, reference)
        return self._parse(archive, path)

    def _locate(
        self,
        archive: Archive,
        source_part: str,
        base_dir: str,
        reference: Optional[str],
    ) -> str:
        """
        Re-root a cross-reference and confirm it exists.

        Producers disagree on whether references are relative to the
        referring part or to the archive root; both are tried, in that
        order.
        """
        if not reference or not reference.strip():
            raise UnresolvedReference(source_part, reference)

        candidates = [resolve_reference(base_dir, reference)]
        rooted = normalize_path(reference)
        if rooted not in candidates:
            candidates.append(rooted)

        for candidate in candidates:
            name = archive.resolve(candidate)
            if name is not None:
                return name

        raise UnresolvedReference(source_part, reference)

    # ------------------------------------------------------------------
    # Required stages
    # ------------------------------------------------------------------

    def _manifest(self, document: Document, archive: Archive) -> None:
        try:
            document.manifest = self._parse(archive, MANIFEST_PART)
        except PartNotFound as exc:
            raise MissingRequiredPart(MANIFEST_PART) from exc

    def _document_root(self, document: Document, archive: Archive) -> None:
        doc_root = find_text(document.manifest, "ofd:DocRoot")
        if doc_root is None:
            raise MissingRequiredPart(
                "Document.xml", "manifest declares no ofd:DocRoot"
            )

        path = normalize_path(doc_root)
        name = archive.resolve(path)
        if name is None:
            raise MissingRequiredPart(path, "DocRoot target not in archive")

        document.document_root = parse_part(archive.read_binary(name), name)
        document.doc_root_path = name
        logger.debug("Document root resolved to %s", name)

    # ------------------------------------------------------------------
    # Optional stages
    # ------------------------------------------------------------------

    def _doc_info(self, document: Document, archive: Archive) -> None:
        info = find_first_by_tag(document.manifest, "ofd:DocInfo")
        entries = occurrences(info)
        if not entries:
            return
        entry = entries[0]

        custom_data: Dict[str, str] = {}
        for item in find_all_by_tag(entry, "ofd:CustomData"):
            name = item.get("Name")
            if name:
                custom_data[name] = item.text_value

        document.doc_info = DocInfo(
            doc_id=find_text(entry, "ofd:DocID"),
            title=find_text(entry, "ofd:Title"),
            author=find_text(entry, "ofd:Author"),
            subject=find_text(entry, "ofd:Subject"),
            creator=find_text(entry, "ofd:Creator"),
            creator_version=find_text(entry, "ofd:CreatorVersion"),
            creation_date=find_text(entry, "ofd:CreationDate"),
            mod_date=find_text(entry, "ofd:ModDate"),
            custom_data=custom_data,
        )

    # Signatures --------------------------------------------------------

    def _signatures(self, document: Document, archive: Archive) -> None:
        reference = find_text(document.manifest, "ofd:Signatures")
        if reference is None:
            logger.debug("Manifest declares no signatures")
            return

        # Manifest references are relative to the archive root, where
        # OFD.xml lives.
        path = self._locate(archive, MANIFEST_PART, "", reference)
        signatures = self._parse(archive, path)
        document.signatures = signatures

        signatures_dir = parent_dir(path)
        entries = occurrences(find_first_by_tag(signatures, "ofd:Signature"))

        records: List[SignatureRecord] = []
        for entry in entries:
            records.append(
                self._signature_record(
                    entry, archive, path, signatures_dir, document.depth
                )
            )
        document.signature_list = records

    def _signature_record(
        self,
        entry: Node,
        archive: Archive,
        signatures_part: str,
        signatures_dir: str,
        depth: int,
    ) -> SignatureRecord:
        record = SignatureRecord(
            id=find_attribute(entry, "ID") or "",
            base_loc=find_attribute(entry, "BaseLoc") or "",
        )

        try:
            signature_node = self._parse_reference(
                archive, signatures_part, signatures_dir, record.base_loc
            )
        except OfdError as exc:
            logger.warning("Signature %s unreadable: %s", record.id, exc)
            record.outcome = VerificationOutcome.MALFORMED
            return record

        record.signature_node = signature_node
        record.stamp_annotations = find_all_by_tag(
            signature_node, "ofd:StampAnnot"
        )
        record.page_refs = [
            ref
            for ref in (a.get("PageRef") for a in record.stamp_annotations)
            if ref
        ]

        try:
            value_path = self._locate(
                archive,
                signature_node.source_part,
                parent_dir(signature_node.source_part),
                find_text(signature_node, "ofd:SignedValue"),
            )
            record.signed_value = archive.read_binary(value_path)
            record.seal = decode_signature(record.signed_value)
        except (UnresolvedReference, PartNotFound, SignatureDecodeError) as exc:
            logger.warning("Seal of signature %s not decoded: %s", record.id, exc)
            record.outcome = VerificationOutcome.MALFORMED
            return record

        if self._config.ENABLE_SIGNATURE_VERIFICATION:
            record.outcome = verify_seal(record.seal)

        if record.seal.seal_type is SealType.VECTOR_DOCUMENT:
            record.nested_document = self._nested_document(record, depth)

        return record

    def _nested_document(
        self, record: SignatureRecord, depth: int
    ) -> Optional[Document]:
        if not self._config.ENABLE_NESTED_SEAL_PARSING:
            return None

        if depth + 1 > self._config.MAX_SEAL_NESTING_DEPTH:
            logger.warning(
                "Seal document of signature %s exceeds nesting depth %d",
                record.id,
                self._config.MAX_SEAL_NESTING_DEPTH,
            )
            return None

        try:
            return self._assemble(record.seal.picture.data, depth=depth + 1)
        except OfdError as exc:
            logger.warning(
                "Seal document of signature %s not assembled: %s",
                record.id,
                exc,
            )
            return None

    # Pages -------------------------------------------------------------

    def _pages(self, document: Document, archive: Archive) -> None:
        pages_node = find_first_by_tag(document.document_root, "ofd:Pages")
        entries = occurrences(find_first_by_tag(pages_node, "ofd:Page"))

        limit = self._config.MAX_PAGE_COUNT
        if len(entries) > limit:
            logger.warning(
                "Document declares %d pages; assembling the first %d",
                len(entries),
                limit,
            )
            entries = entries[:limit]

        doc_dir = parent_dir(document.doc_root_path)
        pages: List[Page] = []
        for entry in entries:
            page_id = find_attribute(entry, "ID") or ""
            base_loc = find_attribute(entry, "BaseLoc") or ""

            try:
                node = self._parse_reference(
                    archive, document.doc_root_path, doc_dir, base_loc
                )
            except OfdError as exc:
                logger.warning("Page %s content unavailable: %s", page_id, exc)
                node = None

            template_ids = [
                t.get("TemplateID")
                for t in _direct_children(node, "ofd:Template")
                if t.get("TemplateID")
            ]

            pages.append(
                Page(
                    id=page_id,
                    base_loc=base_loc,
                    node=node,
                    signatures=[
                        record
                        for record in document.signature_list
                        if page_id and page_id in record.page_refs
                    ],
                    template_ids=template_ids,
                )
            )

        document.pages = pages

    # Resources ---------------------------------------------------------

    def _resources(self, document: Document, archive: Archive) -> None:
        doc_dir = parent_dir(document.doc_root_path)

        for tag, field in (
            ("ofd:DocumentRes", "document_res"),
            ("ofd:PublicRes", "public_res"),
        ):
            for reference in _text_refs(document.document_root, tag):
                try:
                    res = self._parse_reference(
                        archive, document.doc_root_path, doc_dir, reference
                    )
                except OfdError as exc:
                    logger.warning("Resource part %s skipped: %s", reference, exc)
                    continue

                if getattr(document, field) is None:
                    setattr(document, field, res)
                self._register_resources(document, archive, res, tag)

    def _register_resources(
        self,
        document: Document,
        archive: Archive,
        res: Node,
        tag: str,
    ) -> None:
        res_dir = resolve_reference(
            parent_dir(res.source_part), res.get("BaseLoc", "") or ""
        )

        fonts = find_all_by_tag(res, "ofd:Font")
        multimedia = find_all_by_tag(res, "ofd:MultiMedia")
        document.fonts.extend(fonts)
        document.multimedia.extend(multimedia)
        document.draw_params.extend(find_all_by_tag(res, "ofd:DrawParam"))

        for media in multimedia:
            media_id = media.get("ID")
            media_file = find_text(media, "ofd:MediaFile")
            if media_id and media_file:
                document.media_paths[media_id] = resolve_reference(
                    res_dir, media_file
                )

        if tag == "ofd:PublicRes" and self._config.ENABLE_FONT_LOADING:
            for font in fonts:
                self._load_font(archive, font, res_dir)

    def _load_font(self, archive: Archive, font: Node, res_dir: str) -> None:
        font_file = find_text(font, "ofd:FontFile")
        path: Optional[str] = None
        data: Optional[bytes] = None

        if font_file:
            path = resolve_reference(res_dir, font_file)
            try:
                data = archive.read_binary(path)
            except PartNotFound:
                logger.warning(
                    "Font file %s for font %s missing",
                    path,
                    font.get("FontName"),
                )

        self._font_loader.load_font(font, path, data)

    # Templates ---------------------------------------------------------

    def _templates(self, document: Document, archive: Archive) -> None:
        doc_dir = parent_dir(document.doc_root_path)

        for entry in find_all_by_tag(document.document_root, "ofd:TemplatePage"):
            template_id = entry.get("ID")
            if not template_id:
                continue
            try:
                document.templates[template_id] = self._parse_reference(
                    archive, document.doc_root_path, doc_dir, entry.get("BaseLoc")
                )
            except OfdError as exc:
                logger.warning("Template %s skipped: %s", template_id, exc)

        for page in document.pages:
            page.templates = [
                document.templates[t]
                for t in page.template_ids
                if t in document.templates
            ]

    # Outlines ----------------------------------------------------------

    def _outlines(self, document: Document, archive: Archive) -> None:
        outlines = find_first_by_tag(document.document_root, "ofd:Outlines")
        document.outlines = [
            self._outline_entry(elem)
            for elem in _direct_children(outlines, "ofd:OutlineElem")
        ]

    def _outline_entry(self, elem: Node) -> OutlineEntry:
        page_id = None
        for actions in _direct_children(elem, "ofd:Actions"):
            dest = find_first_by_tag(actions, "ofd:Dest")
            if dest is not None:
                page_id = dest.get("PageID")
                break

        return OutlineEntry(
            title=elem.get("Title", "") or "",
            page_id=page_id,
            expanded=(elem.get("Expanded", "true") or "true").lower() != "false",
            children=[
                self._outline_entry(child)
                for child in _direct_children(elem, "ofd:OutlineElem")
            ],
        )

    # Annotations -------------------------------------------------------

    def _annotations(self, document: Document, archive: Archive) -> None:
        reference = find_text(document.document_root, "ofd:Annotations")
        if reference is None:
            return

        index = self._parse_reference(
            archive,
            document.doc_root_path,
            parent_dir(document.doc_root_path),
            reference,
        )
        index_dir = parent_dir(index.source_part)

        for entry in _direct_children(index, "ofd:Page"):
            page_id = entry.get("PageID")
            if not page_id:
                continue
            try:
                document.annotations[page_id] = self._parse_reference(
                    archive,
                    index.source_part,
                    index_dir,
                    find_text(entry, "ofd:FileLoc"),
                )
            except OfdError as exc:
                logger.warning("Annotations of page %s skipped: %s", page_id, exc)

        for page in document.pages:
            page.annotations = document.annotations.get(page.id)


def load_document(
    data: bytes,
    config: Optional[ReaderConfig] = None,
    font_loader: Optional[FontLoader] = None,
) -> Document:
    """Assemble a Document from zip bytes with a one-off assembler."""
    return DocumentAssembler(config, font_loader).assemble(data)
