"""
Document aggregate produced by the assembler.

A Document is created empty, populated once by DocumentAssembler, and then
treated as read-only by every consumer (renderers, exporters, viewers).
The only mutable state after assembly is the media cache, which is filled
lazily and guarded by a lock.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from ofd_reader.app.archive.accessor import Archive
from ofd_reader.app.errors import PartNotFound
from ofd_reader.app.schemas.node import Node
from ofd_reader.app.schemas.signature import (
    SealInfo,
    SealType,
    VerificationOutcome,
)

logger = logging.getLogger(__name__)


class SignatureRecord(BaseModel):
    """
    One ofd:Signature entry together with its decoded seal.

    A vector-document seal owns its nested Document; ownership is a tree.
    """

    id: str = ""
    base_loc: str = ""
    signature_node: Optional[Node] = None
    signed_value: bytes = b""
    page_refs: List[str] = Field(default_factory=list)
    stamp_annotations: List[Node] = Field(default_factory=list)
    seal: Optional[SealInfo] = None
    outcome: VerificationOutcome = VerificationOutcome.NOT_CHECKED
    nested_document: Optional["Document"] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def verified(self) -> bool:
        return self.outcome is VerificationOutcome.VALID

    @property
    def seal_type(self) -> Optional[SealType]:
        return self.seal.seal_type if self.seal is not None else None


class DocInfo(BaseModel):
    """Descriptive metadata from the manifest's ofd:DocInfo block."""

    doc_id: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    subject: Optional[str] = None
    creator: Optional[str] = None
    creator_version: Optional[str] = None
    creation_date: Optional[str] = None
    mod_date: Optional[str] = None
    custom_data: Dict[str, str] = Field(default_factory=dict)


class OutlineEntry(BaseModel):
    """One bookmark of the outline tree, with its click destination."""

    title: str = ""
    page_id: Optional[str] = None
    expanded: bool = True
    children: List["OutlineEntry"] = Field(default_factory=list)


class Page(BaseModel):
    """
    One page in declaration order.

    node is None when the page part was referenced but could not be read;
    the entry is kept so page order and count match ofd:Pages.
    """

    id: str = ""
    base_loc: str = ""
    node: Optional[Node] = None
    signatures: List[SignatureRecord] = Field(default_factory=list)
    annotations: Optional[Node] = None
    template_ids: List[str] = Field(default_factory=list)
    templates: List[Node] = Field(default_factory=list)


class Document(BaseModel):
    """Reconstituted OFD document."""

    manifest: Optional[Node] = None
    document_root: Optional[Node] = None
    doc_root_path: str = ""
    doc_info: DocInfo = Field(default_factory=DocInfo)

    pages: List[Page] = Field(default_factory=list)

    document_res: Optional[Node] = None
    public_res: Optional[Node] = None
    fonts: List[Node] = Field(default_factory=list)
    multimedia: List[Node] = Field(default_factory=list)
    draw_params: List[Node] = Field(default_factory=list)
    templates: Dict[str, Node] = Field(default_factory=dict)
    media_paths: Dict[str, str] = Field(default_factory=dict)

    signatures: Optional[Node] = None
    signature_list: List[SignatureRecord] = Field(default_factory=list)

    outlines: List[OutlineEntry] = Field(default_factory=list)
    annotations: Dict[str, Node] = Field(default_factory=dict)

    depth: int = 0

    _archive: Optional[Archive] = PrivateAttr(default=None)
    _media_cache: Dict[str, bytes] = PrivateAttr(default_factory=dict)
    _media_lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    @property
    def archive(self) -> Optional[Archive]:
        return self._archive

    def attach_archive(self, archive: Archive) -> None:
        self._archive = archive

    def page_by_id(self, page_id: str) -> Optional[Page]:
        for page in self.pages:
            if page.id == page_id:
                return page
        return None

    @property
    def signature_outcomes(self) -> Dict[str, VerificationOutcome]:
        return {record.id: record.outcome for record in self.signature_list}

    # ------------------------------------------------------------------
    # Media cache
    # ------------------------------------------------------------------

    def load_media(self, key: str) -> Optional[bytes]:
        """
        Return the bytes of a media resource, by resource ID or file name.

        Results are memoized under the upper-cased media name. The first
        successful read wins and is never re-fetched; misses are not cached.
        """
        name = self.media_paths.get(key, key)
        cache_key = name.upper()

        with self._media_lock:
            cached = self._media_cache.get(cache_key)
            if cached is not None:
                return cached

            if self._archive is None:
                return None

            try:
                data = self._archive.read_binary(name)
            except PartNotFound:
                logger.warning("Media resource %s not found in archive", key)
                return None

            self._media_cache[cache_key] = data
            return data

    def cached_media_names(self) -> List[str]:
        with self._media_lock:
            return list(self._media_cache)


OutlineEntry.model_rebuild()
SignatureRecord.model_rebuild()
Page.model_rebuild()
Document.model_rebuild()
