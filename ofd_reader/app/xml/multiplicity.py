"""
Multi-valued tag table.

Tags listed here may legitimately repeat under their parent. The node
builder always groups their occurrences, even when a particular document
contains exactly one, so callers can iterate them uniformly.

This is schema knowledge, not something inferred at runtime. The table is
versioned with the format revision it was written against; add entries
here when a new revision introduces repeatable elements.
"""

from __future__ import annotations

from typing import FrozenSet

FORMAT_REVISION = "GB/T 33190-2016"

MULTI_VALUED_TAGS: FrozenSet[str] = frozenset(
    {
        # OFD.xml
        "ofd:DocBody",
        "ofd:DocInfo",
        "ofd:CustomData",
        # Document.xml
        "ofd:Page",
        "ofd:PageArea",
        "ofd:CommonData",
        "ofd:MaxSignId",
        "ofd:TemplatePage",
        "ofd:OutlineElem",
        "ofd:Action",
        # Page content
        "ofd:Layer",
        "ofd:PathObject",
        "ofd:TextObject",
        "ofd:ImageObject",
        "ofd:CompositeObject",
        "ofd:PageBlock",
        "ofd:Template",
        "ofd:Clip",
        "ofd:AxialShd",
        "ofd:RadialShd",
        "ofd:Segment",
        # Resources
        "ofd:Font",
        "ofd:MultiMedia",
        "ofd:DrawParam",
        # Signatures and annotations
        "ofd:Signature",
        "ofd:Reference",
        "ofd:StampAnnot",
        "ofd:Annot",
        "ofd:Parameter",
    }
)


def local_name(tag: str) -> str:
    """Drop a namespace prefix: "ofd:Page" -> "Page"."""
    return tag.rsplit(":", 1)[-1]


_MULTI_VALUED_LOCAL_NAMES: FrozenSet[str] = frozenset(
    local_name(tag) for tag in MULTI_VALUED_TAGS
)


def is_multi_valued(tag: str) -> bool:
    """Prefix-insensitive membership test."""
    return local_name(tag) in _MULTI_VALUED_LOCAL_NAMES
