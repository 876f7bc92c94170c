"""
Uniform node tree for OFD XML parts.

Every XML part is folded into the same shape regardless of its schema:
a tag, an ordered attribute map, an ordered list of children, and a raw
text value. Downstream readers navigate this tree exclusively through the
query helpers in ofd_reader.app.xml.query.
"""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class Node(BaseModel):
    """
    One element of a parsed XML part.

    A node is either a leaf value (non-empty text_value, no children) or a
    container (children, empty text_value). Group nodes produced for
    multi-valued tags carry the tag name and hold one child per occurrence,
    each tagged with its positional index ("0", "1", ...).
    """

    tag_name: str = ""
    attributes: Dict[str, str] = Field(default_factory=dict)
    children: List["Node"] = Field(default_factory=list)
    text_value: str = ""
    source_part: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def is_index_entry(self) -> bool:
        return self.tag_name.isdigit()

    @property
    def is_group(self) -> bool:
        """True when every child is a positional occurrence entry."""
        return bool(self.children) and all(
            child.is_index_entry for child in self.children
        )

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def get(self, key: str, default: str | None = None) -> str | None:
        """Own attribute lookup, no descent."""
        return self.attributes.get(key, default)


Node.model_rebuild()
