"""
Depth-first queries over Node trees.

All functions are pure, pre-order and first-match-wins, and accept a None
root (many OFD parts are legitimately absent) returning "not found".

Tag comparison uses local names so "ofd:Page" matches producers that write
the OFD namespace as default namespace. Occurrence entries of a group
(numeric tags) are never matched literally; they stand for their group's tag.
"""

from __future__ import annotations

from typing import List, Optional

from ofd_reader.app.schemas.node import Node
from ofd_reader.app.xml.multiplicity import local_name
from ofd_reader.app.xml.node_builder import ATTRIBUTE_PREFIX


def _effective_tag(node: Node, parent_tag: str) -> str:
    if node.is_index_entry:
        return parent_tag
    return node.tag_name


def _matches(effective_tag: str, wanted: str) -> bool:
    if not effective_tag or effective_tag.isdigit():
        return False
    return local_name(effective_tag) == local_name(wanted)


def find_first_by_tag(node: Optional[Node], tag: str) -> Optional[Node]:
    """Return node itself if it matches, else the first matching descendant."""
    if node is None:
        return None
    return _find_first(node, tag, "")


def _find_first(node: Node, tag: str, parent_tag: str) -> Optional[Node]:
    effective = _effective_tag(node, parent_tag)
    if _matches(effective, tag):
        return node
    for child in node.children:
        found = _find_first(child, tag, effective)
        if found is not None:
            return found
    return None


def find_all_by_tag(node: Optional[Node], tag: str) -> List[Node]:
    """
    Collect every match in document order.

    A matching group node contributes its occurrences rather than itself.
    Traversal continues below matches, so nested same-tag elements are
    collected too.
    """
    results: List[Node] = []
    if node is None:
        return results
    _collect(node, tag, "", results)
    return results


def _collect(node: Node, tag: str, parent_tag: str, results: List[Node]) -> None:
    effective = _effective_tag(node, parent_tag)
    if _matches(effective, tag) and not node.is_group:
        results.append(node)
    for child in node.children:
        _collect(child, tag, effective, results)


def find_attribute(node: Optional[Node], key: str) -> Optional[str]:
    """
    Own attributes first, then children in order.

    A node's own attribute always wins over a descendant's namesake.
    """
    if node is None:
        return None
    if key.startswith(ATTRIBUTE_PREFIX):
        key = key[len(ATTRIBUTE_PREFIX):]
    return _find_attribute(node, key)


def _find_attribute(node: Node, key: str) -> Optional[str]:
    if key in node.attributes:
        return node.attributes[key]
    for child in node.children:
        found = _find_attribute(child, key)
        if found is not None:
            return found
    return None


def find_by_id(node: Optional[Node], node_id: str) -> Optional[Node]:
    """First node whose own ID attribute equals node_id."""
    if node is None:
        return None
    if node.attributes.get("ID") == node_id:
        return node
    for child in node.children:
        found = find_by_id(child, node_id)
        if found is not None:
            return found
    return None


def occurrences(node: Optional[Node]) -> List[Node]:
    """Occurrence entries of a group node, or [node] for a single node."""
    if node is None:
        return []
    if node.is_group:
        return list(node.children)
    return [node]


def find_text(node: Optional[Node], tag: str) -> Optional[str]:
    """Stripped text of the first matching leaf, or None when empty/absent."""
    found = find_first_by_tag(node, tag)
    if found is None:
        return None
    for entry in occurrences(found):
        text = entry.text_value.strip()
        if text:
            return text
    return None
