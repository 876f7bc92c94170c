"""
XML part → Node tree folding.

Each OFD XML part is parsed with lxml and folded into the uniform Node
shape. Sibling elements sharing a tag are grouped, in order of first
appearance, under one group node whose children are the occurrences tagged
"0", "1", ... . Tags in the multi-valued table are grouped even when they
occur once, so a one-occurrence document and a three-occurrence document
produce the same shape.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Union

from lxml import etree

from ofd_reader.app.errors import MalformedPart
from ofd_reader.app.schemas.node import Node
from ofd_reader.app.xml.multiplicity import is_multi_valued

logger = logging.getLogger(__name__)

# Entity expansion and network access are disabled: parts come from
# untrusted archives.
SECURE_PARSER = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    remove_comments=True,
    remove_pis=True,
)

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)

# Attribute-key prefix of the JSON attribute-map convention; accepted on input
# and never stored.
ATTRIBUTE_PREFIX = "@_"


def _qualified_name(tag: str, nsmap: Dict[str | None, str]) -> str:
    """Clark notation {uri}local → prefix:local using the element's nsmap."""
    if not tag.startswith("{"):
        return tag
    uri, local = tag[1:].split("}", 1)
    for prefix, mapped_uri in nsmap.items():
        if mapped_uri == uri and prefix:
            return f"{prefix}:{local}"
    return local


def _fold(element: etree._Element, source_part: str, tag_name: str) -> Node:
    nsmap = element.nsmap
    attributes = {
        _qualified_name(key, nsmap): value
        for key, value in element.attrib.items()
    }

    child_elements = [c for c in element if isinstance(c.tag, str)]
    if not child_elements:
        return Node(
            tag_name=tag_name,
            attributes=attributes,
            text_value=element.text or "",
            source_part=source_part,
        )

    grouped: Dict[str, List[etree._Element]] = {}
    for child in child_elements:
        grouped.setdefault(_qualified_name(child.tag, child.nsmap), []).append(
            child
        )

    children: List[Node] = []
    for name, members in grouped.items():
        if len(members) == 1 and not is_multi_valued(name):
            children.append(_fold(members[0], source_part, name))
            continue

        entries = [
            _fold(member, source_part, str(index))
            for index, member in enumerate(members)
        ]
        children.append(
            Node(tag_name=name, children=entries, source_part=source_part)
        )

    return Node(
        tag_name=tag_name,
        attributes=attributes,
        children=children,
        source_part=source_part,
    )


def parse_part(xml: Union[str, bytes], source_part: str) -> Node:
    """
    Parse one XML part into a Node rooted at its document element.

    Raises MalformedPart when the XML is not well-formed. The error is
    scoped to this part; whether it is fatal is the assembler's decision.
    """
    if isinstance(xml, str):
        # lxml rejects str input carrying an encoding declaration.
        payload = _XML_DECLARATION.sub("", xml, count=1).encode("utf-8")
    else:
        payload = xml

    if not payload.strip():
        raise MalformedPart(source_part, "empty part")

    try:
        root = etree.fromstring(payload, SECURE_PARSER)
    except etree.XMLSyntaxError as exc:
        logger.warning("XML parse failure in %s: %s", source_part, exc)
        raise MalformedPart(source_part, str(exc)) from exc

    return _fold(root, source_part, _qualified_name(root.tag, root.nsmap))
