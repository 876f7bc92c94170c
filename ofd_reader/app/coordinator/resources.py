from __future__ import annotations

from typing import Optional, Protocol

from ofd_reader.app.schemas.node import Node


class FontLoader(Protocol):
    """
    Receives embedded font resources discovered during assembly.

    Implementations must be:
    - synchronous and side-effect only (the Document is not modified)
    - fail-safe (a font that cannot be loaded must not abort assembly)
    """

    def load_font(
        self,
        font: Node,
        font_file: Optional[str],
        data: Optional[bytes],
    ) -> None:
        ...


class NullFontLoader:
    """
    A safe no-op loader.

    Used when:
    - font loading is disabled
    - the host application does not render text
    - tests that do not care about fonts
    """

    def load_font(
        self,
        font: Node,
        font_file: Optional[str],
        data: Optional[bytes],
    ) -> None:
        return
