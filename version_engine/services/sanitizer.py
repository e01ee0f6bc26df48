"""Strip unsafe markup from free-text fields before they are stored."""
from abc import ABC, abstractmethod

import bleach

# Formatting kept in body / excerpt; everything else is stripped.
RICH_TEXT_TAGS = frozenset(
    {
        "a", "b", "blockquote", "br", "code", "em", "h1", "h2", "h3", "h4", "h5", "h6",
        "hr", "i", "img", "li", "ol", "p", "pre", "span", "strong", "table", "tbody",
        "td", "th", "thead", "tr", "u", "ul",
    }
)
RICH_TEXT_ATTRIBUTES = {
    "a": ["href", "title", "rel", "target"],
    "img": ["src", "alt", "title", "width", "height"],
    "span": ["class"],
    "code": ["class"],
}
RICH_TEXT_PROTOCOLS = frozenset({"http", "https", "mailto"})


class Sanitizer(ABC):
    @abstractmethod
    def clean(self, text: str, rich: bool = False) -> str:
        """rich=False strips all markup (titles, summaries); rich=True keeps safe formatting."""


class BleachSanitizer(Sanitizer):
    def clean(self, text: str, rich: bool = False) -> str:
        if not text:
            return text
        if rich:
            return bleach.clean(
                text,
                tags=RICH_TEXT_TAGS,
                attributes=RICH_TEXT_ATTRIBUTES,
                protocols=RICH_TEXT_PROTOCOLS,
                strip=True,
            )
        return bleach.clean(text, tags=set(), attributes={}, strip=True).strip()
