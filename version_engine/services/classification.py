"""PII heuristic for audit entries: restricted when the payload looks like it carries personal data."""
import re
from typing import Optional

from version_engine.domain import DataClassification

PII_PATTERNS = (
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),  # SSN / tax id
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),  # e-mail
    re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"),  # payment card
)


def contains_pii(text: str) -> bool:
    return any(pattern.search(text) for pattern in PII_PATTERNS)


def classify_content(*texts: Optional[str]) -> DataClassification:
    """restricted if any PII-shaped pattern matches the concatenated text, internal otherwise."""
    joined = " ".join(t for t in texts if t)
    if joined and contains_pii(joined):
        return DataClassification.RESTRICTED
    return DataClassification.INTERNAL
