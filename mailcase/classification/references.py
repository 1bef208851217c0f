"""Case number and court/contract reference extraction from message text."""

import re
from typing import Iterable

# Court file numbers ("1234/45/2025"), "Dosar nr. 1234/45/2025", "Nr. 567/2024",
# contract references ("CTR-2025-001") and generic references ("REF-12345").
_REFERENCE_PATTERNS = [
    re.compile(r"\bdosar\s+nr\.?\s*([\w/.-]+\d)", re.IGNORECASE),
    re.compile(r"\bnr\.\s*(\d[\w/.-]*\d)", re.IGNORECASE),
    re.compile(r"(?<![\w/])(\d{1,6}/\d{1,4}/\d{4})(?![\w/])"),
    re.compile(r"\b(CTR-\d{4}-\d{3,6})\b", re.IGNORECASE),
    re.compile(r"\b(REF-\d{4,10})\b", re.IGNORECASE),
]

_SPACES = re.compile(r"\s+")


def normalize_reference(value: str) -> str:
    """Lower-case, whitespace removed, trailing punctuation dropped."""
    return _SPACES.sub("", value or "").lower().rstrip(".,;:")


def extract_references(text: str) -> set[str]:
    """Normalized reference numbers found in free text."""
    found: set[str] = set()
    for pattern in _REFERENCE_PATTERNS:
        for match in pattern.finditer(text or ""):
            normalized = normalize_reference(match.group(1))
            if normalized:
                found.add(normalized)
    return found


def case_number_pattern(case_number: str) -> re.Pattern:
    """Exact-token matcher: "CASE-2024-001" does not match inside "CASE-2024-0011"."""
    return re.compile(rf"(?<![\w-]){re.escape(case_number.strip())}(?![\w-])", re.IGNORECASE)


def mentions_case_number(text: str, case_number: str) -> bool:
    if not case_number or not case_number.strip():
        return False
    return case_number_pattern(case_number).search(text or "") is not None


def matching_references(found: set[str], case_references: Iterable[str]) -> list[str]:
    """Case references (original spelling) present in the normalized `found` set."""
    return sorted(ref for ref in case_references if normalize_reference(ref) in found)


def mentions_reference(text: str, reference: str) -> bool:
    """True when the text carries the reference, either as an extracted number or verbatim."""
    normalized = normalize_reference(reference)
    if not normalized:
        return False
    if normalized in extract_references(text):
        return True
    return normalized in _SPACES.sub("", text or "").lower()
