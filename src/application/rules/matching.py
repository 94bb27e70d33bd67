"""Free-text matching used by every checker.

Two strings match when, compared case-insensitively, either one contains
the other. This mirrors how allergies, medications and rule patterns have
always been compared in the dashboard; it is known to produce false
positives on partial word overlaps (e.g. "sulfa" vs "sulfate").
"""

from typing import Iterable, List, Optional


def normalize_term(value: Optional[str]) -> str:
    """Lowercase and collapse whitespace."""
    if not value:
        return ""
    return " ".join(value.lower().split())


def terms_overlap(left: Optional[str], right: Optional[str]) -> bool:
    """Bidirectional substring containment; blank terms never match."""
    a = normalize_term(left)
    b = normalize_term(right)
    if not a or not b:
        return False
    return a in b or b in a


def matches_any(pattern: str, terms: Iterable[Optional[str]]) -> bool:
    """True if the pattern overlaps any of the given terms."""
    return any(terms_overlap(pattern, term) for term in terms)


def matching_terms(pattern: str, terms: Iterable[Optional[str]]) -> List[str]:
    """Terms the pattern overlaps, in input order."""
    return [term for term in terms if term and terms_overlap(pattern, term)]
