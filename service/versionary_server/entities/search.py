"""Search filter over entity labels."""

from __future__ import annotations


class ContainsFilter:
    """Case-insensitive term filter for labels such as user names.

    Terms are the whitespace-separated words of the search string. With
    any_match, a label matches if it contains at least one term; otherwise
    it must contain every term.
    """

    def __init__(self, contains: str, any_match: bool = False) -> None:
        terms = contains.lower().split()
        if not terms:
            raise ValueError("search terms are required")
        self.terms = terms
        self.any_match = any_match

    def __call__(self, label: str) -> bool:
        text = label.lower()
        if self.any_match:
            return any(term in text for term in self.terms)
        return all(term in text for term in self.terms)

    def __repr__(self) -> str:
        return f"ContainsFilter(terms={self.terms!r}, any_match={self.any_match})"
