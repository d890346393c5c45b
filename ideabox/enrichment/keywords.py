"""Keyword tag extraction.

Matches idea text against a fixed vocabulary by plain substring containment.
No tokenization, so it works the same for Chinese and English terms.
"""

from __future__ import annotations

from typing import Iterable


def extract_keywords(text: str | None, vocabulary: Iterable[str]) -> tuple[str, ...]:
    """Return the vocabulary terms that occur in text.

    Matching is case-insensitive. Terms come back in vocabulary order,
    each at most once, spelled as in the vocabulary.
    """
    if not text:
        return ()

    content = text.lower()
    matched: list[str] = []
    for term in vocabulary:
        if term and term not in matched and term.lower() in content:
            matched.append(term)
    return tuple(matched)
