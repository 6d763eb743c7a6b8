"""
Cleanliness Oracles
===================

An oracle answers one question for a candidate text: may it be published?
The publication pipeline builds one candidate per item from every
user-visible field and asks once.
"""

import re
from typing import Iterable, List, Optional, Protocol

from ..database.models import NormalizedPost


class CleanlinessOracle(Protocol):
    """Boolean publication decision for a candidate text."""

    def is_clean(self, candidate_text: str) -> bool:
        ...


class AllowAllOracle:
    """Used when filtering is disabled."""

    def is_clean(self, candidate_text: str) -> bool:
        return True


class TermListOracle:
    """Rejects text containing any listed term as a whole word, ignoring case."""

    def __init__(self, terms: Iterable[str]):
        cleaned = []
        for term in terms:
            if isinstance(term, str) and term.strip():
                cleaned.append(term.strip().lower())
        self.terms: List[str] = sorted(set(cleaned))

        self._pattern: Optional[re.Pattern] = None
        if self.terms:
            alternatives = "|".join(re.escape(t) for t in sorted(self.terms, key=len, reverse=True))
            self._pattern = re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)

    def find_terms(self, candidate_text: str) -> List[str]:
        """Listed terms present in the text."""
        if not candidate_text or self._pattern is None:
            return []
        return sorted({m.group(0).lower() for m in self._pattern.finditer(candidate_text)})

    def is_clean(self, candidate_text: str) -> bool:
        if not candidate_text or self._pattern is None:
            return True
        return self._pattern.search(candidate_text) is None

    def __len__(self) -> int:
        return len(self.terms)


def build_candidate_text(post: NormalizedPost) -> str:
    """Combine every user-visible field of a post into one candidate."""
    parts = [post.title, post.description, post.content]
    if post.is_slideshow:
        for slide in post.images:
            parts.extend([slide.title, slide.text, slide.description, slide.attribution])
    return "\n".join(p for p in parts if p)
