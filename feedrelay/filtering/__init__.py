"""
FeedRelay Filtering Module
==========================

Publication decisions for normalized items.
"""

from .oracle import AllowAllOracle, CleanlinessOracle, TermListOracle, build_candidate_text
from .term_list import fetch_term_list

__all__ = [
    "AllowAllOracle",
    "CleanlinessOracle",
    "TermListOracle",
    "build_candidate_text",
    "fetch_term_list",
]
