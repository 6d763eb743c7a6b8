"""
FeedRelay Processing Module
===========================

Body normalization, publication decisions and feed window assembly.
"""

from .feed_window import FeedWindowAssembler
from .pipeline import PublicationPipeline, resolve_processing_limit
from .segmenter import SegmentedBody, StructuralSegmenter

__all__ = [
    "FeedWindowAssembler",
    "PublicationPipeline",
    "SegmentedBody",
    "StructuralSegmenter",
    "resolve_processing_limit",
]
