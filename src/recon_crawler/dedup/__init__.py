"""Exact, structural and DOM-level deduplication."""

from recon_crawler.dedup.dom_embedding import DomEmbeddingIndex, SimilarityMatch, compute_embedding, cosine_similarity
from recon_crawler.dedup.pattern_registry import PatternRegistry, StructuralPattern, structural_pattern
from recon_crawler.dedup.stack import Decision, DecisionKind, DedupStack
from recon_crawler.dedup.visited_set import VisitedSet


__all__ = [
    "Decision",
    "DecisionKind",
    "DedupStack",
    "DomEmbeddingIndex",
    "PatternRegistry",
    "SimilarityMatch",
    "StructuralPattern",
    "VisitedSet",
    "compute_embedding",
    "cosine_similarity",
    "structural_pattern",
]
