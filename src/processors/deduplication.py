"""
Duplicate detection for incoming news items.

Two strategies, applied in order against a window of stored news:
1. Exact match on the content hash of the normalized title + description
2. Fuzzy match (token sort ratio) on the lowercased text
"""

from dataclasses import dataclass
from typing import Iterable, Optional
import hashlib

from rapidfuzz import fuzz

SIMILARITY_THRESHOLD = 85


@dataclass
class DeduplicationResult:
    content_hash: str
    is_duplicate: bool
    duplicate_of_id: Optional[int] = None
    similarity_score: Optional[int] = None


def _comparison_text(title: str, description: Optional[str]) -> str:
    return f"{title} {description or ''}".lower()


def generate_content_hash(title: str, description: Optional[str] = None) -> str:
    """
    SHA-256 hex digest of the normalized title and description.

    Case and leading/trailing whitespace are ignored; punctuation and inner
    spacing are significant.
    """
    normalized = _comparison_text(title, description).strip()
    return hashlib.sha256(normalized.encode('utf-8')).hexdigest()


def calculate_similarity(text_a: str, text_b: str) -> int:
    """Token sort similarity between two texts, rounded to 0-100."""
    return int(round(fuzz.token_sort_ratio(text_a, text_b)))


def check_duplicate(title: str, description: Optional[str], existing: Iterable) -> DeduplicationResult:
    """
    Check a news item against existing records.

    Args:
        title: Item title
        description: Item description (may be None)
        existing: Records with id, title, description and content_hash attributes

    Returns:
        DeduplicationResult. Exact matches score 100; fuzzy matches are only
        reported when the best score reaches SIMILARITY_THRESHOLD.
    """
    existing = list(existing)
    content_hash = generate_content_hash(title, description)

    for record in existing:
        if record.content_hash == content_hash:
            return DeduplicationResult(content_hash, True, record.id, 100)

    text = _comparison_text(title, description)
    best_id, best_score = None, -1
    for record in existing:
        score = calculate_similarity(text, _comparison_text(record.title, record.description))
        if score > best_score:
            best_id, best_score = record.id, score

    if best_score >= SIMILARITY_THRESHOLD:
        return DeduplicationResult(content_hash, True, best_id, best_score)

    return DeduplicationResult(content_hash, False)


def classify_candidate(candidate, existing: Iterable) -> DeduplicationResult:
    """check_duplicate for a CandidateItem."""
    return check_duplicate(candidate.title, candidate.description, existing)
