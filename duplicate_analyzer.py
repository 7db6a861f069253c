"""
duplicate_analyzer.py - Finds bookmarks that point at the same resource.

Two signals are combined into a confidence score: URL similarity (weight 0.7)
and title similarity (weight 0.3). Either signal on its own is enough to call
a pair a match; title-only matches simply carry a low confidence. Untitled
bookmarks are scored on their URL alone.

A full scan compares every pair of bookmarks, so its cost grows with the
square of the corpus size. That is fine for personal collections of a few
thousand links; larger corpora would need a bucket index on the canonical URL.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from database import load_corpus
from errors import MalformedURLError
from models import Bookmark, DuplicateCheckResult, DuplicateGroup, NormalizedURL
from url_normalizer import URLNormalizer, url_similarity

logger = logging.getLogger(__name__)

URL_WEIGHT = 0.7
TITLE_WEIGHT = 0.3
MIN_CONTAINED_TITLE_LENGTH = 10


def title_similarity(first: Optional[str], second: Optional[str]) -> float:
    """1.0 for equal titles, 0.8 when one long title contains the other."""
    t1 = (first or "").strip().lower()
    t2 = (second or "").strip().lower()
    if not t1 or not t2:
        return 0.0

    if t1 == t2:
        return 1.0

    if len(t1) > MIN_CONTAINED_TITLE_LENGTH and len(t2) > MIN_CONTAINED_TITLE_LENGTH:
        if t1 in t2 or t2 in t1:
            return 0.8

    return 0.0


def format_age(created_at: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    seconds = max(0.0, (now - created_at).total_seconds())
    if seconds < 3600:
        return f"{int(seconds // 60)} minutes"
    if seconds < 86400:
        return f"{int(seconds // 3600)} hours"
    return f"{int(seconds // 86400)} days"


class DuplicateAnalyzer:
    def __init__(self, repository, normalizer: Optional[URLNormalizer] = None):
        self.repository = repository
        self.normalizer = normalizer or URLNormalizer()
        self._cache: Dict[str, Optional[NormalizedURL]] = {}

    def _normalized(self, url: str) -> Optional[NormalizedURL]:
        """Normalizes once per URL and run; malformed URLs map to None."""
        if url not in self._cache:
            try:
                self._cache[url] = self.normalizer.normalize(url)
            except MalformedURLError:
                logger.debug("Ignoring malformed URL %s during duplicate analysis", url)
                self._cache[url] = None
        return self._cache[url]

    def _score(self, url: str, title: str, other: Bookmark) -> Tuple[float, float, float]:
        """
        Returns (combined, url similarity, title similarity).

        The title only counts when both bookmarks have one; otherwise the URL
        similarity is the whole score.
        """
        first = self._normalized(url)
        second = self._normalized(other.url)
        url_score = url_similarity(first, second) if first and second else 0.0
        if not (title or "").strip() or not (other.title or "").strip():
            return url_score, url_score, 0.0
        title_score = title_similarity(title, other.title)
        return URL_WEIGHT * url_score + TITLE_WEIGHT * title_score, url_score, title_score

    def _reason(self, primary: Bookmark, duplicate: Bookmark) -> str:
        _, url_score, title_score = self._score(primary.url, primary.title, duplicate)
        if url_score > 0:
            if url_score == 1.0:
                return "Identical URLs (after normalization)"
            first = self._normalized(primary.url)
            second = self._normalized(duplicate.url)
            if first.is_short_url or second.is_short_url:
                return "Short URL pointing to same destination"
            return "Similar URLs (different protocols/www/trailing slash)"
        if title_score > 0:
            return "Similar titles"
        return "Potential duplicate"

    def find_all_duplicates(self) -> List[DuplicateGroup]:
        """
        Groups the whole corpus.

        Bookmarks are visited in id order; every match is claimed by the first
        bookmark that finds it, so groups never overlap within one run.

        Raises:
            RepositoryError: when the corpus cannot be loaded.
        """
        bookmarks = sorted(load_corpus(self.repository), key=lambda bookmark: bookmark.id)
        self._cache = {}
        logger.info("Scanning %d bookmarks for duplicates", len(bookmarks))

        groups: List[DuplicateGroup] = []
        processed = set()

        for bookmark in bookmarks:
            if bookmark.id in processed:
                continue

            duplicates: List[Bookmark] = []
            scores: List[float] = []
            for other in bookmarks:
                if other.id == bookmark.id or other.id in processed:
                    continue
                combined, _, _ = self._score(bookmark.url, bookmark.title, other)
                if combined > 0:
                    duplicates.append(other)
                    scores.append(combined)
                    processed.add(other.id)

            if duplicates:
                processed.add(bookmark.id)
                groups.append(
                    DuplicateGroup(
                        primary=bookmark,
                        duplicates=duplicates,
                        confidence=round(sum(scores) / len(scores), 4),
                        reason=self._reason(bookmark, duplicates[0]),
                    )
                )

        logger.info("Found %d duplicate groups", len(groups))
        return groups

    def check_for_duplicates(self, url: str, title: str = "") -> DuplicateCheckResult:
        """
        Checks a candidate bookmark against the corpus before it is saved.

        The exact-duplicate flag comes from a literal URL lookup; similar
        bookmarks come from normalized scoring, so a URL that only differs in
        its query string can be similar without being an exact duplicate.

        Raises:
            MalformedURLError: when ``url`` cannot be parsed.
            RepositoryError: when the corpus cannot be read.
        """
        self._cache = {}
        analysis = self.normalizer.normalize(url)
        self._cache[url] = analysis
        result = DuplicateCheckResult(url_analysis=analysis)

        exact = self.repository.get_by_url(url)
        if exact is not None:
            result.has_exact_duplicate = True
            result.exact_duplicate = exact
            result.confidence = 1.0
            result.recommendations.append("This URL already exists in your bookmarks")
            return result

        scored: List[Tuple[float, Bookmark]] = []
        for bookmark in load_corpus(self.repository):
            combined, _, _ = self._score(url, title, bookmark)
            if combined > 0:
                scored.append((combined, bookmark))
        scored.sort(key=lambda item: (-item[0], item[1].id))

        if analysis.is_short_url and analysis.expanded_url:
            result.recommendations.append(f"This short URL expands to: {analysis.expanded_url}")

        if scored:
            result.has_similar_bookmarks = True
            result.similar_bookmarks = [bookmark for _, bookmark in scored]
            result.confidence = round(scored[0][0], 4)
            result.recommendations.append(
                f"Found {len(scored)} similar bookmark(s) that might be duplicates"
            )
            for _, bookmark in scored:
                result.recommendations.append(
                    f'Similar: "{bookmark.title}" (created {format_age(bookmark.created_at)} ago)'
                )

        return result
