"""
link_merger.py - Consolidates a duplicate group into its primary bookmark.
"""

import logging
from typing import Dict, Iterable, List, Optional

from errors import BookmarkNotFoundError, MergeError, RepositoryError
from models import Bookmark, MergeResult

logger = logging.getLogger(__name__)


def merge_tag_names(primary: Bookmark, duplicates: Iterable[Bookmark]) -> List[str]:
    """Case-sensitive union, primary's tags first."""
    merged: Dict[str, None] = dict.fromkeys(primary.tags)
    for duplicate in duplicates:
        merged.update(dict.fromkeys(duplicate.tags))
    return list(merged)


def pick_title(primary: Bookmark, duplicates: Iterable[Bookmark]) -> str:
    best = primary.title or ""
    for duplicate in duplicates:
        candidate = duplicate.title or ""
        if len(candidate) > len(best) and "untitled" not in candidate.lower():
            best = candidate
    return best


def pick_description(primary: Bookmark, duplicates: Iterable[Bookmark]) -> Optional[str]:
    if primary.description:
        return primary.description
    for duplicate in duplicates:
        if duplicate.description:
            return duplicate.description
    return primary.description


class LinkMerger:
    def __init__(self, repository):
        self.repository = repository

    def merge(
        self,
        primary_id: int,
        duplicate_ids: Iterable[int],
        merge_tags: bool = True,
        merge_metadata: bool = True,
    ) -> MergeResult:
        """
        Folds ``duplicate_ids`` into ``primary_id`` and deletes them.

        Duplicates that no longer exist are skipped. The primary is written
        once before anything is deleted; a deletion that fails afterwards is
        reported in ``MergeResult.failed_deletions`` and does not stop the
        remaining deletions.

        Raises:
            BookmarkNotFoundError: the primary does not exist.
            MergeError: none of the duplicates could be loaded.
            RepositoryError: the primary could not be read or updated.
        """
        primary = self.repository.get_by_id(primary_id)
        if primary is None:
            raise BookmarkNotFoundError(primary_id)

        result = MergeResult(primary=primary)
        duplicates: List[Bookmark] = []
        for duplicate_id in dict.fromkeys(duplicate_ids):
            if duplicate_id == primary_id:
                result.skipped_ids.append(duplicate_id)
                continue
            try:
                duplicate = self.repository.get_by_id(duplicate_id)
            except RepositoryError as exc:
                logger.warning("Could not load duplicate %s: %s", duplicate_id, exc)
                duplicate = None
            if duplicate is None:
                result.skipped_ids.append(duplicate_id)
                continue
            duplicates.append(duplicate)

        if not duplicates:
            raise MergeError("no valid duplicates found")

        update = {}
        if merge_tags:
            update["tags"] = merge_tag_names(primary, duplicates)
        if merge_metadata:
            update["title"] = pick_title(primary, duplicates)
            update["description"] = pick_description(primary, duplicates)

        if update:
            result.primary = self.repository.update_bookmark(primary_id, **update)

        for duplicate in duplicates:
            try:
                self.repository.delete_bookmark(duplicate.id)
            except (RepositoryError, BookmarkNotFoundError) as exc:
                logger.warning("Failed to delete duplicate %s: %s", duplicate.id, exc)
                result.failed_deletions[duplicate.id] = str(exc)
                result.warnings.append(f"failed to delete duplicate {duplicate.id}: {exc}")
                continue
            result.merged_ids.append(duplicate.id)

        logger.info(
            "Merged %d duplicate(s) into bookmark %s (%d failed deletions)",
            len(result.merged_ids),
            primary_id,
            len(result.failed_deletions),
        )
        return result
