from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from errors import BookmarkNotFoundError, RepositoryError
from models import Bookmark


class FakeRepository:
    """In-memory stand-in for BookmarkRepository with switchable failures."""

    def __init__(self, bookmarks=()):
        self.bookmarks = {bookmark.id: bookmark for bookmark in bookmarks}
        self.updates = []
        self.deleted = []
        self.list_calls = []
        self.fail_list = False
        self.fail_count = False
        self.fail_get = set()
        self.fail_delete = set()

    def _copy(self, bookmark):
        return replace(bookmark, tags=list(bookmark.tags))

    def list_bookmarks(self, page=1, limit=100, filters=None):
        self.list_calls.append((page, limit))
        if self.fail_list:
            raise RepositoryError("connection refused")
        ordered = sorted(self.bookmarks.values(), key=lambda bookmark: bookmark.id)
        start = (page - 1) * limit
        return [self._copy(bookmark) for bookmark in ordered[start:start + limit]]

    def count_bookmarks(self):
        if self.fail_count:
            raise RepositoryError("connection refused")
        return len(self.bookmarks)

    def get_by_id(self, bookmark_id):
        if bookmark_id in self.fail_get:
            raise RepositoryError("connection refused")
        bookmark = self.bookmarks.get(bookmark_id)
        return self._copy(bookmark) if bookmark else None

    def get_by_url(self, url):
        for bookmark in sorted(self.bookmarks.values(), key=lambda bookmark: bookmark.id):
            if bookmark.url == url:
                return self._copy(bookmark)
        return None

    def update_bookmark(self, bookmark_id, *, title=None, description=None, tags=None):
        if bookmark_id not in self.bookmarks:
            raise BookmarkNotFoundError(bookmark_id)
        self.updates.append((bookmark_id, {"title": title, "description": description, "tags": tags}))
        bookmark = self.bookmarks[bookmark_id]
        if title is not None:
            bookmark.title = title
        if description is not None:
            bookmark.description = description
        if tags is not None:
            bookmark.tags = list(tags)
        return self._copy(bookmark)

    def delete_bookmark(self, bookmark_id):
        if bookmark_id in self.fail_delete:
            raise RepositoryError("delete failed")
        if bookmark_id not in self.bookmarks:
            raise BookmarkNotFoundError(bookmark_id)
        del self.bookmarks[bookmark_id]
        self.deleted.append(bookmark_id)


def make_bookmark(bookmark_id, url, title="", tags=None, description=None, days_old=0):
    created_at = datetime.now(timezone.utc) - timedelta(days=days_old)
    return Bookmark(
        id=bookmark_id,
        url=url,
        title=title,
        description=description,
        tags=list(tags or []),
        created_at=created_at,
    )


@pytest.fixture
def abc_repository():
    return FakeRepository(
        [
            make_bookmark(1, "http://a.com"),
            make_bookmark(2, "https://a.com/"),
            make_bookmark(3, "http://b.com"),
        ]
    )
