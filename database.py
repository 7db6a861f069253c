"""
database.py - PostgreSQL bookmark repository.

The maintenance engine only needs a handful of row-level operations (list,
lookup by id or URL, update, delete, count); this module provides them on top
of psycopg2. Every call is atomic for a single row; multi-row consistency is
left to the callers.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor

from config import Config
from errors import BookmarkNotFoundError, RepositoryError
from models import Bookmark

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000

_BOOKMARK_COLUMNS = """
    b.id,
    b.url,
    b.title,
    b.description,
    b.is_favorite,
    b.created_at,
    b.updated_at,
    ARRAY(
        SELECT t.name
        FROM bookmark_tags bt
        JOIN tags t ON t.id = bt.tag_id
        WHERE bt.bookmark_id = b.id
        ORDER BY t.name
    ) AS tags
"""


def validate_pagination(page: int, limit: int) -> None:
    if not isinstance(page, int) or page < 1:
        raise ValueError(f"page must be a positive integer, got {page!r}")
    if not isinstance(limit, int) or not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}, got {limit!r}")


class BookmarkRepository:
    """Row-level access to the bookmarks, tags and bookmark_tags tables."""

    def __init__(self, database_url: str):
        self.database_url = database_url

    @classmethod
    def from_config(cls, config: Config) -> "BookmarkRepository":
        return cls(config.database_url)

    @contextmanager
    def _connection(self):
        """Context manager that yields a PostgreSQL connection."""
        try:
            conn = psycopg2.connect(self.database_url)
        except psycopg2.Error as exc:
            logger.exception("Could not connect to the bookmark database")
            raise RepositoryError(f"Database connection failed: {exc}") from exc
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _cursor(self, *, commit: bool = False, dict_cursor: bool = False):
        """
        Context manager that yields a cursor and automatically handles commits/rollbacks.
        """
        cursor_factory = RealDictCursor if dict_cursor else None
        with self._connection() as conn:
            cur = conn.cursor(cursor_factory=cursor_factory)
            try:
                yield cur
                if commit:
                    conn.commit()
            except psycopg2.Error as exc:
                conn.rollback()
                logger.exception("Database error")
                raise RepositoryError(str(exc)) from exc
            except Exception:
                conn.rollback()
                raise
            finally:
                cur.close()

    def create_tables(self) -> None:
        """Creates the bookmark schema when it does not exist yet."""
        with self._cursor(commit=True) as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS bookmarks (
                    id          SERIAL PRIMARY KEY,
                    url         TEXT NOT NULL CHECK (url <> ''),
                    title       TEXT NOT NULL DEFAULT '',
                    description TEXT,
                    favicon_url TEXT,
                    is_favorite BOOLEAN NOT NULL DEFAULT FALSE,
                    created_at  TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP,
                    updated_at  TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tags (
                    id   SERIAL PRIMARY KEY,
                    name VARCHAR(255) NOT NULL UNIQUE
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS bookmark_tags (
                    bookmark_id INT REFERENCES bookmarks(id) ON DELETE CASCADE,
                    tag_id      INT REFERENCES tags(id) ON DELETE CASCADE,
                    PRIMARY KEY (bookmark_id, tag_id)
                );
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_bookmarks_url ON bookmarks (url);")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_bookmarks_created_at ON bookmarks (created_at DESC);"
            )

    def list_bookmarks(
        self,
        page: int = 1,
        limit: int = 100,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[Bookmark]:
        """
        Returns one page of bookmarks ordered by id.

        Supported filters: ``search`` (title/url/description substring),
        ``tag`` (tag name) and ``favorites_only``.
        """
        validate_pagination(page, limit)
        filters = filters or {}

        conditions: List[str] = []
        values: List[Any] = []

        search = filters.get("search")
        if search:
            pattern = f"%{search}%"
            conditions.append("(b.title ILIKE %s OR b.url ILIKE %s OR b.description ILIKE %s)")
            values.extend([pattern, pattern, pattern])

        tag = filters.get("tag")
        if tag:
            conditions.append(
                """
                EXISTS (
                    SELECT 1 FROM bookmark_tags bt JOIN tags t ON t.id = bt.tag_id
                    WHERE bt.bookmark_id = b.id AND t.name = %s
                )
                """
            )
            values.append(tag)

        if filters.get("favorites_only"):
            conditions.append("b.is_favorite")

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        values.extend([limit, (page - 1) * limit])

        with self._cursor(dict_cursor=True) as cur:
            cur.execute(
                f"""
                SELECT {_BOOKMARK_COLUMNS}
                FROM bookmarks b
                {where}
                ORDER BY b.id
                LIMIT %s OFFSET %s;
                """,
                values,
            )
            return [Bookmark.from_row(row) for row in cur.fetchall()]

    def count_bookmarks(self) -> int:
        with self._cursor(dict_cursor=True) as cur:
            cur.execute("SELECT COUNT(*) AS total FROM bookmarks;")
            row = cur.fetchone()
            return row["total"] if row else 0

    def get_by_id(self, bookmark_id: int) -> Optional[Bookmark]:
        """Fetches a single bookmark by primary key."""
        with self._cursor(dict_cursor=True) as cur:
            cur.execute(
                f"SELECT {_BOOKMARK_COLUMNS} FROM bookmarks b WHERE b.id = %s;",
                (bookmark_id,),
            )
            row = cur.fetchone()
            return Bookmark.from_row(row) if row else None

    def get_by_url(self, url: str) -> Optional[Bookmark]:
        """Exact, literal URL lookup (no normalization)."""
        with self._cursor(dict_cursor=True) as cur:
            cur.execute(
                f"SELECT {_BOOKMARK_COLUMNS} FROM bookmarks b WHERE b.url = %s ORDER BY b.id LIMIT 1;",
                (url,),
            )
            row = cur.fetchone()
            return Bookmark.from_row(row) if row else None

    def update_bookmark(
        self,
        bookmark_id: int,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Bookmark:
        """Updates selected columns and, when given, replaces the tag set."""
        assignments: List[str] = []
        values: List[Any] = []

        def _add(column: str, value: Optional[Any]) -> None:
            if value is not None:
                assignments.append(f"{column} = %s")
                values.append(value)

        _add("title", title)
        _add("description", description)
        assignments.append("updated_at = CURRENT_TIMESTAMP")
        values.append(bookmark_id)

        with self._cursor(commit=True) as cur:
            cur.execute(
                f"UPDATE bookmarks SET {', '.join(assignments)} WHERE id = %s;",
                values,
            )
            if cur.rowcount == 0:
                raise BookmarkNotFoundError(bookmark_id)

            if tags is not None:
                cur.execute("DELETE FROM bookmark_tags WHERE bookmark_id = %s;", (bookmark_id,))
                for name in dict.fromkeys(tag for tag in tags if tag):
                    cur.execute(
                        """
                        INSERT INTO tags (name) VALUES (%s)
                        ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
                        RETURNING id;
                        """,
                        (name,),
                    )
                    tag_id = cur.fetchone()[0]
                    cur.execute(
                        """
                        INSERT INTO bookmark_tags (bookmark_id, tag_id)
                        VALUES (%s, %s)
                        ON CONFLICT DO NOTHING;
                        """,
                        (bookmark_id, tag_id),
                    )

        updated = self.get_by_id(bookmark_id)
        if updated is None:
            raise BookmarkNotFoundError(bookmark_id)
        return updated

    def delete_bookmark(self, bookmark_id: int) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute("DELETE FROM bookmarks WHERE id = %s;", (bookmark_id,))
            if cur.rowcount == 0:
                raise BookmarkNotFoundError(bookmark_id)


def load_corpus(repository, page_size: int = 500) -> List[Bookmark]:
    """Loads every bookmark by walking the repository page by page."""
    bookmarks: List[Bookmark] = []
    page = 1
    while True:
        batch = repository.list_bookmarks(page=page, limit=page_size)
        bookmarks.extend(batch)
        if len(batch) < page_size:
            return bookmarks
        page += 1


if __name__ == "__main__":
    BookmarkRepository.from_config(Config()).create_tables()
    print("Bookmark tables created successfully.")
