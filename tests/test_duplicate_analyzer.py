from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from conftest import FakeRepository, make_bookmark
from database import load_corpus
from duplicate_analyzer import DuplicateAnalyzer, format_age, title_similarity
from errors import MalformedURLError, RepositoryError
from url_normalizer import URLNormalizer


def make_analyzer(repository, session=None, expand=False):
    return DuplicateAnalyzer(repository, URLNormalizer(session or MagicMock(), expand_short_urls=expand))


def test_find_all_duplicates_groups_normalized_urls(abc_repository):
    groups = make_analyzer(abc_repository).find_all_duplicates()

    assert len(groups) == 1
    group = groups[0]
    assert group.primary.id == 1
    assert group.duplicate_ids == [2]
    assert group.confidence == 1.0
    assert group.reason == "Identical URLs (after normalization)"


def test_each_bookmark_lands_in_at_most_one_group():
    repository = FakeRepository(
        [
            make_bookmark(1, "https://a.com"),
            make_bookmark(2, "http://www.a.com"),
            make_bookmark(3, "https://a.com/"),
            make_bookmark(4, "https://b.com"),
            make_bookmark(5, "http://b.com/"),
        ]
    )

    groups = make_analyzer(repository).find_all_duplicates()

    assert [(group.primary.id, group.duplicate_ids) for group in groups] == [(1, [2, 3]), (4, [5])]
    members = [group.primary.id for group in groups]
    for group in groups:
        members.extend(group.duplicate_ids)
    assert len(members) == len(set(members))


def test_title_only_match_has_low_confidence():
    repository = FakeRepository(
        [
            make_bookmark(1, "https://blog.example.com/intro", "Introduction to asyncio"),
            make_bookmark(2, "https://mirror.example.org/a", "introduction to asyncio (mirror)"),
        ]
    )

    groups = make_analyzer(repository).find_all_duplicates()

    assert len(groups) == 1
    assert groups[0].reason == "Similar titles"
    assert groups[0].confidence == pytest.approx(0.24)


def test_differing_titles_lower_url_match_confidence():
    repository = FakeRepository(
        [
            make_bookmark(1, "https://a.com", "Home"),
            make_bookmark(2, "http://a.com/", "Landing page"),
        ]
    )

    groups = make_analyzer(repository).find_all_duplicates()

    assert groups[0].confidence == pytest.approx(0.7)


def test_short_titles_do_not_match_by_containment():
    assert title_similarity("Docs", "Docs page") == 0.0
    assert title_similarity("  Python Docs ", "python docs") == 1.0
    assert title_similarity("", "") == 0.0
    assert title_similarity("Asyncio tutorial", "The asyncio tutorial series") == 0.8


def test_malformed_corpus_urls_are_ignored():
    repository = FakeRepository(
        [
            make_bookmark(1, "not a url"),
            make_bookmark(2, "https://a.com"),
            make_bookmark(3, "https://www.a.com/"),
        ]
    )

    groups = make_analyzer(repository).find_all_duplicates()

    assert [(group.primary.id, group.duplicate_ids) for group in groups] == [(2, [3])]


def test_short_url_group_reason():
    session = MagicMock()
    session.head.return_value = SimpleNamespace(url="https://example.com/article/")
    repository = FakeRepository(
        [
            make_bookmark(1, "https://example.com/article"),
            make_bookmark(2, "https://bit.ly/xyz"),
        ]
    )

    groups = make_analyzer(repository, session, expand=True).find_all_duplicates()

    assert groups[0].duplicate_ids == [2]
    assert groups[0].confidence == 1.0
    assert groups[0].reason == "Identical URLs (after normalization)"


def test_scan_propagates_repository_failure():
    repository = FakeRepository()
    repository.fail_list = True

    with pytest.raises(RepositoryError):
        make_analyzer(repository).find_all_duplicates()


def test_corpus_is_loaded_page_by_page():
    repository = FakeRepository([make_bookmark(i, f"https://s{i}.example.com") for i in range(1, 1201)])

    bookmarks = load_corpus(repository)

    assert [bookmark.id for bookmark in bookmarks] == list(range(1, 1201))
    assert repository.list_calls == [(1, 500), (2, 500), (3, 500)]


def test_check_for_duplicates_reports_similar(abc_repository):
    result = make_analyzer(abc_repository).check_for_duplicates("https://a.com", "A")

    assert result.has_exact_duplicate is False
    assert result.has_similar_bookmarks is True
    assert [bookmark.id for bookmark in result.similar_bookmarks] == [1, 2]
    assert result.confidence >= 0.9
    assert result.recommendations[0] == "Found 2 similar bookmark(s) that might be duplicates"


def test_check_for_duplicates_exact_match(abc_repository):
    result = make_analyzer(abc_repository).check_for_duplicates("http://b.com")

    assert result.has_exact_duplicate is True
    assert result.exact_duplicate.id == 3
    assert result.confidence == 1.0
    assert result.recommendations == ["This URL already exists in your bookmarks"]


def test_check_for_duplicates_with_no_match(abc_repository):
    result = make_analyzer(abc_repository).check_for_duplicates("https://c.com", "Something else")

    assert result.has_exact_duplicate is False
    assert result.has_similar_bookmarks is False
    assert result.confidence == 0.0
    assert result.recommendations == []


def test_check_for_duplicates_rejects_malformed_url(abc_repository):
    with pytest.raises(MalformedURLError):
        make_analyzer(abc_repository).check_for_duplicates("definitely not a url")


def test_check_for_duplicates_mentions_short_url_expansion():
    session = MagicMock()
    session.head.return_value = SimpleNamespace(url="https://example.com/article")
    repository = FakeRepository([make_bookmark(1, "https://example.com/article", "Article", days_old=3)])

    result = make_analyzer(repository, session, expand=True).check_for_duplicates("https://bit.ly/xyz")

    assert result.url_analysis.expanded_url == "https://example.com/article"
    assert result.recommendations[0] == "This short URL expands to: https://example.com/article"
    assert result.recommendations[-1] == 'Similar: "Article" (created 3 days ago)'


def test_format_age_units():
    now = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)

    assert format_age(now - timedelta(minutes=5), now) == "5 minutes"
    assert format_age(now - timedelta(hours=3), now) == "3 hours"
    assert format_age(now - timedelta(days=2, hours=1), now) == "2 days"
