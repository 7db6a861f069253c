import pytest

from conftest import FakeRepository, make_bookmark
from errors import BookmarkNotFoundError, MergeError, RepositoryError
from link_merger import LinkMerger, merge_tag_names, pick_description, pick_title


@pytest.fixture
def repository():
    return FakeRepository(
        [
            make_bookmark(1, "http://a.com", "A", tags=["x"]),
            make_bookmark(2, "https://a.com/", "A longer title", tags=["y"], description="From dup"),
            make_bookmark(3, "https://www.a.com", "Untitled document", tags=["x", "Z"]),
        ]
    )


def test_merge_unions_tags_and_deletes_duplicate(repository):
    result = LinkMerger(repository).merge(1, [2], merge_tags=True, merge_metadata=False)

    assert set(repository.bookmarks[1].tags) == {"x", "y"}
    assert 2 not in repository.bookmarks
    assert result.merged_ids == [2]
    assert not result.partial


def test_failed_delete_still_reports_success(repository):
    repository.fail_delete = {2}

    result = LinkMerger(repository).merge(1, [2, 3])

    assert repository.bookmarks[1].tags == ["x", "y", "Z"]
    assert 2 in repository.bookmarks
    assert 3 not in repository.bookmarks
    assert result.merged_ids == [3]
    assert list(result.failed_deletions) == [2]
    assert result.partial
    assert result.warnings == ["failed to delete duplicate 2: delete failed"]


def test_primary_is_written_once_before_deletions(repository):
    LinkMerger(repository).merge(1, [2, 3])

    assert len(repository.updates) == 1
    assert repository.deleted == [2, 3]


def test_metadata_prefers_longer_title_and_fills_description(repository):
    result = LinkMerger(repository).merge(1, [2, 3], merge_tags=False, merge_metadata=True)

    assert result.primary.title == "A longer title"
    assert result.primary.description == "From dup"
    assert result.primary.tags == ["x"]


def test_missing_duplicates_are_skipped(repository):
    result = LinkMerger(repository).merge(1, [2, 42, 1])

    assert result.merged_ids == [2]
    assert result.skipped_ids == [42, 1]


def test_unreadable_duplicate_is_skipped(repository):
    repository.fail_get = {3}

    result = LinkMerger(repository).merge(1, [2, 3])

    assert result.merged_ids == [2]
    assert result.skipped_ids == [3]
    assert 3 in repository.bookmarks


def test_missing_primary_raises(repository):
    with pytest.raises(BookmarkNotFoundError):
        LinkMerger(repository).merge(99, [2])
    assert repository.deleted == []


def test_no_loadable_duplicates_raises(repository):
    with pytest.raises(MergeError, match="no valid duplicates found"):
        LinkMerger(repository).merge(1, [41, 42])
    assert repository.updates == []


def test_failed_primary_update_deletes_nothing(repository, monkeypatch):
    def broken_update(*args, **kwargs):
        raise RepositoryError("update failed")

    monkeypatch.setattr(repository, "update_bookmark", broken_update)

    with pytest.raises(RepositoryError):
        LinkMerger(repository).merge(1, [2])
    assert repository.deleted == []


def test_no_flags_only_deletes(repository):
    result = LinkMerger(repository).merge(1, [2], merge_tags=False, merge_metadata=False)

    assert repository.updates == []
    assert result.merged_ids == [2]


def test_tag_union_is_case_sensitive():
    primary = make_bookmark(1, "https://a.com", tags=["python", "Python"])
    duplicate = make_bookmark(2, "https://a.com", tags=["python", "PYTHON"])

    assert merge_tag_names(primary, [duplicate]) == ["python", "Python", "PYTHON"]


def test_untitled_candidates_never_win():
    primary = make_bookmark(1, "https://a.com", "Short")
    duplicate = make_bookmark(2, "https://a.com", "UNTITLED - a much longer title")

    assert pick_title(primary, [duplicate]) == "Short"


def test_primary_description_is_kept():
    primary = make_bookmark(1, "https://a.com", description="Mine")
    duplicate = make_bookmark(2, "https://a.com", description="Theirs")

    assert pick_description(primary, [duplicate]) == "Mine"
