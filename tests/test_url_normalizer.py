from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests

from errors import MalformedURLError
from url_normalizer import URLNormalizer, is_short_url, split_url, url_similarity


@pytest.fixture
def normalizer():
    return URLNormalizer(MagicMock(), expand_short_urls=False)


def test_scheme_www_and_trailing_slash_collapse_to_one_form(normalizer):
    forms = {
        normalizer.normalize(url).normalized
        for url in (
            "https://www.example.com/page/",
            "http://example.com/page",
            "HTTP://WWW.Example.com/page",
            "https://example.com/page/",
        )
    }
    assert forms == {"https://example.com/page"}


def test_tracking_parameters_removed_and_query_sorted(normalizer):
    result = normalizer.normalize("https://example.com/a?utm_source=news&b=2&fbclid=xyz&a=1")
    assert result.normalized == "https://example.com/a?a=1&b=2"


def test_default_ports_and_fragment_dropped(normalizer):
    assert normalizer.normalize("https://example.com:443/x#top").normalized == "https://example.com/x"
    assert normalizer.normalize("http://example.com:80/x").normalized == "https://example.com/x"
    assert normalizer.normalize("http://example.com:8080/x").normalized == "https://example.com:8080/x"


def test_variations_start_with_canonical_form(normalizer):
    result = normalizer.normalize("https://example.com/page")

    assert result.variations[0] == result.normalized
    assert "http://www.example.com/page/" in result.variations
    assert "https://example.com/page/" in result.variations
    assert len(result.variations) == len(set(result.variations))


def test_ip_hosts_get_no_www_variations(normalizer):
    result = normalizer.normalize("http://192.168.1.10/admin")
    assert not any("www." in variation for variation in result.variations)


@pytest.mark.parametrize("raw", ["", "   ", "not a url", "http://", "example.com/page"])
def test_malformed_urls_are_rejected(normalizer, raw):
    with pytest.raises(MalformedURLError):
        normalizer.normalize(raw)


def test_malformed_url_error_is_a_value_error():
    with pytest.raises(ValueError):
        split_url("http://example.com:notaport/")


def test_known_shorteners_are_detected():
    assert is_short_url("bit.ly")
    assert is_short_url("www.bit.ly")
    assert is_short_url("T.CO")
    assert not is_short_url("example.com")


def test_short_url_expands_to_destination():
    session = MagicMock()
    session.head.return_value = SimpleNamespace(url="https://www.example.com/article?utm_source=twitter")
    normalizer = URLNormalizer(session)

    result = normalizer.normalize("https://bit.ly/abc")

    assert result.is_short_url is True
    assert result.expanded_url == "https://www.example.com/article?utm_source=twitter"
    assert result.normalized == "https://example.com/article"
    assert "https://bit.ly/abc" in result.variations


def test_failed_expansion_keeps_short_link():
    session = MagicMock()
    session.head.side_effect = requests.ConnectionError("no route to host")
    session.get.side_effect = requests.ConnectionError("no route to host")
    normalizer = URLNormalizer(session)

    result = normalizer.normalize("https://bit.ly/abc")

    assert result.is_short_url is True
    assert result.expanded_url is None
    assert result.normalized == "https://bit.ly/abc"


def test_injected_session_keeps_its_redirect_limit():
    session = requests.Session()
    session.max_redirects = 12

    URLNormalizer(session, max_redirects=2)

    assert session.max_redirects == 12


def test_own_session_gets_redirect_limit():
    normalizer = URLNormalizer(max_redirects=2)

    assert normalizer.session.max_redirects == 2


def test_expansion_can_be_disabled():
    session = MagicMock()
    normalizer = URLNormalizer(session, expand_short_urls=False)

    result = normalizer.normalize("https://t.co/xyz")

    assert result.is_short_url is True
    assert result.expanded_url is None
    session.head.assert_not_called()


def test_similarity_tiers(normalizer):
    same = normalizer.similarity("http://a.com", "https://www.a.com/")
    overlapping = normalizer.similarity("https://example.com/page//", "https://example.com/page")
    different = normalizer.similarity("https://a.com", "https://b.com")

    assert same == 1.0
    assert overlapping == 0.9
    assert different == 0.0
    assert normalizer.similarity("not a url", "https://a.com") == 0.0


def test_url_similarity_is_symmetric(normalizer):
    first = normalizer.normalize("https://example.com/page//")
    second = normalizer.normalize("http://www.example.com/page")
    assert url_similarity(first, second) == url_similarity(second, first)


def test_find_similar_urls_skips_malformed_entries(normalizer):
    corpus = ["http://www.a.com/", "::::", "https://b.com", "https://a.com/?utm_campaign=x"]

    similar = normalizer.find_similar_urls("https://a.com", corpus)

    assert similar == ["http://www.a.com/", "https://a.com/?utm_campaign=x"]
