"""
url_normalizer.py - Canonical URL forms used for duplicate detection.

A URL is rewritten to a comparable baseline (lower-cased scheme/host, no
default port, no leading ``www.``, http/https collapsed, single trailing slash
and tracking parameters removed) and expanded into the small set of textual
variations people actually save for the same page.
"""

import ipaddress
import logging
from collections import namedtuple
from typing import Iterable, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests

from errors import MalformedURLError
from models import NormalizedURL

logger = logging.getLogger(__name__)

TRACKING_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "fbclid",
    "gclid",
    "msclkid",
    "ref",
    "source",
    "_ga",
    "_gid",
    "mc_cid",
    "mc_eid",
}

SHORTENER_DOMAINS = {
    "bit.ly",
    "tinyurl.com",
    "t.co",
    "goo.gl",
    "ow.ly",
    "short.link",
    "tiny.cc",
    "is.gd",
    "buff.ly",
    "ift.tt",
    "youtu.be",
    "amzn.to",
    "fb.me",
    "li.st",
    "tr.im",
    "cutt.ly",
    "rebrand.ly",
    "bl.ink",
    "switchy.io",
    "short.io",
    "tiny.one",
    "link.do",
    "clck.ru",
}

DEFAULT_PORTS = {"http": 80, "https": 443}
WEB_SCHEMES = ("http", "https")

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; Linkkeeper/1.0)",
}

_URLParts = namedtuple("_URLParts", "scheme host port path query")


def split_url(raw_url: str) -> _URLParts:
    """
    Parses ``raw_url`` into the pieces the canonical form is built from.

    Raises:
        MalformedURLError: when no scheme or host can be extracted.
    """
    candidate = (raw_url or "").strip()
    if not candidate:
        raise MalformedURLError(raw_url, "empty URL")

    try:
        parsed = urlsplit(candidate)
        port = parsed.port
    except ValueError as exc:
        raise MalformedURLError(raw_url, str(exc)) from exc

    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    if not scheme or not host:
        raise MalformedURLError(raw_url)

    if host.startswith("www."):
        host = host[4:]
    if ":" in host:
        # IPv6 literal, urlsplit strips the brackets
        host = f"[{host}]"
    if port is not None and port == DEFAULT_PORTS.get(scheme):
        port = None

    path = parsed.path
    if path.endswith("/"):
        path = path[:-1]

    return _URLParts(scheme, host, port, path, _clean_query(parsed.query))


def _clean_query(query: str) -> str:
    if not query:
        return ""
    params = [
        (key, value)
        for key, value in parse_qsl(query, keep_blank_values=True)
        if key.lower() not in TRACKING_PARAMS
    ]
    return urlencode(sorted(params))


def _build(scheme: str, host: str, port: Optional[int], path: str, query: str) -> str:
    netloc = f"{host}:{port}" if port is not None else host
    return urlunsplit((scheme, netloc, path, query, ""))


def canonical_form(parts: _URLParts) -> str:
    scheme = "https" if parts.scheme in WEB_SCHEMES else parts.scheme
    return _build(scheme, parts.host, parts.port, parts.path, parts.query)


def _supports_www(host: str) -> bool:
    if "." not in host or host.startswith("["):
        return False
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return True
    return False


def variation_set(parts: _URLParts) -> List[str]:
    """Canonical form first, then scheme x www x trailing-slash permutations."""
    schemes = WEB_SCHEMES if parts.scheme in WEB_SCHEMES else (parts.scheme,)
    hosts = [parts.host, f"www.{parts.host}"] if _supports_www(parts.host) else [parts.host]
    paths = [parts.path, f"{parts.path}/"]

    variations = [canonical_form(parts)]
    for scheme in schemes:
        for host in hosts:
            for path in paths:
                variations.append(_build(scheme, host, parts.port, path, parts.query))

    return list(dict.fromkeys(variations))


def is_short_url(host: str) -> bool:
    host = (host or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host in SHORTENER_DOMAINS


def url_similarity(first: NormalizedURL, second: NormalizedURL) -> float:
    """1.0 for identical canonical forms, 0.9 for overlapping variations, else 0.0."""
    if first.normalized == second.normalized:
        return 1.0
    if set(first.variations) & set(second.variations):
        return 0.9
    return 0.0


class URLNormalizer:
    """
    Normalizes URLs and, for known shortener hosts, resolves the destination.

    Expansion is best-effort: any network problem just leaves ``expanded_url``
    unset. ``max_redirects`` is applied to the session created here; an
    injected session keeps its own limit.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        expand_short_urls: bool = True,
        max_redirects: int = 5,
        timeout: float = 10.0,
    ):
        if session is None:
            session = requests.Session()
            session.max_redirects = max_redirects
        self.session = session
        self.expand_short_urls = expand_short_urls
        self.timeout = timeout

    def normalize(self, raw_url: str) -> NormalizedURL:
        parts = split_url(raw_url)
        short = is_short_url(parts.host)

        expanded_url = None
        destination = parts
        if short and self.expand_short_urls:
            expanded_url = self.expand(raw_url.strip())
            if expanded_url:
                try:
                    destination = split_url(expanded_url)
                except MalformedURLError:
                    logger.info("Short URL %s expanded to unusable %s", raw_url, expanded_url)
                    expanded_url = None

        variations = variation_set(destination)
        if destination is not parts:
            # keep the short link's own forms so unexpanded copies still match
            variations = list(dict.fromkeys(variations + variation_set(parts)))

        return NormalizedURL(
            original=raw_url,
            normalized=canonical_form(destination),
            variations=variations,
            is_short_url=short,
            expanded_url=expanded_url,
        )

    def expand(self, short_url: str) -> Optional[str]:
        """Follows at most ``max_redirects`` hops and returns the final URL."""
        try:
            response = self.session.head(
                short_url,
                headers=DEFAULT_HEADERS,
                timeout=self.timeout,
                allow_redirects=True,
            )
        except requests.RequestException as exc:
            logger.debug("HEAD expansion failed for %s: %s", short_url, exc)
            try:
                response = self.session.get(
                    short_url,
                    headers=DEFAULT_HEADERS,
                    timeout=self.timeout,
                    allow_redirects=True,
                    stream=True,
                )
                response.close()
            except requests.RequestException as exc:
                logger.info("Could not expand short URL %s: %s", short_url, exc)
                return None

        final_url = getattr(response, "url", None)
        if not final_url or final_url == short_url:
            return None
        return final_url

    def similarity(self, first_url: str, second_url: str) -> float:
        try:
            first = self.normalize(first_url)
            second = self.normalize(second_url)
        except MalformedURLError:
            return 0.0
        return url_similarity(first, second)

    def find_similar_urls(self, candidate: str, corpus_urls: Iterable[str]) -> List[str]:
        """Returns the corpus URLs that normalize to the same resource as ``candidate``."""
        target = self.normalize(candidate)

        similar: List[str] = []
        for url in corpus_urls:
            try:
                other = self.normalize(url)
            except MalformedURLError:
                logger.debug("Skipping malformed corpus URL %s", url)
                continue
            if url_similarity(target, other) > 0:
                similar.append(url)
        return similar
