"""
HTML helpers for link filtering, URL normalization and document rewriting.
"""

from typing import Iterable, List
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

CRAWLABLE_SCHEMES = ('http', 'https')

# Elements whose href/src are rewritten when a page is mirrored
REWRITE_TAGS = ['a', 'link', 'script', 'img']


def normalize_url(url: str) -> str:
    """Normalize URL by removing the fragment and lower-casing scheme and host."""
    try:
        parsed = urlparse(url.strip())
        return urlunparse((
            parsed.scheme.lower(),
            parsed.netloc.lower(),
            parsed.path or '/',
            parsed.params,
            parsed.query,
            ''  # Remove fragment
        ))
    except Exception:
        return url


def is_crawlable_url(url: str) -> bool:
    """Only absolute http(s) URLs are eligible for the frontier."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme.lower() in CRAWLABLE_SCHEMES and bool(parsed.netloc)


def filter_links(links: Iterable[str]) -> List[str]:
    """
    Keep absolute http(s) links, normalized and de-duplicated.

    Order of first appearance is preserved so breadth-first traversal
    follows document order.
    """
    seen = set()
    result = []
    for link in links:
        if not link or not is_crawlable_url(link):
            continue
        normalized = normalize_url(link)
        if normalized in seen:
            continue
        seen.add(normalized)
        result.append(normalized)
    return result


def absolutize_document(html_content: str, base_url: str) -> str:
    """Rewrite relative href/src attributes to absolute URLs."""
    soup = BeautifulSoup(html_content, 'lxml')

    for element in soup.find_all(REWRITE_TAGS):
        attr = 'href' if element.get('href') else 'src'
        old_url = element.get(attr)
        if not old_url:
            continue
        if old_url.startswith('http') or old_url.startswith('//'):
            continue
        element[attr] = urljoin(base_url, old_url)

    return str(soup)

