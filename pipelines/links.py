"""Link resolution and classification relative to a crawl's base domain."""

from typing import Iterable, Optional
from urllib.parse import urljoin, urlparse
import posixpath

from indexer.models import DiscoveredLink, LinkType
from sources.loader import DEFAULT_PAGE_EXTENSIONS


def resolve_href(href: str, source_url: str, base_url: str) -> str:
    """Resolve an href against the page it was found on.

    Absolute URLs are kept, protocol-relative ones get ``https:``,
    root-relative ones are joined to ``base_url`` and everything else is
    resolved against ``source_url``.
    """
    if href.startswith("http"):
        return href
    if href.startswith("//"):
        return "https:" + href
    if href.startswith("/"):
        return base_url.rstrip("/") + href
    return urljoin(source_url, href)


def _extension(path: str) -> str:
    _, ext = posixpath.splitext(path)
    return ext.lower()


def classify_link(
    href: str,
    source_url: str,
    link_text: str,
    domain: str,
    page_extensions: Iterable[str] = DEFAULT_PAGE_EXTENSIONS,
) -> Optional[DiscoveredLink]:
    """Classify one anchor found on ``source_url``.

    Args:
        href: Raw ``href`` attribute value
        source_url: Absolute URL of the page the anchor was on
        link_text: Anchor text
        domain: Crawl base domain, without ``www.``
        page_extensions: Path extensions that denote crawlable pages

    Returns:
        A DiscoveredLink, or None when the href cannot be resolved to a URL.
    """
    href = (href or "").strip()
    if not href:
        return None

    text = (link_text or "").strip()
    lowered = href.lower()

    if lowered.startswith("mailto:"):
        return DiscoveredLink(url=href, source_url=source_url, link_type=LinkType.EMAIL, link_text=text)
    if lowered.startswith("tel:"):
        return DiscoveredLink(url=href, source_url=source_url, link_type=LinkType.TEL, link_text=text)

    try:
        absolute = resolve_href(href, source_url, f"https://{domain}")
        parsed = urlparse(absolute)
        hostname = parsed.hostname
    except ValueError:
        return None

    if parsed.scheme not in ("http", "https") or not hostname:
        return None

    if _extension(parsed.path) not in set(page_extensions):
        link_type = LinkType.FILE
    elif hostname == domain or hostname == f"www.{domain}":
        link_type = LinkType.INTERNAL
    else:
        link_type = LinkType.EXTERNAL

    return DiscoveredLink(url=absolute, source_url=source_url, link_type=link_type, link_text=text)
