"""HTML utility functions for Blossom.

Escaping, URL joining and base-path handling for generated markup.

Functions:
    escape_html: Escape special HTML/XML characters in a string.
    join_root_url: Join a base URL with a path.
    is_external_url: Whether a URL points outside the site.
    with_base: Prefix a root-relative path with the configured base path.
    strip_base: Inverse of with_base.
    rebase_urls: Prefix root-relative URL attributes in a parsed page.
"""

from __future__ import annotations

from bs4 import BeautifulSoup

# URL prefixes that should not be modified
_URL_SKIP_PREFIXES = (
    "http://",
    "https://",
    "//",
    "mailto:",
    "tel:",
    "#",
    "javascript:",
    "data:",
)

# Tag attributes that carry site URLs.
URL_ATTRIBUTES = (
    ("a", "href"),
    ("link", "href"),
    ("img", "src"),
    ("script", "src"),
    ("source", "src"),
    ("form", "action"),
)


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Converts the following characters to their entity equivalents:
    - & becomes &amp;
    - < becomes &lt;
    - > becomes &gt;
    - " becomes &quot;

    The result is safe in HTML text, attribute values and XML feeds.

    Examples:
        >>> escape_html('<script>alert("XSS")</script>')
        '&lt;script&gt;alert(&quot;XSS&quot;)&lt;/script&gt;'

        >>> escape_html('Tom & Jerry')
        'Tom &amp; Jerry'
    """
    return (
        str(text)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Examples:
        >>> join_root_url('https://example.com', '/about/')
        'https://example.com/about/'

        >>> join_root_url('https://example.com/', 'about/')
        'https://example.com/about/'
    """
    if not root_url:
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def is_external_url(url: str) -> bool:
    """Return True for URLs that never refer to a file in the output tree."""
    return not url or url.startswith(_URL_SKIP_PREFIXES) or ":" in url.split("/")[0]


def normalize_base_path(base: str | None) -> str:
    """Normalize a base path to ``""`` or ``/segment[/segment]``."""
    if not base:
        return ""
    cleaned = "/" + str(base).strip().strip("/")
    return "" if cleaned == "/" else cleaned


def with_base(path: str, base: str) -> str:
    """Prefix a site-root path with ``base``.

    ``path`` is always a site-root path such as ``/blog/post/``; a path that
    happens to start with the base segment is still prefixed. External URLs
    are returned as-is.
    """
    if not base or not path.startswith("/") or path.startswith("//"):
        return path
    return f"{base}{path}"


def strip_base(path: str, base: str) -> str | None:
    """Remove ``base`` from a root-relative path.

    Returns:
        The site-root path, or None when the path lies outside ``base``.
    """
    if not base:
        return path
    if path == base:
        return "/"
    if path.startswith(base + "/"):
        return path[len(base) :]
    return None


def rebase_urls(soup: BeautifulSoup, base: str) -> bool:
    """Prefix every root-relative URL attribute in a parsed page with ``base``.

    Call once per freshly composed page. Canonical links are skipped since
    ``PageComposer.absolute_url`` already builds them with the base path.

    Returns:
        True if any attribute changed.
    """
    if not base:
        return False
    changed = False
    for tag_name, attr in URL_ATTRIBUTES:
        for tag in soup.find_all(tag_name):
            url = tag.get(attr)
            if not url or is_external_url(url) or not url.startswith("/"):
                continue
            if tag_name == "link" and "canonical" in (tag.get("rel") or ()):
                continue
            tag[attr] = with_base(url, base)
            changed = True
    return changed

