"""URL validation and display utilities."""

from urllib.parse import urlparse


def is_absolute_url(url: str) -> bool:
    """Check that url has a scheme and a host, as a url-typed form field requires.

    Example:
        "https://example.com" -> True
        "example.com" -> False
    """
    parsed = urlparse(url.strip())
    if not parsed.scheme:
        return False

    if parsed.scheme in ("http", "https", "ftp", "ws", "wss"):
        return bool(parsed.netloc)

    # Non-hierarchical schemes such as mailto: only need a body
    return bool(parsed.netloc or parsed.path)


def display_domain(url: str) -> str:
    """Extract the host of a URL for compact list display.

    Example:
        "https://www.github.com/user/repo" -> "github.com"
    """
    domain = urlparse(url).netloc
    if domain.startswith("www."):
        domain = domain[4:]

    return domain or url
