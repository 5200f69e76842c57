"""Building and decoding proxy URLs that wrap original image URLs."""

import base64
import binascii
from typing import TYPE_CHECKING, Protocol
from urllib.parse import parse_qs, urlencode, urlsplit

from imageproxy.exceptions import MalformedUrlError

if TYPE_CHECKING:
    from imageproxy.config import Settings


class ProxyLinks(Protocol):
    """Builds proxy URLs and recovers the original URL from them."""

    def build(self, url: str) -> str: ...

    def is_proxy_url(self, url: str) -> bool: ...

    def decode(self, proxy_url: str) -> str: ...


def encode_url(url: str) -> str:
    """Encode a URL as unpadded urlsafe base64."""
    return base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii").rstrip("=")


def decode_url(token: str) -> str:
    """Decode a value produced by encode_url."""
    padded = token + "=" * (-len(token) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise MalformedUrlError(token, "undecodable proxy token") from e


class ProxyLinkBuilder:
    """
    Default proxy link builder.

    Produces ``<base_url><route>?<param>=<token>`` where the token is the
    original URL in urlsafe base64.
    """

    def __init__(self, base_url: str, route: str = "/imageproxy/image", param: str = "u") -> None:
        self.base_url = base_url.rstrip("/")
        self.route = "/" + route.strip("/")
        self.param = param

        base = urlsplit(self.base_url)
        self.netloc = base.netloc.lower()
        self.path = base.path.rstrip("/") + self.route

    def build(self, url: str) -> str:
        """Return the proxy URL for an original image URL."""
        return f"{self.base_url}{self.route}?{urlencode({self.param: encode_url(url)})}"

    def is_proxy_url(self, url: str) -> bool:
        """
        Check whether a URL points at this proxy endpoint.

        The URL must be relative or on the proxy's own host, and its path must
        be the proxy route.
        """
        try:
            parts = urlsplit(url.strip().replace("\\", "/"))
        except ValueError:
            return False

        if parts.netloc:
            if parts.netloc.lower() != self.netloc:
                return False
        elif parts.scheme:
            return False
        return parts.path.rstrip("/") == self.path

    def decode(self, proxy_url: str) -> str:
        """
        Recover the original URL from a proxy URL.

        Raises:
            MalformedUrlError: If the URL is not a proxy URL or its token is invalid
        """
        if not self.is_proxy_url(proxy_url):
            raise MalformedUrlError(proxy_url, "not a proxy URL")

        query = urlsplit(proxy_url.strip()).query
        # Proxy URLs embedded in HTML may carry entity-escaped separators
        values = parse_qs(query.replace("&amp;", "&")).get(self.param)
        if not values or not values[0]:
            raise MalformedUrlError(proxy_url, f"missing {self.param!r} parameter")
        return decode_url(values[0])


def get_proxy_links(settings: "Settings | None" = None) -> ProxyLinkBuilder:
    """Create the link builder from application settings."""
    if settings is None:
        from imageproxy.config import get_settings

        settings = get_settings()
    return ProxyLinkBuilder(
        base_url=settings.proxy_base_url,
        route=settings.proxy_route,
        param=settings.proxy_param,
    )
