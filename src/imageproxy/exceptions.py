"""Exceptions raised while inspecting image URLs."""


class ImageProxyError(Exception):
    """Base exception for image proxy errors."""

    pass


class MalformedUrlError(ImageProxyError):
    """Raised when a URL cannot be parsed or a proxy URL cannot be decoded."""

    def __init__(self, url: str, reason: str = "malformed URL") -> None:
        self.url = url
        super().__init__(f"{reason}: {url!r}")


class NoHostError(ImageProxyError):
    """Raised when a URL has no absolute http(s) origin to fetch from."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"no fetchable host in {url!r}")
