"""Rewrite image URLs in markdown and HTML content to go through the image proxy."""

import html
import logging
import re
from collections.abc import Callable, Iterable
from html.parser import HTMLParser
from typing import TypeVar
from urllib.parse import urlsplit

from imageproxy.exceptions import MalformedUrlError, NoHostError
from imageproxy.models.rewrite import Dialect, ImageReference, RewriteResult, RewriteStats
from imageproxy.services.host_matcher import AllowList
from imageproxy.services.proxy_links import ProxyLinks

logger = logging.getLogger(__name__)

MessageId = TypeVar("MessageId")

# ![alt](url) with an optional quoted title after the URL
MARKDOWN_IMAGE_PATTERN = re.compile(r"""!\[(?P<alt>[^\]]*)\]\((?P<url>[^\s)]+)(?:\s+(?:"[^"]*"|'[^']*'))?\)""")

TAG_NAME_PATTERN = re.compile(r"<[a-zA-Z][^\s/>]*")

# One attribute of a raw start tag with its leading separators; quoted values
# are consumed whole, unquoted ones run to whitespace or ">"
ATTRIBUTE_PATTERN = re.compile(
    r"""[\s/]*(?P<name>[^\s/>][^\s/>=]*)"""
    r"""(?:\s*=\s*(?:"(?P<double>[^"]*)"|'(?P<single>[^']*)'|(?P<bare>[^\s>]+)))?"""
)

FETCHABLE_SCHEMES = ("http", "https")

AllowListLike = AllowList | Iterable[str] | str | None


class ImageTagCollector(HTMLParser):
    """Collects the source position and raw text of img start tags in HTML."""

    def __init__(self) -> None:
        super().__init__()
        self.tags: list[tuple[int, int, str]] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "img":
            raw = self.get_starttag_text()
            if raw:
                lineno, offset = self.getpos()
                self.tags.append((lineno, offset, raw))


def _line_starts(text: str) -> list[int]:
    return [0] + [match.end() for match in re.finditer("\n", text)]


def find_markdown_images(text: str) -> list[ImageReference]:
    """Find ``![alt](url)`` image references."""
    return [
        ImageReference(Dialect.MARKDOWN, match.start("url"), match.end("url"), match.group("url"))
        for match in MARKDOWN_IMAGE_PATTERN.finditer(text)
    ]


def _find_src_value(raw: str) -> tuple[int, int] | None:
    """
    Locate the value of the first ``src`` attribute in a raw start tag.

    Attributes are walked in order so text inside other attribute values
    is never mistaken for ``src``.
    """
    tag = TAG_NAME_PATTERN.match(raw)
    if tag is None:
        return None

    pos = tag.end()
    while True:
        attribute = ATTRIBUTE_PATTERN.match(raw, pos)
        if attribute is None:
            return None
        if attribute.group("name").lower() == "src":
            for group in ("double", "single", "bare"):
                if attribute.group(group) is not None:
                    return attribute.start(group), attribute.end(group)
            return None
        pos = attribute.end()


def find_html_images(text: str) -> list[ImageReference]:
    """Find ``src`` values of ``<img>`` tags."""
    if "<" not in text:
        return []

    # Same-length mask: declarations, comments and marked sections are not
    # parsed, so "<![alt](url)" in markdown cannot trip the parser
    masked = text.replace("<!", " !")

    collector = ImageTagCollector()
    try:
        collector.feed(masked)
        collector.close()
    except AssertionError as e:
        logger.debug("HTML scan stopped early: %s", e)

    if not collector.tags:
        return []

    line_starts = _line_starts(masked)
    references: list[ImageReference] = []
    for lineno, offset, raw in collector.tags:
        tag_start = line_starts[lineno - 1] + offset
        if masked[tag_start : tag_start + len(raw)] != raw:
            logger.debug("Skipping img tag with unresolvable position: %r", raw)
            continue

        span = _find_src_value(raw)
        if span is None or span[0] == span[1]:
            continue
        start, end = tag_start + span[0], tag_start + span[1]

        references.append(ImageReference(Dialect.HTML, start, end, text[start:end]))
    return references


def find_image_references(text: str) -> list[ImageReference]:
    """
    Find all image references in mixed markdown/HTML text.

    References are returned in source order. A reference overlapping an
    earlier one is dropped.
    """
    candidates = sorted(
        find_markdown_images(text) + find_html_images(text),
        key=lambda ref: (ref.start, ref.end),
    )

    references: list[ImageReference] = []
    last_end = -1
    for ref in candidates:
        if ref.start < last_end:
            continue
        references.append(ref)
        last_end = ref.end
    return references


def extract_host(url: str) -> str:
    """
    Extract the host of an absolute or protocol-relative http(s) URL.

    Backslashes are read as slashes, the way browsers treat them in
    http(s) URLs.

    Raises:
        MalformedUrlError: If the URL cannot be parsed
        NoHostError: If the URL is relative or uses a non-fetchable scheme
    """
    try:
        parts = urlsplit(url.strip().replace("\\", "/"))
        host = parts.hostname
    except ValueError as e:
        raise MalformedUrlError(url) from e

    scheme = parts.scheme.lower()
    if (scheme and scheme not in FETCHABLE_SCHEMES) or not host:
        raise NoHostError(url)
    return host


def browser_url(ref: ImageReference) -> str:
    """Return the URL a browser resolves for a reference, with entities decoded."""
    return html.unescape(ref.url)


def as_allow_list(allow_list: AllowListLike) -> AllowList:
    """Coerce config strings or host sequences into an AllowList."""
    if isinstance(allow_list, AllowList):
        return allow_list
    if allow_list is None or isinstance(allow_list, str):
        return AllowList.parse(allow_list)
    return AllowList.of(*allow_list)


class ReferenceRewriter:
    """Rewrites image references to and from proxy URLs."""

    def __init__(self, links: ProxyLinks) -> None:
        self.links = links

    def proxify(self, text: str, allow_list: AllowListLike = None) -> RewriteResult:
        """
        Point every non-allow-listed image at the proxy.

        URLs that already go through the proxy, URLs without a fetchable host
        and URLs on allow-listed hosts are left untouched.

        Args:
            text: Markdown and/or HTML content
            allow_list: Hosts exempt from proxying; empty proxies everything

        Returns:
            RewriteResult with the new text and image counts
        """
        allowed = as_allow_list(allow_list)
        return self._rewrite(text, lambda ref: self._proxy_url_for(ref, allowed))

    def revert(self, text: str) -> RewriteResult:
        """Restore the original URL of every proxied image."""
        return self._rewrite(text, self._original_url_for)

    def rewrite_all(
        self,
        messages: Iterable[tuple[MessageId, str]],
        allow_list: AllowListLike,
        write: Callable[[MessageId, str], None],
    ) -> RewriteStats:
        """Proxify a batch of messages, passing changed ones to ``write``."""
        allowed = as_allow_list(allow_list)
        return self._run_batch(messages, lambda text: self.proxify(text, allowed), write, reverting=False)

    def revert_all(
        self,
        messages: Iterable[tuple[MessageId, str]],
        write: Callable[[MessageId, str], None],
    ) -> RewriteStats:
        """Revert a batch of messages, passing changed ones to ``write``."""
        return self._run_batch(messages, self.revert, write, reverting=True)

    def _proxy_url_for(self, ref: ImageReference, allow_list: AllowList) -> str | None:
        url = browser_url(ref)
        if self.links.is_proxy_url(url):
            return None

        try:
            host = extract_host(url)
        except (MalformedUrlError, NoHostError) as e:
            logger.debug("Leaving image untouched: %s", e)
            return None

        if allow_list.matches(host):
            return None
        # The raw span is wrapped so reverting restores it byte for byte
        return self.links.build(ref.url)

    def _original_url_for(self, ref: ImageReference) -> str | None:
        url = browser_url(ref)
        if not self.links.is_proxy_url(url):
            return None

        try:
            return self.links.decode(url)
        except MalformedUrlError as e:
            logger.debug("Leaving proxy URL untouched: %s", e)
            return None

    def _rewrite(self, text: str, replace: Callable[[ImageReference], str | None]) -> RewriteResult:
        references = find_image_references(text)
        if not references:
            return RewriteResult(text=text)  # Fast path: no images

        pieces: list[str] = []
        cursor = 0
        rewritten = 0
        for ref in references:
            new_url = replace(ref)
            if new_url is None or new_url == ref.url:
                continue
            pieces.append(text[cursor : ref.start])
            pieces.append(new_url)
            cursor = ref.end
            rewritten += 1

        if not rewritten:
            return RewriteResult(text=text, images_found=len(references))

        pieces.append(text[cursor:])
        new_text = "".join(pieces)
        return RewriteResult(
            text=new_text,
            images_found=len(references),
            images_rewritten=rewritten,
            changed=new_text != text,
        )

    def _run_batch(
        self,
        messages: Iterable[tuple[MessageId, str]],
        transform: Callable[[str], RewriteResult],
        write: Callable[[MessageId, str], None],
        reverting: bool,
    ) -> RewriteStats:
        stats = RewriteStats()
        for message_id, text in messages:
            stats.processed += 1
            result = transform(text)
            stats.images_found += result.images_found
            if not result.changed:
                continue

            try:
                write(message_id, result.text)
            except Exception:
                # One failed write must not stop the rest of the batch
                logger.exception("Failed to store rewritten message %s", message_id)
                stats.failed.append(message_id)
                continue

            if reverting:
                stats.reverted += 1
            else:
                stats.updated += 1

        logger.info(
            "%s %d messages: %d changed, %d failed",
            "Reverted" if reverting else "Proxified",
            stats.processed,
            stats.reverted if reverting else stats.updated,
            len(stats.failed),
        )
        return stats


def proxify(text: str, allow_list: AllowListLike, links: ProxyLinks) -> RewriteResult:
    """Proxify images in a single text."""
    return ReferenceRewriter(links).proxify(text, allow_list)


def revert(text: str, links: ProxyLinks) -> RewriteResult:
    """Revert proxied images in a single text."""
    return ReferenceRewriter(links).revert(text)
