"""Value types produced by the image reference rewriter."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Dialect(str, Enum):
    """Markup dialect an image reference was found in."""

    MARKDOWN = "markdown"
    HTML = "html"


@dataclass(frozen=True)
class ImageReference:
    """An image URL located in source text, with the span of the URL itself."""

    dialect: Dialect
    start: int
    end: int
    url: str


@dataclass(frozen=True)
class RewriteResult:
    """Outcome of rewriting a single text."""

    text: str
    images_found: int = 0
    images_rewritten: int = 0
    changed: bool = False


@dataclass
class RewriteStats:
    """Counters accumulated over a batch of messages."""

    processed: int = 0
    updated: int = 0
    reverted: int = 0
    images_found: int = 0
    failed: list[Any] = field(default_factory=list)

    def as_migration(self) -> dict[str, Any]:
        """Return the forward-migration view of the counters."""
        return {
            "processed": self.processed,
            "updated": self.updated,
            "images_found": self.images_found,
            "failed": list(self.failed),
        }

    def as_reversion(self) -> dict[str, Any]:
        """Return the reversion view of the counters."""
        return {
            "processed": self.processed,
            "reverted": self.reverted,
            "failed": list(self.failed),
        }
