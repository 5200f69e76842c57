"""Host allow-list parsing and matching."""

from collections.abc import Iterable
from dataclasses import dataclass

WILDCARD_PREFIX = "*."


def _normalize(host: str) -> str:
    return host.strip().lower().rstrip(".")


def parse_allow_list(raw: str | None) -> tuple[str, ...]:
    """
    Parse a newline-separated allow-list into normalized entries.

    Surrounding whitespace is trimmed from each line, blank lines are dropped
    and duplicates keep their first position.
    """
    if not raw:
        return ()
    entries = (_normalize(line) for line in raw.split("\n"))
    return tuple(dict.fromkeys(entry for entry in entries if entry))


def host_matches(hostname: str, entries: Iterable[str]) -> bool:
    """
    Check whether a hostname is covered by any allow-list entry.

    A plain entry matches the exact host. A ``*.domain`` entry matches every
    subdomain of ``domain`` and ``domain`` itself. Comparison is
    case-insensitive and purely textual.
    """
    host = _normalize(hostname)
    if not host:
        return False

    for entry in entries:
        entry = _normalize(entry)
        if entry.startswith(WILDCARD_PREFIX):
            base = entry[len(WILDCARD_PREFIX) :]
            if base and (host == base or host.endswith(f".{base}")):
                return True
        elif entry and host == entry:
            return True
    return False


@dataclass(frozen=True)
class AllowList:
    """Ordered set of host patterns exempt from proxying."""

    entries: tuple[str, ...] = ()

    @classmethod
    def parse(cls, raw: str | None) -> "AllowList":
        """Build an allow-list from its newline-separated config form."""
        return cls(parse_allow_list(raw))

    @classmethod
    def of(cls, *hosts: str) -> "AllowList":
        """Build an allow-list from individual host patterns."""
        return cls.parse("\n".join(hosts))

    def matches(self, hostname: str) -> bool:
        """Return True if the host should be left unproxied."""
        return host_matches(hostname, self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)
