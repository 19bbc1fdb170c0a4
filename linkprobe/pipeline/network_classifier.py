"""Classify the affiliate network behind a set of observed URLs."""

import re
from collections.abc import Iterable, Sequence

from linkprobe.pipeline.models.rules import DEFAULT_NETWORK_PATTERNS, NetworkPattern

UNKNOWN_NETWORK = "unknown"


class NetworkClassifier:
    """Match URLs against an ordered table of network patterns."""

    def __init__(
        self, patterns: Sequence[NetworkPattern] = DEFAULT_NETWORK_PATTERNS
    ) -> None:
        """Compile the pattern table; table order is the tie-break."""
        self._patterns: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
            (p.name, re.compile(p.pattern, re.IGNORECASE)) for p in patterns
        )

    @property
    def networks(self) -> list[str]:
        """Network names in evaluation order."""
        return [name for name, _ in self._patterns]

    def classify(self, urls: Iterable[str]) -> str:
        """Return the first network whose pattern matches any URL.

        Args:
            urls: Every URL observed during the navigation, in any order

        Returns:
            Network name, or ``"unknown"`` if nothing matches

        """
        observed = list(urls)
        for name, pattern in self._patterns:
            if any(pattern.search(url) for url in observed):
                return name
        return UNKNOWN_NETWORK


_default_classifier = NetworkClassifier()


def classify_network(urls: Iterable[str]) -> str:
    """Classify with the built-in network table."""
    return _default_classifier.classify(urls)
