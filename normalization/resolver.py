"""
Commodity identity resolution.

Free-text commodity labels are resolved against the registry through an
ordered cascade of matchers; the first matcher that finds an identity
wins. Each matcher consults the whole registry before the next one runs,
so an exact match always beats a looser one. When nothing matches, a new
identity is minted using the original, untrimmed label as its name.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence
import logging

from normalization.registry import CommodityRegistry
from schemas.registry import IdentityRecord

logger = logging.getLogger(__name__)


class NameMatcher(ABC):
    """A single matching rule in the resolution cascade"""

    name = "matcher"

    @abstractmethod
    def match(self, label: str, registry: CommodityRegistry) -> Optional[IdentityRecord]:
        pass


class ExactNameMatcher(NameMatcher):
    """Case-insensitive exact match"""

    name = "exact"

    def match(self, label, registry):
        return registry.lookup(label)


class CompactNameMatcher(NameMatcher):
    """Match with all whitespace removed ("Green Gram" vs "GreenGram")"""

    name = "compact"

    def match(self, label, registry):
        return registry.lookup_compact(label)


class TruncatedNameMatcher(NameMatcher):
    """
    Match after cutting the label at the first "(" or "-" ("Wheat (Desi)" -> "Wheat").

    The truncated label is tried as-is, then with whitespace removed.
    """

    name = "truncated"

    @staticmethod
    def truncate(label: str) -> str:
        return label.split("(")[0].split("-")[0].strip()

    def match(self, label, registry):
        truncated = self.truncate(label)
        if not truncated:
            return None
        return registry.lookup(truncated) or registry.lookup_compact(truncated)


DEFAULT_MATCHERS = (
    ExactNameMatcher(),
    CompactNameMatcher(),
    TruncatedNameMatcher(),
)


class IdentityResolver:
    """
    Resolve free-text commodity names to registry identities.

    Matchers run in order; new heuristics are appended to the sequence
    without disturbing earlier rules.
    """

    def __init__(
        self,
        registry: CommodityRegistry,
        matchers: Sequence[NameMatcher] = DEFAULT_MATCHERS
    ):
        self.registry = registry
        self.matchers = tuple(matchers)

    def match(self, label: Optional[str]) -> Optional[IdentityRecord]:
        """Run the matching cascade without minting"""
        if label is None or not label.strip():
            return None

        for matcher in self.matchers:
            identity = matcher.match(label, self.registry)
            if identity is not None:
                logger.debug(f"Resolved '{label}' to {identity.code} via {matcher.name} match")
                return identity
        return None

    async def resolve(self, label: Optional[str]) -> Optional[IdentityRecord]:
        """
        Resolve a label, minting a new identity when no rule matches.

        Returns:
            The identity, or None for a null/blank label
        """
        if label is None or not label.strip():
            return None

        identity = self.match(label)
        if identity is not None:
            return identity

        return await self.registry.mint(label)
