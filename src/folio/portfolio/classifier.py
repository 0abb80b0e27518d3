"""Asset-class classification of consolidated banking positions.

Rules are an ordered list of (category, predicate) pairs evaluated
first-match-wins. Specific categories come first: a real-estate fund must
match "real_estate" before the broad "fund" terms of "funds" can claim it.
"""

import json
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from folio.logging import get_logger
from folio.models import DEFAULT_CATEGORY

logger = get_logger(__name__)

DEFAULT_NAME_PATTERNS: dict[str, list[str]] = {
    "real_estate": ["reit", "real estate", "property"],
    "funds": ["etf", "index", "fund"],
    "private_equity": ["private", "pe fund"],
    "private_debt": ["bond", "debt", "credit"],
    "crowdfunding": ["crowdfunding", "crowd"],
}

DEFAULT_ISIN_PREFIXES: dict[str, str] = {"FR0000": "equities"}


@dataclass(frozen=True)
class CategoryRule:
    """One classification rule: a category and the test that selects it."""

    category: str
    predicate: Callable[[str, str], bool]  # (name_lower, instrument_id_upper)


def name_rule(category: str, terms: Iterable[str]) -> CategoryRule:
    lowered = tuple(t.lower() for t in terms if t)
    return CategoryRule(category, lambda name, _id: any(t in name for t in lowered))


def prefix_rule(category: str, prefix: str) -> CategoryRule:
    upper = prefix.upper()
    return CategoryRule(category, lambda _name, ident: ident.startswith(upper))


def build_rules(
    name_patterns: Mapping[str, Iterable[str]],
    isin_prefixes: Mapping[str, str],
) -> list[CategoryRule]:
    """Name rules in mapping order, then instrument-identifier prefix rules."""
    rules = [name_rule(cat, terms) for cat, terms in name_patterns.items()]
    rules.extend(prefix_rule(cat, prefix) for prefix, cat in isin_prefixes.items())
    return rules


class AssetClassifier:
    """Assigns an asset-class tag from a position's name and instrument id."""

    def __init__(
        self,
        rules: list[CategoryRule] | None = None,
        default: str = DEFAULT_CATEGORY,
    ) -> None:
        if rules is None:
            rules = build_rules(DEFAULT_NAME_PATTERNS, DEFAULT_ISIN_PREFIXES)
        self._rules = rules
        self._default = default

    @property
    def categories(self) -> list[str]:
        return [rule.category for rule in self._rules]

    def classify(self, name: str, instrument_id: str | None = None) -> str:
        name_lower = (name or "").lower()
        ident = (instrument_id or "").upper()
        for rule in self._rules:
            if rule.predicate(name_lower, ident):
                return rule.category
        return self._default

    @classmethod
    def from_file(cls, path: str | Path) -> "AssetClassifier":
        """Load rules from a patterns file.

        Falls back to the sibling ``*.example.json`` when ``path`` does not
        exist, and to the built-in defaults when neither can be read.

        File format::

            {"categorization": {"real_estate": ["reit", ...], ...},
             "isin_prefixes": {"FR0000": "equities"}}
        """
        path = Path(path)
        candidate = path
        if not path.exists():
            candidate = path.with_name(f"{path.stem}.example{path.suffix}")

        try:
            data = json.loads(candidate.read_text(encoding="utf-8"))
            name_patterns = data["categorization"]
            if not isinstance(name_patterns, dict):
                raise ValueError("'categorization' must be an object")
            isin_prefixes = data.get("isin_prefixes", DEFAULT_ISIN_PREFIXES)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(
                "asset_patterns_fallback",
                path=str(path),
                error=str(e) or type(e).__name__,
            )
            return cls()

        logger.info("asset_patterns_loaded", path=str(candidate), categories=len(name_patterns))
        return cls(build_rules(name_patterns, isin_prefixes))
