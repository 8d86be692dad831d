"""Album alias rules: map variant album names to a canonical base name per artist."""

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from history_cleaner.consolidation.keys import KEY_SEPARATOR, artist_or_unknown, normalize_text

logger = logging.getLogger(__name__)


class RuleFileError(Exception):
    """Raised when a rule file exists but cannot be parsed."""


class ConsolidationRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    artist_name: str = Field(alias="artistName")
    base_album_name: str = Field(alias="baseAlbumName")
    variations: tuple[str, ...] = ()


class ConsolidationRules(BaseModel):
    rules: list[ConsolidationRule] = Field(default_factory=list)


class RuleTable:
    """Index of album alias rules.

    The rule file is read lazily on first use and cached for the lifetime of
    the instance. A missing file is not an error: lookups then fall back to
    plain lowercase-trim normalization. A malformed file is logged and
    treated the same way.

    Each variation maps to its rule's base name, and the base name maps to
    itself. Lookups are keyed by (artist, name), both lowercased and trimmed.
    """

    def __init__(self, path: Path | None = None, rules: list[ConsolidationRule] | None = None) -> None:
        self._path = path
        self._rules = rules
        self._index: dict[tuple[str, str], ConsolidationRule] | None = None

    @classmethod
    def from_rules(cls, rules: list[ConsolidationRule]) -> "RuleTable":
        return cls(rules=rules)

    @property
    def rule_count(self) -> int:
        self._ensure_loaded()
        return len(self._rules or [])

    def normalize_name(self, name: str | None, artist: str | None) -> str:
        """Return the lowercased base name if a rule matches, else the lowercased-trimmed name."""
        rule = self._lookup(name, artist)
        if rule is not None:
            return normalize_text(rule.base_album_name)
        return normalize_text(name)

    def normalize(self, name: str | None, artist: str | None) -> str:
        """Build the alias-resolved grouping key for a (name, artist) pair."""
        return f"{self.normalize_name(name, artist)}{KEY_SEPARATOR}{normalize_text(artist_or_unknown(artist))}"

    def canonical_name(self, name: str | None, artist: str | None) -> str | None:
        """Return the matching rule's base name in its stored casing, or None if no rule applies."""
        rule = self._lookup(name, artist)
        return rule.base_album_name if rule is not None else None

    def _lookup(self, name: str | None, artist: str | None) -> ConsolidationRule | None:
        index = self._ensure_loaded()
        if not index:
            return None
        return index.get((normalize_text(artist_or_unknown(artist)), normalize_text(name)))

    def _ensure_loaded(self) -> dict[tuple[str, str], ConsolidationRule]:
        if self._index is not None:
            return self._index

        if self._rules is None:
            try:
                self._rules = self._read_rules()
            except RuleFileError:
                logger.exception("Ignoring consolidation rules")
                self._rules = []

        index: dict[tuple[str, str], ConsolidationRule] = {}
        for rule in self._rules:
            artist = normalize_text(rule.artist_name)
            for variation in rule.variations:
                index[(artist, normalize_text(variation))] = rule
            index[(artist, normalize_text(rule.base_album_name))] = rule

        self._index = index
        return index

    def _read_rules(self) -> list[ConsolidationRule]:
        if self._path is None:
            return []
        if not self._path.is_file():
            logger.info("No consolidation rules file at %s; album aliasing disabled", self._path)
            return []

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            rules = ConsolidationRules.model_validate(data).rules
        except (OSError, ValueError) as exc:
            raise RuleFileError(f"Failed to load consolidation rules from {self._path}: {exc}") from exc

        logger.info("Loaded %d consolidation rules from %s", len(rules), self._path)
        return rules
