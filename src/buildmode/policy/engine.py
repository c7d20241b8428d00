"""Item-legality policy.

``PolicyEngine`` answers one question: may this item be used inside a build
session?  It is a pure function of an immutable ``PolicyConfiguration`` and
the item descriptor.  Reloading configuration builds a new engine; the old
one is never mutated.

Classes
-------
- PolicyMode           — blacklist or whitelist classification
- ConfigParseError     — one rejected configuration entry
- PolicyConfiguration  — frozen mode + item-type sets
- PolicyEngine         — ``is_legal(item)`` classifier

Functions
---------
- normalize_item_type  — canonical form of an item-type identifier
"""
from __future__ import annotations

import logging
import re
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from buildmode.session.state import ItemStack

if TYPE_CHECKING:
    from buildmode.config import Settings

logger = logging.getLogger(__name__)

_DEFAULT_NAMESPACE = "minecraft:"
_ITEM_TYPE_RE = re.compile(r"^[a-z0-9_]+(:[a-z0-9_./]+)?$")


class PolicyMode(str, Enum):
    BLACKLIST = "blacklist"
    WHITELIST = "whitelist"


class ConfigParseError(ValueError):
    """A configuration entry that was rejected and excluded from the policy."""

    def __init__(self, entry: object, reason: str) -> None:
        self.entry = entry
        self.reason = reason
        super().__init__(f"Invalid entry {entry!r}: {reason}")


def normalize_item_type(raw: str) -> str:
    """Return the canonical form of an item-type identifier.

    Identifiers are case-insensitive and the default ``minecraft:``
    namespace is dropped, so ``"Minecraft:OAK_LOG"`` and ``"oak_log"`` match.
    """
    name = raw.strip().lower()
    if name.startswith(_DEFAULT_NAMESPACE):
        name = name[len(_DEFAULT_NAMESPACE):]
    return name


@dataclass(frozen=True)
class PolicyConfiguration:
    """Immutable policy settings.

    Parameters
    ----------
    mode:
        Classification strategy.
    blacklist:
        Item types denied in blacklist mode.
    whitelist:
        Item types allowed in whitelist mode.
    errors:
        Entries rejected while building this configuration.
    """

    mode: PolicyMode = PolicyMode.BLACKLIST
    blacklist: frozenset[str] = frozenset()
    whitelist: frozenset[str] = frozenset()
    errors: tuple[ConfigParseError, ...] = field(default=(), compare=False)

    @classmethod
    def build(
        cls,
        mode: str,
        blacklist: Iterable[object] = (),
        whitelist: Iterable[object] = (),
        catalog: Collection[str] | None = None,
    ) -> PolicyConfiguration:
        """Validate raw entries and build a configuration.

        Invalid entries are logged, recorded in ``errors`` and left out of
        both sets.

        Parameters
        ----------
        mode:
            ``"blacklist"`` or ``"whitelist"`` (case-insensitive).  Anything
            else falls back to blacklist.
        blacklist, whitelist:
            Raw item-type identifiers.
        catalog:
            Optional collection of known item types.  When given, entries
            not in it are rejected.
        """
        errors: list[ConfigParseError] = []
        known = (
            frozenset(normalize_item_type(name) for name in catalog)
            if catalog is not None
            else None
        )

        try:
            policy_mode = PolicyMode(str(mode).strip().lower())
        except ValueError:
            error = ConfigParseError(mode, "unknown restriction mode, using blacklist")
            logger.warning("%s", error)
            errors.append(error)
            policy_mode = PolicyMode.BLACKLIST

        parsed_black = _parse_entries("blacklist", blacklist, known, errors)
        parsed_white = _parse_entries("whitelist", whitelist, known, errors)
        if known is None and (parsed_black or parsed_white):
            logger.info(
                "%d item type(s) accepted on syntax alone; no catalog to check against",
                len(parsed_black | parsed_white),
            )
        return cls(
            mode=policy_mode,
            blacklist=parsed_black,
            whitelist=parsed_white,
            errors=tuple(errors),
        )


def _parse_entries(
    list_name: str,
    entries: Iterable[object],
    known: frozenset[str] | None,
    errors: list[ConfigParseError],
) -> frozenset[str]:
    accepted: set[str] = set()
    for entry in entries:
        if not isinstance(entry, str) or not entry.strip():
            error = ConfigParseError(entry, f"{list_name} entry is not an item type name")
        else:
            name = normalize_item_type(entry)
            if not _ITEM_TYPE_RE.match(name):
                error = ConfigParseError(entry, f"{list_name} entry is not a valid identifier")
            elif known is not None and name not in known:
                error = ConfigParseError(entry, f"{list_name} entry is not a known item type")
            else:
                accepted.add(name)
                continue
        logger.warning("Invalid material in %s: %s", list_name, error)
        errors.append(error)
    return frozenset(accepted)


class PolicyEngine:
    """Classifies item descriptors as legal or illegal for build sessions.

    In blacklist mode an item is legal unless its type is listed; in
    whitelist mode it is legal only if its type is listed.  An item whose
    type passes is still illegal when it carries enchantments, a custom
    display name or lore, since those mark a non-mundane variant that the
    type alone cannot distinguish.

    Parameters
    ----------
    config:
        The immutable configuration to classify against.
    """

    def __init__(self, config: PolicyConfiguration | None = None) -> None:
        self._config = config or PolicyConfiguration()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        catalog: Collection[str] | None = None,
    ) -> PolicyEngine:
        """Build an engine from the item lists in ``settings``."""
        config = PolicyConfiguration.build(
            settings.restriction_mode,
            settings.blacklist,
            settings.whitelist,
            catalog=catalog,
        )
        logger.debug(
            "Policy loaded: mode=%s blacklist=%d whitelist=%d rejected=%d",
            config.mode.value,
            len(config.blacklist),
            len(config.whitelist),
            len(config.errors),
        )
        return cls(config)

    @property
    def config(self) -> PolicyConfiguration:
        return self._config

    def is_type_allowed(self, item_type: str) -> bool:
        """Apply only the blacklist/whitelist rule to an item type."""
        name = normalize_item_type(item_type)
        if self._config.mode is PolicyMode.WHITELIST:
            return name in self._config.whitelist
        return name not in self._config.blacklist

    def is_legal(self, item: ItemStack | None) -> bool:
        """Return True if ``item`` may be used inside a build session.

        An empty hand (``None``) is always legal.
        """
        if item is None:
            return True
        if not self.is_type_allowed(item.type):
            return False
        return not item.is_decorated

    def __repr__(self) -> str:
        return (
            f"PolicyEngine(mode={self._config.mode.value!r}, "
            f"blacklist={len(self._config.blacklist)}, "
            f"whitelist={len(self._config.whitelist)})"
        )
