"""Snapshot document serialization with schema versioning.

A snapshot document carries every active session, every cooldown record and
every deferred restore.  It round-trips through JSON or YAML.  The schema
version is embedded so that future readers can perform migrations.

Per-user records are decoded independently: a malformed record is logged
and skipped, never fatal to the rest of the document.

Classes
-------
- SchemaVersionError  — unsupported ``schema_version`` in a document
- SessionRecord       — persisted form of one active session
- PendingRecord       — persisted form of one deferred restore
- SnapshotDocument    — decoded contents of a snapshot
- SnapshotSerializer  — encode/decode ``SnapshotDocument`` as JSON or YAML
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from buildmode.session.state import (
    Holdings,
    ItemStack,
    OperatingMode,
    PendingRestore,
    Session,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"
_SUPPORTED_SCHEMA_VERSIONS: frozenset[str] = frozenset({SCHEMA_VERSION})

SnapshotFormat = Literal["json", "yaml"]


class SchemaVersionError(ValueError):
    """Raised when a serialised document uses an unsupported schema version."""

    def __init__(self, version: str) -> None:
        self.version = version
        supported = ", ".join(sorted(_SUPPORTED_SCHEMA_VERSIONS))
        super().__init__(
            f"Unsupported schema version {version!r}. "
            f"Supported versions: {supported}"
        )


class SessionRecord(BaseModel):
    """On-disk layout of one active session, keyed by user id."""

    start_time: int
    end_time: int | None = None
    prior_mode: OperatingMode
    inventory: list[ItemStack | None] = Field(default_factory=list)
    armor: list[ItemStack | None] = Field(default_factory=list)
    offhand: ItemStack | None = None

    @classmethod
    def from_session(cls, session: Session) -> SessionRecord:
        state = session.saved_state
        return cls(
            start_time=session.start_time,
            end_time=session.end_time,
            prior_mode=session.prior_mode,
            inventory=list(state.primary),
            armor=list(state.armor),
            offhand=state.offhand,
        )

    def to_session(self, user_id: str) -> Session:
        return Session(
            user_id=user_id,
            start_time=self.start_time,
            end_time=self.end_time,
            prior_mode=self.prior_mode,
            saved_state=Holdings(
                primary=tuple(self.inventory),
                armor=tuple(self.armor),
                offhand=self.offhand,
            ),
        )


class PendingRecord(BaseModel):
    """On-disk layout of one deferred restore, keyed by user id."""

    prior_mode: OperatingMode
    inventory: list[ItemStack | None] = Field(default_factory=list)
    armor: list[ItemStack | None] = Field(default_factory=list)
    offhand: ItemStack | None = None

    @classmethod
    def from_pending(cls, pending: PendingRestore) -> PendingRecord:
        state = pending.saved_state
        return cls(
            prior_mode=pending.prior_mode,
            inventory=list(state.primary),
            armor=list(state.armor),
            offhand=state.offhand,
        )

    def to_pending(self, user_id: str) -> PendingRestore:
        return PendingRestore(
            user_id=user_id,
            prior_mode=self.prior_mode,
            saved_state=Holdings(
                primary=tuple(self.inventory),
                armor=tuple(self.armor),
                offhand=self.offhand,
            ),
        )


@dataclass
class SnapshotDocument:
    """Decoded snapshot contents.

    Parameters
    ----------
    sessions:
        Active sessions keyed by user id.
    cooldowns:
        Last session end time (epoch ms) keyed by user id.
    pending:
        Deferred restores keyed by user id.
    skipped:
        Descriptions of records that could not be decoded.
    """

    sessions: dict[str, Session] = field(default_factory=dict)
    cooldowns: dict[str, int] = field(default_factory=dict)
    pending: dict[str, PendingRestore] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


class SnapshotSerializer:
    """Serialize and deserialize ``SnapshotDocument`` objects.

    Parameters
    ----------
    format:
        ``"yaml"`` (default) or ``"json"``.
    """

    def __init__(self, format: SnapshotFormat = "yaml") -> None:
        if format not in ("json", "yaml"):
            raise ValueError(f"Unknown snapshot format {format!r}")
        self.format: SnapshotFormat = format

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def to_dict(self, document: SnapshotDocument) -> dict[str, object]:
        """Return the plain-data form of ``document``."""
        return {
            "schema_version": SCHEMA_VERSION,
            "sessions": {
                user_id: SessionRecord.from_session(session).model_dump(mode="json")
                for user_id, session in document.sessions.items()
            },
            "cooldowns": dict(document.cooldowns),
            "pending_restores": {
                user_id: PendingRecord.from_pending(pending).model_dump(mode="json")
                for user_id, pending in document.pending.items()
            },
        }

    def dumps(self, document: SnapshotDocument) -> str:
        """Serialise ``document`` in the configured format."""
        data = self.to_dict(document)
        if self.format == "yaml":
            return yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=True)
        return json.dumps(data, indent=2, sort_keys=True)

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    def loads(self, raw: str) -> SnapshotDocument:
        """Deserialize a document produced by ``dumps``.

        Raises
        ------
        SchemaVersionError
            If the ``schema_version`` field is not in the supported set.
        ValueError
            If the payload does not decode to a mapping.
        yaml.YAMLError, json.JSONDecodeError
            If the payload is not valid YAML / JSON.
        """
        if self.format == "yaml":
            data = yaml.safe_load(raw)
        else:
            data = json.loads(raw)
        if data is None:
            return SnapshotDocument()
        if not isinstance(data, dict):
            raise ValueError(f"Snapshot document must be a mapping, got {type(data).__name__}")
        return self.from_dict(data)

    def from_dict(self, data: dict[str, object]) -> SnapshotDocument:
        """Decode a plain-data document, skipping malformed per-user records."""
        version = str(data.get("schema_version", ""))
        if version not in _SUPPORTED_SCHEMA_VERSIONS:
            raise SchemaVersionError(version)

        document = SnapshotDocument()

        for user_id, raw_record in _section(data, "sessions").items():
            try:
                record = SessionRecord.model_validate(raw_record)
                document.sessions[str(user_id)] = record.to_session(str(user_id))
            except (ValidationError, ValueError, TypeError) as exc:
                self._skip(document, "session", user_id, exc)

        for user_id, raw_time in _section(data, "cooldowns").items():
            try:
                if isinstance(raw_time, bool):
                    raise TypeError("boolean is not a timestamp")
                document.cooldowns[str(user_id)] = int(raw_time)  # type: ignore[call-overload]
            except (ValueError, TypeError) as exc:
                self._skip(document, "cooldown", user_id, exc)

        for user_id, raw_record in _section(data, "pending_restores").items():
            try:
                pending = PendingRecord.model_validate(raw_record)
                document.pending[str(user_id)] = pending.to_pending(str(user_id))
            except (ValidationError, ValueError, TypeError) as exc:
                self._skip(document, "pending restore", user_id, exc)

        return document

    @staticmethod
    def _skip(document: SnapshotDocument, kind: str, user_id: object, exc: Exception) -> None:
        message = f"{kind} record for {user_id!r}: {exc}"
        logger.warning("Skipping malformed %s", message)
        document.skipped.append(message)

    def __repr__(self) -> str:
        return f"SnapshotSerializer(format={self.format!r})"


def _section(data: dict[str, object], name: str) -> dict[object, object]:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        logger.warning("Ignoring snapshot section %r: expected a mapping", name)
        return {}
    return section
