"""
Bi-temporal version chains.

A chain appends versions of one entity kind. Rows are looked up by natural
key; the row with the highest row_id is the current version. An update never
rewrites history: the current row's transaction-time range is closed and a new
row carrying the same business key is appended. Resubmitting unchanged content
is detected by fingerprint and writes nothing.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from sqlalchemy import or_, select

import rtstore.config as config
from rtstore.errors import ValidationIssue
from rtstore.fingerprint import content_fingerprint, row_fingerprint
from rtstore.models import BiTemporalRecord
from rtstore.sequences import SequenceAllocator
from rtstore.services.identity import IdentityMapper
from rtstore.services.shared import (
    _coerce_uuid,
    _validate_required_text,
    _validate_type_id,
    MAX_KEY_LENGTH,
    logger,
)
from rtstore.temporal import RESOLUTION, to_naive_utc, utcnow


class AppendOutcome(str, PyEnum):
    created = "created"
    unchanged = "unchanged"
    updated = "updated"


@dataclass(frozen=True)
class VersionResult:
    outcome: AppendOutcome
    row: BiTemporalRecord
    uuid: uuid.UUID
    closed_row_id: Optional[int] = None


class BiTemporalVersionChain:
    def __init__(
        self,
        model: type,
        identity: IdentityMapper,
        allocator: SequenceAllocator,
        clock: Callable[[], datetime] = utcnow,
        row_id_sequence: str = config.ROW_ID_SEQUENCE,
    ):
        self.model = model
        self.natural_key_fields: tuple[str, ...] = tuple(model.natural_key_fields)
        self.payload_fields: tuple[str, ...] = tuple(model.payload_fields)
        self.identity = identity
        self.allocator = allocator
        self.clock = clock
        self.row_id_sequence = row_id_sequence

    @property
    def entity(self) -> str:
        return self.model.__tablename__

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _key_values(self, natural_key: Union[Sequence[Any], str]) -> tuple:
        if isinstance(natural_key, str):
            natural_key = (natural_key,)
        values = tuple(natural_key)
        if len(values) != len(self.natural_key_fields):
            raise ValidationIssue(
                f"{self.entity} natural key needs {len(self.natural_key_fields)} value(s): "
                f"{', '.join(self.natural_key_fields)}",
                field="natural_key",
                error_type="invalid_arity",
            )
        for name, value in zip(self.natural_key_fields, values):
            _validate_required_text(value, name, MAX_KEY_LENGTH)
        return values

    def _key_filter(self, values: tuple) -> list:
        return [
            getattr(self.model, name) == value
            for name, value in zip(self.natural_key_fields, values)
        ]

    def current(self, db, natural_key) -> Optional[BiTemporalRecord]:
        """Latest physical row for the natural key."""
        values = self._key_values(natural_key)
        stmt = (
            select(self.model)
            .where(*self._key_filter(values))
            .order_by(self.model.row_id.desc())
            .limit(1)
        )
        return db.scalars(stmt).first()

    def history(self, db, natural_key) -> list[BiTemporalRecord]:
        """Every row recorded for the natural key, oldest first."""
        values = self._key_values(natural_key)
        stmt = (
            select(self.model)
            .where(*self._key_filter(values))
            .order_by(self.model.row_id.asc())
        )
        return list(db.scalars(stmt))

    def as_of(self, db, natural_key, tx_time: datetime) -> Optional[BiTemporalRecord]:
        """Row the database held as current at transaction time ``tx_time``."""
        values = self._key_values(natural_key)
        when = to_naive_utc(tx_time)
        stmt = (
            select(self.model)
            .where(*self._key_filter(values))
            .where(self.model.db_tx_from <= when)
            .where(or_(self.model.db_tx_to.is_(None), self.model.db_tx_to > when))
            .order_by(self.model.row_id.desc())
            .limit(1)
        )
        return db.scalars(stmt).first()

    def valid_at(self, db, natural_key, when: datetime) -> Optional[BiTemporalRecord]:
        """Latest recorded row whose valid time contains ``when``."""
        values = self._key_values(natural_key)
        moment = to_naive_utc(when)
        stmt = (
            select(self.model)
            .where(*self._key_filter(values))
            .where(self.model.valid_from <= moment)
            .where(or_(self.model.valid_to.is_(None), self.model.valid_to > moment))
            .order_by(self.model.row_id.desc())
            .limit(1)
        )
        return db.scalars(stmt).first()

    # -------------------------------------------------------------------------
    # Append
    # -------------------------------------------------------------------------

    def _payload_values(self, payload: Mapping[str, Any]) -> dict:
        missing = [name for name in self.payload_fields if name not in payload]
        unknown = [name for name in payload if name not in self.payload_fields]
        if missing or unknown:
            raise ValidationIssue(
                f"{self.entity} payload mismatch (missing={missing}, unknown={unknown})",
                field="payload",
                error_type="invalid_fields",
            )
        return {name: payload[name] for name in self.payload_fields}

    def _now(self) -> datetime:
        return to_naive_utc(self.clock())

    def _open_row_for(self, db, business_key: int) -> Optional[BiTemporalRecord]:
        stmt = (
            select(self.model)
            .where(self.model.id == business_key)
            .where(self.model.db_tx_to.is_(None))
            .limit(1)
        )
        return db.scalars(stmt).first()

    def _build_row(
        self,
        db,
        business_key: int,
        key_values: tuple,
        payload: dict,
        type_id: int,
        tx_from: datetime,
        valid_from: datetime,
        decision_from: datetime,
        decision_to: Optional[datetime],
    ) -> BiTemporalRecord:
        row = self.model(
            id=business_key,
            row_id=self.allocator.next_value(db, self.row_id_sequence),
            valid_from=valid_from,
            valid_to=None,
            decision_from=decision_from,
            decision_to=decision_to,
            db_tx_from=tx_from,
            db_tx_to=None,
            type_id=type_id,
            **dict(zip(self.natural_key_fields, key_values)),
            **payload,
        )
        db.add(row)
        db.flush()
        return row

    def append_version(
        self,
        db,
        natural_key,
        payload: Mapping[str, Any],
        external_uuid: Union[uuid.UUID, str],
        type_id: int = 0,
        valid_from: Optional[datetime] = None,
        decided_at: Optional[datetime] = None,
    ) -> VersionResult:
        """
        Append a version unless its content matches the current one.

        Runs read-decide-write, so it must execute inside a serializable
        transaction; a concurrent append on the same natural key makes the
        engine abort one of the two transactions.
        """
        key_values = self._key_values(natural_key)
        values = self._payload_values(payload)
        correlation = _coerce_uuid(external_uuid)
        _validate_type_id(type_id)
        valid_start = to_naive_utc(valid_from) if valid_from is not None else None
        decided = to_naive_utc(decided_at) if decided_at is not None else None

        now = self._now()
        current = self.current(db, key_values)

        if current is None:
            business_key = self.identity.associate(db, correlation, type_id)
            if self._open_row_for(db, business_key) is not None:
                raise ValidationIssue(
                    f"uuid {correlation} already identifies another {self.entity}",
                    field="uuid",
                    error_type="conflict",
                    error_code="uuid_bound_to_other_entity",
                    data={"business_key": business_key},
                )
            row = self._build_row(
                db,
                business_key,
                key_values,
                values,
                type_id,
                tx_from=now,
                valid_from=valid_start or now,
                decision_from=decided or now,
                decision_to=None,
            )
            logger.info(
                "version_created",
                extra={"entity": self.entity, "business_key": business_key, "row_id": row.row_id},
            )
            return VersionResult(AppendOutcome.created, row, correlation)

        stored_hash = row_fingerprint(current, self.payload_fields)
        incoming_hash = content_fingerprint(values[name] for name in self.payload_fields)
        if stored_hash == incoming_hash:
            logger.debug(
                "version_unchanged",
                extra={"entity": self.entity, "business_key": current.id, "row_id": current.row_id},
            )
            return VersionResult(AppendOutcome.unchanged, current, correlation)

        # Transaction time never runs backwards for one entity.
        closed_at = max(now, current.db_tx_from + RESOLUTION)
        current.db_tx_to = closed_at
        db.flush()

        if decided is not None:
            decision_from, decision_to = decided, None
        else:
            decision_from, decision_to = current.decision_from, current.decision_to

        row = self._build_row(
            db,
            current.id,
            key_values,
            values,
            type_id,
            tx_from=closed_at,
            valid_from=valid_start or closed_at,
            decision_from=decision_from,
            decision_to=decision_to,
        )
        logger.info(
            "version_appended",
            extra={
                "entity": self.entity,
                "business_key": row.id,
                "row_id": row.row_id,
                "previous_row_id": current.row_id,
            },
        )
        return VersionResult(AppendOutcome.updated, row, correlation, closed_row_id=current.row_id)

    def append(
        self,
        db,
        natural_key,
        payload: Mapping[str, Any],
        external_uuid: Union[uuid.UUID, str],
        type_id: int = 0,
        valid_from: Optional[datetime] = None,
        decided_at: Optional[datetime] = None,
    ) -> uuid.UUID:
        """Append and return the caller's UUID as a correlation token."""
        return self.append_version(
            db,
            natural_key,
            payload,
            external_uuid,
            type_id=type_id,
            valid_from=valid_from,
            decided_at=decided_at,
        ).uuid
