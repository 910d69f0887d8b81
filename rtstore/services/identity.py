"""
UUID to business key association.

Business keys come from one counter shared by every entity kind, so a key
identifies an entity regardless of which table holds its versions.
"""

from __future__ import annotations

import uuid
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

import rtstore.config as config
from rtstore.models import IdentityMapping
from rtstore.sequences import SequenceAllocator
from rtstore.services.shared import (
    _coerce_uuid,
    _validate_type_id,
    logger,
)


class IdentityMapper:
    def __init__(self, allocator: SequenceAllocator, sequence_name: str = config.BUSINESS_KEY_SEQUENCE):
        self.allocator = allocator
        self.sequence_name = sequence_name

    def lookup(self, db, external_uuid: Union[uuid.UUID, str]) -> Optional[int]:
        key = _coerce_uuid(external_uuid)
        return db.scalar(select(IdentityMapping.business_key).where(IdentityMapping.id == key))

    def associate(self, db, external_uuid: Union[uuid.UUID, str], type_id: int = 0) -> int:
        """
        Return the business key for ``external_uuid``, minting one on first use.

        When two callers race on the same unseen UUID only one insert wins;
        the loser re-reads and returns the winner's key, so a UUID never maps
        to two keys.
        """
        key = _coerce_uuid(external_uuid)
        _validate_type_id(type_id)

        existing = self.lookup(db, key)
        if existing is not None:
            return existing

        business_key = self.allocator.next_value(db, self.sequence_name)
        mapping = IdentityMapping(id=key, business_key=business_key, type_id=type_id)
        try:
            with db.begin_nested():
                db.add(mapping)
        except IntegrityError:
            winner = self.lookup(db, key)
            if winner is None:
                raise
            logger.info(
                "business_key_conflict_recovered",
                extra={"uuid": str(key), "business_key": winner},
            )
            return winner

        logger.info(
            "business_key_minted",
            extra={"uuid": str(key), "business_key": business_key, "type_id": type_id},
        )
        return business_key
