"""Content fingerprints for change detection on versioned rows.

Each field is encoded with a type tag and a length prefix before hashing, so
field boundaries are part of the digest: ``("ab", "c")``, ``("a", "bc")`` and
``(None, "")`` all produce different fingerprints.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable

from rtstore.validators import PRICE_QUANTUM

_NULL_TAG = b"N"


def _encode_value(value: Any) -> bytes:
    if value is None:
        return _NULL_TAG
    if isinstance(value, bool):
        tag, text = b"B", "1" if value else "0"
    elif isinstance(value, int):
        tag, text = b"I", str(value)
    elif isinstance(value, Decimal):
        tag, text = b"D", str(value.quantize(PRICE_QUANTUM))
    elif isinstance(value, float):
        tag, text = b"D", str(Decimal(str(value)).quantize(PRICE_QUANTUM))
    elif isinstance(value, datetime):
        tag, text = b"T", value.isoformat()
    else:
        tag, text = b"S", str(value)
    data = text.encode("utf-8")
    return tag + str(len(data)).encode("ascii") + b":" + data


def content_fingerprint(values: Iterable[Any]) -> str:
    """Hex SHA-256 digest over an ordered sequence of field values."""
    digest = hashlib.sha256()
    count = 0
    for value in values:
        digest.update(_encode_value(value))
        count += 1
    digest.update(b"#" + str(count).encode("ascii"))
    return digest.hexdigest()


def row_fingerprint(row: Any, fields: Iterable[str]) -> str:
    return content_fingerprint(getattr(row, name) for name in fields)
