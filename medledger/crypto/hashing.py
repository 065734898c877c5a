import datetime
import hashlib
import json
import os

from pydantic import BaseModel


def _plain(data):
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, (set, frozenset)):
        return sorted(data)
    return data


def canonical_json(data) -> str:
    """Serialize data deterministically (sorted keys, compact separators)"""
    return json.dumps(_plain(data), sort_keys=True, separators=(",", ":"), default=_json_default)


def _json_default(value):
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    return str(value)


def hash_text(text) -> str:
    """Hash a string or bytes using SHA-256"""
    if isinstance(text, str):
        text = text.encode("utf-8")
    return hashlib.sha256(text).hexdigest()


def hash_data(data) -> str:
    """Hash the canonical JSON form of data using SHA-256"""
    return hash_text(canonical_json(data))


def transaction_hash(data) -> str:
    """Hash-shaped transaction reference for data.

    The content is salted with the current time and random bytes, so two
    submissions of the same payload get distinct references.
    """
    digest = hashlib.sha256()
    digest.update(canonical_json(data).encode("utf-8"))
    digest.update(datetime.datetime.now(datetime.timezone.utc).isoformat().encode("utf-8"))
    digest.update(os.urandom(8))
    return f"0x{digest.hexdigest()[:40]}"


def is_transaction_hash(value) -> bool:
    if not isinstance(value, str) or len(value) != 42 or not value.startswith("0x"):
        return False
    try:
        int(value[2:], 16)
    except ValueError:
        return False
    return True
