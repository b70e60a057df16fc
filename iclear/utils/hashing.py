"""
Canonical hashing for the status history chain
"""

import hashlib
import json
from datetime import datetime
from typing import Any, Optional

HASH_PREFIX = "sha256:"


def canonicalize(obj: Any) -> str:
    """
    Convert object to canonical JSON string.
    Deterministic: same input always produces same output.
    """
    def _clean(o: Any) -> Any:
        if isinstance(o, dict):
            return {k: _clean(v) for k, v in sorted(o.items())}
        elif isinstance(o, (list, tuple)):
            return [_clean(i) for i in o]
        elif isinstance(o, datetime):
            return o.isoformat()
        return o

    return json.dumps(_clean(obj), sort_keys=True, separators=(',', ':'), ensure_ascii=True)


def canonicalize_and_hash(obj: Any) -> str:
    """
    Returns: "sha256:<64-char-hex>"
    """
    digest = hashlib.sha256(canonicalize(obj).encode('utf-8')).hexdigest()
    return f"{HASH_PREFIX}{digest}"


def chain_hash(prev_hash: Optional[str], payload: dict) -> str:
    """Hash a history payload linked to the previous entry of its stream"""
    return canonicalize_and_hash({'prev_hash': prev_hash, 'payload': payload})


def verify_hash(prev_hash: Optional[str], payload: dict, expected_hash: str) -> bool:
    """
    Verify a history payload matches its stored hash.
    """
    return chain_hash(prev_hash, payload) == expected_hash
