"""
Hashing utilities for the tamper-evident audit chain.
"""

import hashlib
import json
from typing import Any, Dict, Optional


def hash_payload(payload: Dict[str, Any]) -> str:
    """
    Generate SHA-256 hash of a payload for audit trail.

    Args:
        payload: Dictionary to hash

    Returns:
        Hexadecimal SHA-256 hash string
    """
    # Sort keys for consistent hashing
    payload_str = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(payload_str.encode()).hexdigest()


def chain_hash(previous_hash: Optional[str], payload_hash: str) -> str:
    """Link a payload hash onto the previous chain hash (empty for the first entry)."""
    return hashlib.sha256(f"{previous_hash or ''}:{payload_hash}".encode()).hexdigest()
