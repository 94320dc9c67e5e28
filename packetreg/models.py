"""Packet record and content hashing helpers."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any


@dataclass
class Packet:
    """
    A registered unit of data with validation status and reward accounting.

    `id`, `owner`, `name`, `data_type`, `data_hash` and `created_at` never
    change after registration. The registry hands out copies (see `copy`),
    so editing a returned record has no effect on registry state.
    """

    id: int
    owner: str
    name: str
    data_type: str
    data_hash: str
    created_at: datetime
    validated: bool = False
    reward: int = 0
    total_rewarded: int = 0

    def copy(self) -> Packet:
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "id": self.id,
            "owner": self.owner,
            "name": self.name,
            "data_type": self.data_type,
            "data_hash": self.data_hash,
            "created_at": self.created_at.isoformat(),
            "validated": self.validated,
            "reward": self.reward,
            "total_rewarded": self.total_rewarded,
        }


def compute_data_hash(content: bytes | str) -> str:
    """
    Compute the sha256 fingerprint used as a packet's data_hash.

    Args:
        content: Raw bytes or text (text is encoded as UTF-8)

    Returns:
        Hex-encoded sha256 hash
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def hash_file(path: Path, *, chunk_size: int = 1 << 16) -> str:
    """Hash a file's bytes without reading it into memory at once."""
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()
