"""Content digests and dependency fingerprints."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Digest recorded for a file that does not exist.
ABSENT_DIGEST = ""

_CHUNK_SIZE = 1024 * 1024


class FingerprintReadError(Exception):
    """Raised when an existing file cannot be read for digesting."""

    def __init__(self, path: str, cause: OSError):
        super().__init__(f"Error reading file {path}: {cause}")
        self.path = path
        self.cause = cause


def digest_file(path: Path) -> str:
    """Compute the SHA-256 hex digest of a file's full contents.

    Args:
        path: File to digest

    Returns:
        Hex digest, or ABSENT_DIGEST if the file does not exist

    Raises:
        FingerprintReadError: If the file exists but cannot be read
    """
    h = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                h.update(chunk)
    except FileNotFoundError:
        return ABSENT_DIGEST
    except OSError as e:
        raise FingerprintReadError(str(path), e) from e
    return h.hexdigest()


@dataclass(eq=False)
class Fingerprint:
    """Snapshot of a task's file dependencies: path -> content digest."""

    task_name: str
    file_hashes: dict[str, str] = field(default_factory=dict)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fingerprint):
            return NotImplemented
        return self.file_hashes == other.file_hashes

    def changed_paths(self, other: "Fingerprint") -> list[str]:
        """Paths that were added, removed or whose digest differs."""
        paths = set(self.file_hashes) | set(other.file_hashes)
        return sorted(
            p for p in paths if self.file_hashes.get(p) != other.file_hashes.get(p)
        )

    def to_dict(self) -> dict[str, Any]:
        return {"file_hashes": dict(sorted(self.file_hashes.items()))}

    @classmethod
    def from_dict(cls, task_name: str, data: dict[str, Any]) -> "Fingerprint":
        """Create from the mapping held by the state store.

        Raises:
            ValueError: If the stored mapping is malformed
        """
        hashes = data.get("file_hashes") if isinstance(data, dict) else None
        if not isinstance(hashes, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in hashes.items()
        ):
            raise ValueError(f"Malformed fingerprint record for task '{task_name}'")
        return cls(task_name=task_name, file_hashes=dict(hashes))
