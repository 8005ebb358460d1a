"""
Save-slot storage abstraction.

Separates persistence from the simulation for testability. Stores deal
in serialized text only; the save orchestrator owns the envelope format.
"""

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the backing storage cannot be read or written."""


@runtime_checkable
class SaveStore(Protocol):
    """
    Abstract storage interface for save slots.

    Implementations:
    - JsonSaveStore: File-based persistence (production)
    - MemorySaveStore: In-memory storage (testing)
    """

    def write(self, slot: str, payload: str) -> None:
        """Persist a serialized save. Raises StorageError on failure."""
        ...

    def read(self, slot: str) -> str | None:
        """Read a serialized save. Returns None if the slot is empty."""
        ...

    def delete(self, slot: str) -> bool:
        """Delete a slot. Returns True if deleted."""
        ...

    def exists(self, slot: str) -> bool:
        """Check if a slot holds a save."""
        ...

    def list_slots(self) -> list[str]:
        """List occupied slots."""
        ...


class JsonSaveStore:
    """
    File-based save storage, one JSON file per slot.

    The previous contents of a slot are kept as `<slot>.json.bak`.
    """

    def __init__(self, save_dir: Path | str = "saves"):
        self.save_dir = Path(save_dir)
        try:
            self.save_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create save directory {self.save_dir}: {e}") from e

    def _path(self, slot: str) -> Path:
        return self.save_dir / f"{slot}.json"

    def write(self, slot: str, payload: str) -> None:
        """Write a slot, backing up whatever it held before."""
        save_file = self._path(slot)
        try:
            if save_file.exists():
                backup = save_file.with_suffix(".json.bak")
                backup.write_text(save_file.read_text(encoding="utf-8"), encoding="utf-8")
            save_file.write_text(payload, encoding="utf-8")
        except OSError as e:
            # Disk full, permissions, read-only media
            raise StorageError(f"Cannot write {save_file.name}: {e}") from e

    def read(self, slot: str) -> str | None:
        save_file = self._path(slot)
        if not save_file.exists():
            return None
        try:
            return save_file.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Cannot read {save_file.name}: {e}") from e

    def delete(self, slot: str) -> bool:
        save_file = self._path(slot)
        if save_file.exists():
            save_file.unlink()
            return True
        return False

    def exists(self, slot: str) -> bool:
        return self._path(slot).exists()

    def list_slots(self) -> list[str]:
        """List occupied slots sorted by most recent write."""
        files = [
            f for f in self.save_dir.glob("*.json")
            if not f.name.startswith(".")
        ]
        files.sort(key=lambda f: f.stat().st_mtime, reverse=True)
        return [f.stem for f in files]


class MemorySaveStore:
    """
    In-memory save storage for testing.

    An optional byte quota makes writes fail the way a full browser or
    disk store would.
    """

    def __init__(self, quota: int | None = None):
        self._slots: dict[str, str] = {}
        self.quota = quota

    def write(self, slot: str, payload: str) -> None:
        if self.quota is not None:
            used = sum(len(v) for k, v in self._slots.items() if k != slot)
            if used + len(payload) > self.quota:
                raise StorageError("Storage quota exceeded")
        self._slots[slot] = payload

    def read(self, slot: str) -> str | None:
        return self._slots.get(slot)

    def delete(self, slot: str) -> bool:
        if slot in self._slots:
            del self._slots[slot]
            return True
        return False

    def exists(self, slot: str) -> bool:
        return slot in self._slots

    def list_slots(self) -> list[str]:
        return list(self._slots.keys())

    def clear(self) -> None:
        """Clear all slots."""
        self._slots.clear()
