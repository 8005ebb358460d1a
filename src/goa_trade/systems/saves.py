"""
Save orchestration.

A save is one versioned JSON envelope holding a section per subsystem.
The orchestrator never reaches into the subsystems: it broadcasts
STATE_GATHER, collects the STATE_SECTION replies, and on load broadcasts
STATE_RESTORE with the validated envelope.

Older saves are migrated forward by backfilling any fields added since
they were written.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from pydantic import ValidationError

from ..state.event_bus import EventBus, EventType, notify
from ..state.schema import (
    HOURS_PER_DAY,
    SECTION_MODELS,
    NoticeSeverity,
    SaveEnvelope,
    WorldSection,
)
from ..state.store import SaveStore, StorageError

logger = logging.getLogger(__name__)


SAVE_VERSION = "1.0.0"

SAVE_SLOTS = ("save_1", "save_2", "save_3", "autosave")
AUTOSAVE_SLOT = "autosave"

REQUIRED_SECTIONS = tuple(SECTION_MODELS.keys())


def _version_tuple(version: str) -> tuple[int, ...]:
    """Parse a dotted version string, treating junk parts as 0."""
    parts = []
    for part in version.split("."):
        try:
            parts.append(int(part))
        except ValueError:
            parts.append(0)
    return tuple(parts)


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as version a is older, equal or newer than b."""
    left, right = _version_tuple(a), _version_tuple(b)
    width = max(len(left), len(right))
    left += (0,) * (width - len(left))
    right += (0,) * (width - len(right))
    return (left > right) - (left < right)


def validate_save_data(data: Any) -> list[str]:
    """
    Structural checks on a parsed save before migration.

    Returns:
        List of problems; empty if the save is usable
    """
    if not isinstance(data, dict):
        return ["Save is not a JSON object"]

    errors = []
    if not isinstance(data.get("version"), str):
        errors.append("Missing or invalid version")
    timestamp = data.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        errors.append("Missing or invalid timestamp")
    for section in REQUIRED_SECTIONS:
        if section not in data:
            errors.append(f"Missing section: {section}")
        elif not isinstance(data[section], dict):
            errors.append(f"Section {section} is not an object")
    if "world" in data and not isinstance(data["world"], dict):
        errors.append("Section world is not an object")
    return errors


def migrate_save_data(data: dict) -> dict:
    """
    Bring a structurally valid save up to the current version.

    Every section is run through its model so fields missing from older
    saves are filled with their defaults.

    Raises:
        ValidationError: If a section's contents have the wrong shape
    """
    migrated = dict(data)
    for section, model in SECTION_MODELS.items():
        migrated[section] = model.model_validate(data[section]).model_dump(mode="json")
    migrated["world"] = WorldSection.model_validate(data.get("world") or {}).model_dump(mode="json")

    if compare_versions(data["version"], SAVE_VERSION) < 0:
        logger.info(f"Migrated save from {data['version']} to {SAVE_VERSION}")
        migrated["version"] = SAVE_VERSION
    return migrated


class SaveOrchestrator:
    """Saves and loads every subsystem through one envelope per slot."""

    def __init__(
        self,
        bus: EventBus,
        store: SaveStore,
        autosave_on_location_change: bool = True,
    ):
        self.bus = bus
        self.store = store
        self.autosave_on_location_change = autosave_on_location_change
        self._gathered: dict[str, dict] | None = None

        bus.on(EventType.STATE_SECTION, self._on_section)
        bus.on(EventType.LOCATION_CHANGED, self._on_location_changed)
        bus.on(EventType.QUICK_SAVE, self._on_quick_save)

    def slots(self) -> tuple[str, ...]:
        return SAVE_SLOTS

    def _check_slot(self, slot: str) -> bool:
        if slot not in SAVE_SLOTS:
            logger.warning(f"Unknown save slot: {slot}")
            return False
        return True

    # -------------------------------------------------------------------------
    # Save
    # -------------------------------------------------------------------------

    def gather(self) -> SaveEnvelope:
        """Collect a section from every subsystem into a fresh envelope."""
        self._gathered = {}
        try:
            self.bus.emit(EventType.STATE_GATHER)
            sections = self._gathered
        finally:
            self._gathered = None

        data: dict[str, Any] = {"version": SAVE_VERSION, "timestamp": time.time()}
        for section, model in SECTION_MODELS.items():
            # A missing subsystem saves as its empty default
            data[section] = sections.get(section, model().model_dump(mode="json"))
        data["world"] = sections.get("world", WorldSection().model_dump(mode="json"))
        return SaveEnvelope.model_validate(data)

    def save(self, slot: str) -> bool:
        """Write the whole simulation to a slot. Returns True on success."""
        if not self._check_slot(slot):
            self._report_failure(slot, "save", f"Unknown save slot: {slot}")
            return False

        envelope = self.gather()
        try:
            self.store.write(slot, envelope.model_dump_json(indent=2))
        except StorageError as e:
            logger.error(f"Save to {slot} failed: {e}")
            self._report_failure(slot, "save", str(e))
            return False

        logger.info(f"Game saved to {slot}")
        self.bus.emit(EventType.GAME_SAVED, slot=slot, success=True, error=None)
        return True

    def autosave(self) -> bool:
        return self.save(AUTOSAVE_SLOT)

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------

    def read(self, slot: str) -> SaveEnvelope | None:
        """
        Read, validate and migrate a slot without restoring it.

        Returns None (after publishing SAVE_FAILED) if the slot is empty,
        unreadable or corrupted.
        """
        if not self._check_slot(slot):
            self._report_failure(slot, "load", f"Unknown save slot: {slot}")
            return None

        try:
            payload = self.store.read(slot)
        except StorageError as e:
            logger.error(f"Load from {slot} failed: {e}")
            self._report_failure(slot, "load", str(e))
            return None

        if payload is None:
            self._report_failure(slot, "load", "No save in this slot")
            return None

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.error(f"Save {slot} is corrupted: {e}")
            self._report_failure(slot, "load", "Save data is corrupted")
            return None

        errors = validate_save_data(data)
        if errors:
            logger.error(f"Save {slot} failed validation: {'; '.join(errors)}")
            self._report_failure(slot, "load", "; ".join(errors))
            return None

        try:
            return SaveEnvelope.model_validate(migrate_save_data(data))
        except ValidationError as e:
            logger.error(f"Save {slot} has malformed sections: {e}")
            self._report_failure(slot, "load", "Save data is corrupted")
            return None

    def load(self, slot: str) -> SaveEnvelope | None:
        """Restore every subsystem from a slot. Returns the envelope, or None on failure."""
        envelope = self.read(slot)
        if envelope is None:
            return None

        self.bus.emit(EventType.STATE_RESTORE, envelope=envelope)
        logger.info(f"Game loaded from {slot}")
        self.bus.emit(EventType.GAME_LOADED, slot=slot, version=envelope.version)
        return envelope

    # -------------------------------------------------------------------------
    # Slot management
    # -------------------------------------------------------------------------

    def has_save(self, slot: str) -> bool:
        return slot in SAVE_SLOTS and self.store.exists(slot)

    def delete(self, slot: str) -> bool:
        if not self._check_slot(slot):
            return False
        return self.store.delete(slot)

    def slot_info(self, slot: str) -> dict | None:
        """
        Summary of a slot for a load menu.

        Returns:
            Dict with slot, timestamp, version, gold, day; None if empty or unreadable
        """
        if not self.has_save(slot):
            return None
        try:
            data = json.loads(self.store.read(slot) or "")
        except (StorageError, json.JSONDecodeError):
            return None
        if validate_save_data(data):
            return None

        world = data.get("world") or {}
        game_time = world.get("game_time", 0)
        return {
            "slot": slot,
            "timestamp": data["timestamp"],
            "version": data["version"],
            "gold": (world.get("player") or {}).get("gold", 0),
            "day": game_time // HOURS_PER_DAY if isinstance(game_time, int) else 0,
        }

    # -------------------------------------------------------------------------
    # Event handlers
    # -------------------------------------------------------------------------

    def _report_failure(self, slot: str, operation: str, error: str) -> None:
        self.bus.emit(EventType.SAVE_FAILED, slot=slot, operation=operation, error=error)
        if operation == "save":
            self.bus.emit(EventType.GAME_SAVED, slot=slot, success=False, error=error)
        notify(
            self.bus,
            "Save Failed" if operation == "save" else "Load Failed",
            error,
            NoticeSeverity.CRITICAL,
        )

    def _on_section(self, event) -> None:
        if self._gathered is None:
            return
        self._gathered[event.data["system"]] = event.data["data"]

    def _on_location_changed(self, event) -> None:
        if self.autosave_on_location_change:
            self.autosave()

    def _on_quick_save(self, event) -> None:
        self.save(event.data.get("slot", AUTOSAVE_SLOT))
