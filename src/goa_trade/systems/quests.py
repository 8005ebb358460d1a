"""
Quest engine for the Goa trade simulation.

Quests are branching stage machines loaded from YAML (or JSON) data files.
A started quest sits on one stage at a time; stages advance when the player
satisfies their objective (talking to someone, collecting or delivering
goods) or picks one of the stage's choices. Choices can jump to any stage,
or to the pseudo-stages "complete" and "fail".

Stage and choice effects, and completion rewards, are published as write
requests on the bus. The engine never touches gold, items or reputation
itself.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..state.collaborators import GameQueries
from ..state.event_bus import EventBus, EventType, notify
from ..state.schema import (
    QUEST_COMPLETE,
    QUEST_FAIL,
    ActiveQuestState,
    Comparison,
    Effect,
    EffectKind,
    NoticeSeverity,
    Quest,
    QuestChoice,
    QuestStage,
    QuestsSection,
    Requirement,
    RequirementKind,
    Reward,
    RewardKind,
    SaveEnvelope,
    StageKind,
)

logger = logging.getLogger(__name__)


# Bundled quest data
DEFAULT_QUESTS_DIR = Path(__file__).parent.parent / "data" / "quests"

QUEST_FILE_PATTERNS = ("*.yaml", "*.yml", "*.json")

# FEATURE_UNLOCKED source for unlock rewards
QUEST_SOURCE = "quest"


class QuestDataError(Exception):
    """Raised when a quest data file cannot be parsed."""


# -----------------------------------------------------------------------------
# Loading
# -----------------------------------------------------------------------------

def load_quest_file(path: Path) -> list[Quest]:
    """
    Parse one quest data file.

    The file holds either a single quest mapping or a mapping with a
    `quests:` list.

    Raises:
        QuestDataError: If the file is unreadable or a quest is malformed
    """
    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise QuestDataError(f"{path.name}: {e}") from e

    if not isinstance(data, dict):
        raise QuestDataError(f"{path.name}: expected a mapping at top level")

    entries = data["quests"] if "quests" in data else [data]
    try:
        return [Quest.model_validate(entry) for entry in entries]
    except ValidationError as e:
        raise QuestDataError(f"{path.name}: {e}") from e


def load_quests(path: Path | str | None = None) -> list[Quest]:
    """
    Load every quest under a file or directory.

    Malformed files are logged and skipped.
    """
    root = Path(path) if path is not None else DEFAULT_QUESTS_DIR
    if root.is_file():
        files = [root]
    elif root.is_dir():
        files = sorted(f for pattern in QUEST_FILE_PATTERNS for f in root.glob(pattern))
    else:
        logger.warning(f"Quest data path not found: {root}")
        return []

    quests: list[Quest] = []
    for quest_file in files:
        try:
            quests.extend(load_quest_file(quest_file))
        except QuestDataError as e:
            logger.error(f"Skipping quest file: {e}")
    return quests


# -----------------------------------------------------------------------------
# Requirement checks
# -----------------------------------------------------------------------------

def compare(actual: Any, expected: Any, comparison: Comparison) -> bool:
    if comparison == Comparison.GTE:
        return actual >= expected
    if comparison == Comparison.LTE:
        return actual <= expected
    if comparison == Comparison.EQ:
        return actual == expected
    return actual != expected


def describe_requirement(req: Requirement) -> str:
    symbols = {
        Comparison.GTE: ">=",
        Comparison.LTE: "<=",
        Comparison.EQ: "==",
        Comparison.NEQ: "!=",
    }
    if req.kind == RequirementKind.GOLD:
        return f"gold {symbols[req.comparison]} {req.value}"
    if req.kind == RequirementKind.REPUTATION:
        return f"{req.target} reputation {symbols[req.comparison]} {req.value}"
    if req.kind == RequirementKind.ITEM:
        return f"carrying {req.value} {req.target}"
    if req.kind == RequirementKind.QUEST:
        return f"quest {req.target} {'completed' if req.value else 'not completed'}"
    return f"flag {req.target} {symbols[req.comparison]} {req.value}"


class QuestEngine:
    """
    Runs registered quests for the player.

    Reads player state through GameQueries and publishes every effect on
    the bus.
    """

    def __init__(
        self,
        bus: EventBus,
        queries: GameQueries | None = None,
        quests: list[Quest] | None = None,
    ):
        self.bus = bus
        self.queries = queries or GameQueries()
        self._quests: dict[str, Quest] = {}
        self._active: dict[str, ActiveQuestState] = {}
        self._completed: list[str] = []
        self._failed: list[str] = []

        if quests:
            self.register_many(quests)

        bus.on(EventType.NPC_INTERACTION, self._on_npc_interaction)
        bus.on(EventType.ITEM_ACQUIRED, self._on_item_acquired)
        bus.on(EventType.ITEM_DELIVERED, self._on_item_delivered)
        bus.on(EventType.STATE_GATHER, self._on_gather)
        bus.on(EventType.STATE_RESTORE, self._on_restore)

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def register(self, quest: Quest) -> None:
        if quest.id in self._quests:
            logger.warning(f"Replacing quest definition: {quest.id}")
        self._quests[quest.id] = quest

    def register_many(self, quests: list[Quest]) -> None:
        for quest in quests:
            self.register(quest)

    def load_quests(self, path: Path | str | None = None) -> int:
        """Load and register quests from a file or directory. Returns count loaded."""
        quests = load_quests(path)
        self.register_many(quests)
        return len(quests)

    def get_quest(self, quest_id: str) -> Quest | None:
        return self._quests.get(quest_id)

    def all_quests(self) -> list[Quest]:
        return list(self._quests.values())

    # -------------------------------------------------------------------------
    # Status queries
    # -------------------------------------------------------------------------

    def is_active(self, quest_id: str) -> bool:
        return quest_id in self._active

    def is_complete(self, quest_id: str) -> bool:
        return quest_id in self._completed

    def is_failed(self, quest_id: str) -> bool:
        return quest_id in self._failed

    def active_quests(self) -> list[ActiveQuestState]:
        return list(self._active.values())

    def completed_quests(self) -> list[str]:
        return list(self._completed)

    def failed_quests(self) -> list[str]:
        return list(self._failed)

    def get_state(self, quest_id: str) -> ActiveQuestState | None:
        return self._active.get(quest_id)

    def current_stage(self, quest_id: str) -> QuestStage | None:
        state = self._active.get(quest_id)
        if state is None:
            return None
        return self._quests[quest_id].stages[state.stage_index]

    def available_choices(self, quest_id: str) -> list[QuestChoice]:
        """Choices on the current stage whose conditions the player meets."""
        stage = self.current_stage(quest_id)
        if stage is None:
            return []
        return [
            c for c in stage.choices
            if c.condition is None or self.check_requirement(c.condition)
        ]

    def quests_from_npc(self, npc_id: str, available_only: bool = True) -> list[Quest]:
        """Quests this NPC gives, optionally only those the player can start now."""
        quests = [q for q in self._quests.values() if q.giver == npc_id]
        if available_only:
            quests = [q for q in quests if self.can_start(q.id)[0]]
        return quests

    # -------------------------------------------------------------------------
    # Requirements
    # -------------------------------------------------------------------------

    def check_requirement(self, req: Requirement) -> bool:
        if req.kind == RequirementKind.GOLD:
            return compare(self.queries.gold(), req.value, req.comparison)

        if req.kind == RequirementKind.REPUTATION:
            return compare(self.queries.reputation(req.target), req.value, req.comparison)

        if req.kind == RequirementKind.ITEM:
            return self.queries.has_item(req.target, int(req.value) or 1)

        if req.kind == RequirementKind.QUEST:
            done = self.is_complete(req.target)
            wanted = bool(req.value)
            if req.comparison == Comparison.NEQ:
                return done != wanted
            return done == wanted

        # Flags: unset reads as False for equality checks; ordered checks
        # on an unset flag only pass for False
        actual = self.queries.flag(req.target)
        if actual is None:
            if req.comparison in (Comparison.EQ, Comparison.NEQ):
                return compare(False, req.value, req.comparison)
            return req.value is False
        try:
            return compare(actual, req.value, req.comparison)
        except TypeError:
            return False

    def can_start(self, quest_id: str) -> tuple[bool, list[str]]:
        """
        Check whether a quest can be started now.

        Returns:
            (can_start, reasons) - reasons lists every unmet condition
        """
        quest = self._quests.get(quest_id)
        if quest is None:
            return (False, [f"Unknown quest: {quest_id}"])

        reasons: list[str] = []
        if quest_id in self._active:
            reasons.append("Quest already active")
        if quest_id in self._completed and not quest.repeatable:
            reasons.append("Quest already completed")
        if quest_id in self._failed and not quest.repeatable:
            reasons.append("Quest already failed")

        for req in quest.requirements:
            if not self.check_requirement(req):
                reasons.append(f"Requires {describe_requirement(req)}")

        return (not reasons, reasons)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, quest_id: str) -> bool:
        """Start a quest at its first stage. Returns False if it can't start."""
        ok, reasons = self.can_start(quest_id)
        if not ok:
            logger.warning(f"Cannot start {quest_id}: {'; '.join(reasons)}")
            return False

        quest = self._quests[quest_id]
        # Repeatable quests leave their terminal set while running again
        if quest_id in self._completed:
            self._completed.remove(quest_id)
        if quest_id in self._failed:
            self._failed.remove(quest_id)

        first = quest.stages[0]
        self._active[quest_id] = ActiveQuestState(
            quest_id=quest_id,
            stage_index=0,
            stage_id=first.id,
            start_time=self.queries.now(),
        )
        logger.info(f"Quest started: {quest.title}")
        self.bus.emit(
            EventType.QUEST_STARTED,
            quest_id=quest_id,
            title=quest.title,
            stage_id=first.id,
            npc_id=quest.giver,
        )
        notify(self.bus, "Quest Started", quest.title)
        return True

    def advance_stage(self, quest_id: str, choice_id: str | None = None) -> bool:
        """
        Move a quest past its current stage.

        With a choice_id, the choice's condition must hold and its
        next_stage_id becomes the target. Without one, the quest moves to the
        next stage in order, completing after the last. The target is validated
        before anything changes: an unknown choice, an unmet condition or an
        unknown stage id leaves the quest untouched and returns False.
        """
        state = self._active.get(quest_id)
        if state is None:
            logger.warning(f"Cannot advance {quest_id}: not active")
            return False

        quest = self._quests[quest_id]
        stage = quest.stages[state.stage_index]
        choice: QuestChoice | None = None

        if choice_id is not None:
            choice = next((c for c in stage.choices if c.id == choice_id), None)
            if choice is None:
                logger.warning(f"Unknown choice {choice_id} on {quest_id}/{stage.id}")
                return False
            if choice.condition is not None and not self.check_requirement(choice.condition):
                logger.warning(f"Choice {choice_id} on {quest_id} is not available")
                return False
            target = choice.next_stage_id
        elif state.stage_index + 1 < len(quest.stages):
            target = quest.stages[state.stage_index + 1].id
        else:
            target = QUEST_COMPLETE

        target_index = None
        if target not in (QUEST_COMPLETE, QUEST_FAIL):
            target_index = quest.stage_index(target)
            if target_index is None:
                logger.warning(f"Quest {quest_id} points at unknown stage {target}")
                return False

        # Transition first, then publish effects against the new state
        if target_index is not None:
            state.stage_index = target_index
            state.stage_id = target
            state.progress = 0
        else:
            self._active.pop(quest_id)

        self._apply_effects(stage.on_complete)
        if choice is not None:
            self._apply_effects(choice.effects)
            self.bus.emit(
                EventType.QUEST_CHOICE_MADE,
                quest_id=quest_id,
                stage_id=stage.id,
                choice_id=choice.id,
                npc_id=quest.giver,
            )

        if target == QUEST_COMPLETE:
            self._finish(quest, completed=True)
        elif target == QUEST_FAIL:
            self._finish(quest, completed=False)
        else:
            self.bus.emit(
                EventType.QUEST_STAGE_ADVANCED,
                quest_id=quest_id,
                previous_stage=stage.id,
                stage_id=target,
            )
        return True

    def update_progress(self, quest_id: str, amount: int = 1) -> bool:
        """
        Add progress to a quantity or collect stage.

        The stage auto-advances once progress reaches its quantity, unless
        it offers choices, in which case the player must still pick one.
        """
        state = self._active.get(quest_id)
        if state is None:
            logger.warning(f"Cannot update progress on {quest_id}: not active")
            return False

        stage = self._quests[quest_id].stages[state.stage_index]
        if stage.quantity is None and stage.kind != StageKind.COLLECT:
            return False
        # Collect stages without a quantity need one item
        required = stage.quantity or 1

        state.progress += amount
        self.bus.emit(
            EventType.QUEST_PROGRESS,
            quest_id=quest_id,
            stage_id=stage.id,
            progress=state.progress,
            required=required,
        )
        if state.progress >= required and not stage.choices:
            self.advance_stage(quest_id)
        return True

    def complete(self, quest_id: str) -> bool:
        """Complete an active quest immediately, granting its rewards."""
        if quest_id not in self._active:
            logger.warning(f"Cannot complete {quest_id}: not active")
            return False
        self._finish(self._quests[quest_id], completed=True)
        return True

    def fail(self, quest_id: str, reason: str = "") -> bool:
        if quest_id not in self._active:
            logger.warning(f"Cannot fail {quest_id}: not active")
            return False
        self._finish(self._quests[quest_id], completed=False, reason=reason)
        return True

    def _finish(self, quest: Quest, completed: bool, reason: str = "") -> None:
        self._active.pop(quest.id, None)
        if completed:
            if quest.id not in self._completed:
                self._completed.append(quest.id)
            logger.info(f"Quest completed: {quest.title}")
            self._grant_rewards(quest.rewards)
            self.bus.emit(
                EventType.QUEST_COMPLETED,
                quest_id=quest.id,
                title=quest.title,
                npc_id=quest.giver,
            )
            notify(self.bus, "Quest Complete", quest.title, NoticeSeverity.SUCCESS)
        else:
            if quest.id not in self._failed:
                self._failed.append(quest.id)
            logger.info(f"Quest failed: {quest.title} {reason}".rstrip())
            self.bus.emit(
                EventType.QUEST_FAILED,
                quest_id=quest.id,
                title=quest.title,
                npc_id=quest.giver,
                reason=reason,
            )
            notify(self.bus, "Quest Failed", quest.title, NoticeSeverity.WARNING)

    # -------------------------------------------------------------------------
    # Quest flags
    # -------------------------------------------------------------------------

    def set_quest_flag(self, quest_id: str, flag: str, value: Any = True) -> bool:
        state = self._active.get(quest_id)
        if state is None:
            return False
        state.flags[flag] = value
        return True

    def get_quest_flag(self, quest_id: str, flag: str) -> Any:
        state = self._active.get(quest_id)
        return state.flags.get(flag) if state else None

    # -------------------------------------------------------------------------
    # Effects
    # -------------------------------------------------------------------------

    def _apply_effects(self, effects: list[Effect]) -> None:
        for effect in effects:
            if effect.kind == EffectKind.GOLD:
                self.bus.emit(EventType.GOLD_CHANGED, amount=int(effect.value))
            elif effect.kind == EffectKind.REPUTATION:
                self.bus.emit(
                    EventType.REPUTATION_GRANT, faction=effect.target, amount=int(effect.value)
                )
            elif effect.kind == EffectKind.ITEM:
                quantity = int(effect.value)
                if quantity >= 0:
                    self.bus.emit(EventType.ITEM_GAINED, item=effect.target, quantity=quantity)
                else:
                    self.bus.emit(EventType.ITEM_LOST, item=effect.target, quantity=-quantity)
            elif effect.kind == EffectKind.FLAG:
                self.bus.emit(EventType.FLAG_SET, flag=effect.target, value=effect.value)

    def _grant_rewards(self, rewards: list[Reward]) -> None:
        for reward in rewards:
            if reward.kind == RewardKind.GOLD:
                self.bus.emit(EventType.GOLD_CHANGED, amount=int(reward.value))
            elif reward.kind == RewardKind.REPUTATION:
                self.bus.emit(
                    EventType.REPUTATION_GRANT, faction=reward.target, amount=int(reward.value)
                )
            elif reward.kind == RewardKind.ITEM:
                self.bus.emit(
                    EventType.ITEM_GAINED, item=reward.target, quantity=int(reward.value) or 1
                )
            elif reward.kind == RewardKind.FLAG:
                self.bus.emit(EventType.FLAG_SET, flag=reward.target, value=reward.value)
            elif reward.kind == RewardKind.UNLOCK:
                self.bus.emit(
                    EventType.FEATURE_UNLOCKED, feature=reward.target, source=QUEST_SOURCE
                )

    # -------------------------------------------------------------------------
    # Clock and objective events
    # -------------------------------------------------------------------------

    def on_hour(self, now: int) -> None:
        """Fail quests whose time limit has run out."""
        for quest_id in list(self._active):
            quest = self._quests[quest_id]
            if quest.time_limit is None:
                continue
            if now - self._active[quest_id].start_time >= quest.time_limit:
                self.fail(quest_id, reason="time limit expired")

    def _on_npc_interaction(self, event) -> None:
        npc_id = event.data["npc_id"]
        for quest_id in list(self._active):
            stage = self.current_stage(quest_id)
            if (
                stage is not None
                and stage.kind == StageKind.TALK
                and stage.target == npc_id
                and not stage.choices
            ):
                self.advance_stage(quest_id)

    def _on_item_acquired(self, event) -> None:
        item = event.data["item"]
        quantity = int(event.data.get("quantity", 1))
        for quest_id in list(self._active):
            stage = self.current_stage(quest_id)
            if stage is not None and stage.kind == StageKind.COLLECT and stage.target == item:
                self.update_progress(quest_id, quantity)

    def _on_item_delivered(self, event) -> None:
        npc_id = event.data["npc_id"]
        item = event.data.get("item")
        quantity = int(event.data.get("quantity", 1))
        for quest_id in list(self._active):
            stage = self.current_stage(quest_id)
            if stage is None or stage.kind != StageKind.DELIVER or stage.target != npc_id:
                continue
            if stage.item is not None and stage.item != item:
                continue
            if quantity >= (stage.quantity or 1):
                self.advance_stage(quest_id)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def snapshot(self) -> QuestsSection:
        return QuestsSection(
            active=[s.model_copy(deep=True) for s in self._active.values()],
            completed=list(self._completed),
            failed=list(self._failed),
        )

    def restore(self, section: QuestsSection) -> None:
        self._active = {}
        for state in section.active:
            quest = self._quests.get(state.quest_id)
            if quest is None:
                logger.warning(f"Dropping saved progress for unknown quest: {state.quest_id}")
                continue
            restored = state.model_copy(deep=True)
            # Re-resolve the index from the stage id
            index = quest.stage_index(restored.stage_id)
            if index is None:
                logger.warning(f"Saved stage {restored.stage_id} missing from {quest.id}; restarting")
                index = 0
                restored.stage_id = quest.stages[0].id
                restored.progress = 0
            restored.stage_index = index
            self._active[restored.quest_id] = restored
        self._completed = list(section.completed)
        self._failed = list(section.failed)

    def _on_gather(self, event) -> None:
        self.bus.emit(
            EventType.STATE_SECTION,
            system="quests",
            data=self.snapshot().model_dump(mode="json"),
        )

    def _on_restore(self, event) -> None:
        envelope: SaveEnvelope = event.data["envelope"]
        self.restore(QuestsSection.model_validate(envelope.quests))
