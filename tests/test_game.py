"""
End-to-end tests through the wired TradeGame.

Each test drives the game the way a front end would: through the player
ledger, the clock and the subsystems' public operations.
"""

import random

from goa_trade.game import TradeGame
from goa_trade.state.event_bus import EventType
from goa_trade.state.schema import ContractStatus, ContractTemplate, ExpeditionStatus, ReputationLevel


PEPPER_ORDER = ContractTemplate(
    client_id="crown_officer",
    client_name="Crown Officer",
    faction="crown",
    good="good_pepper",
    quantity=5,
    deadline_hours=48,
    reward=100,
    reputation_reward=5,
)


class ScriptedRandom(random.Random):

    def __init__(self, *values: float):
        super().__init__(0)
        self.values = list(values)
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.values.pop(0)


class TestReputationScenario:

    def test_adjust_into_friendly(self, game, game_recorder):
        game_recorder.watch(EventType.REPUTATION_LEVEL_CHANGED)

        assert game.factions.adjust("crown", 15) == 15

        assert game.factions.get_level("crown") == ReputationLevel.FRIENDLY
        assert game_recorder.data(EventType.REPUTATION_LEVEL_CHANGED) == [
            {"faction": "crown", "previous_level": "neutral", "new_level": "friendly"}
        ]


class TestContractScenario:

    def test_partial_then_complete_delivery(self, game):
        """Selling the good fills the contract; payment lands once."""
        game.contracts.templates = [PEPPER_ORDER]
        game.advance(10)
        start = game.now
        game.contracts.refresh()
        contract_id = game.contracts.accept(game.contracts.available_contracts()[0].id).id
        game.player.inventory["good_pepper"] = 5
        gold_before = game.player.gold

        game.advance(10)
        game.player.sell("good_pepper", 3, 0)
        contract = game.contracts.get_contract(contract_id)
        assert contract.status == ContractStatus.ACTIVE
        assert contract.delivered == 3
        assert contract.expires_at == start + 48

        game.advance(10)
        game.player.sell("good_pepper", 2, 0)

        assert contract.status == ContractStatus.COMPLETED
        assert game.player.gold == gold_before + 100
        assert game.factions.get("crown") == 5

        game.advance(48)
        assert game.player.gold == gold_before + 100
        assert game.factions.get("crown") == 5

    def test_missed_deadline_costs_gold_and_standing(self, game):
        game.contracts.templates = [
            PEPPER_ORDER.model_copy(update={"penalty": 30, "reputation_penalty": -5})
        ]
        game.player.gold = 200
        game.contracts.refresh()
        game.contracts.accept(game.contracts.available_contracts()[0].id)

        game.advance(48)

        assert game.contracts.stats()["failed"] == 1
        assert game.player.gold == 170
        assert game.factions.get("crown") == -5


class TestExpeditionScenario:

    def test_voyage_rolls_once(self, memory_store):
        rng = ScriptedRandom(0.99, 0.5)
        game = TradeGame(store=memory_store, rng=random.Random(3))
        game.expeditions.rng = rng
        game.progression.observe_gold(2000)
        game.player.inventory["silk"] = 4
        game.advance(168)

        expedition_id = game.expeditions.start("route_malacca", {"silk": 4}).id
        expedition = game.expeditions.get_expedition(expedition_id)
        assert not game.player.has_item("silk")

        game.advance(95)
        assert expedition.status == ExpeditionStatus.OUTBOUND
        game.advance(1)
        assert game.now == 264
        assert expedition.status == ExpeditionStatus.RETURNING

        gold_before = game.player.gold
        game.advance(96)
        assert game.now == 360
        assert expedition.status == ExpeditionStatus.COMPLETED
        assert game.player.gold == gold_before + expedition.actual_return

        game.advance(24)
        assert rng.calls == 2


class TestRankScenario:

    def test_rank_survives_spending(self, game):
        game.bus.emit(EventType.GOLD_CHANGED, amount=2000)
        assert game.progression.rank == 2
        assert game.progression.profile.name == "Merchant"
        assert game.queries.has_unlock("trade_routes")

        game.bus.emit(EventType.GOLD_CHANGED, amount=-1900)

        assert game.player.gold == 100
        assert game.progression.rank == 2


class TestWiring:
    """Cross-system behaviour that only shows up in the full game."""

    def test_hour_tick_order(self, game):
        calls = []
        game.quests.on_hour = lambda now: calls.append("quests")
        game.contracts.on_hour = lambda now, hour: calls.append("contracts")
        game.expeditions.on_hour = lambda now: calls.append("expeditions")

        game.advance(1)

        assert calls == ["quests", "contracts", "expeditions"]

    def test_day_tick_feeds_achievements(self, game):
        game.advance(24 * 7)
        assert game.achievements.is_unlocked("week_survivor")

    def test_achievement_gold_reward_reaches_wallet(self, game):
        for _ in range(25):
            game.player.inventory["pepper"] = 1
            game.player.sell("pepper", 1, 0)
            game.player.buy("pepper", 1, 0)

        assert game.achievements.is_unlocked("fifty_trades")
        assert game.player.gold == 100

    def test_rank_unlock_feeds_contract_board(self, game):
        assert game.contracts.board_size() == 2
        game.bus.emit(EventType.GOLD_CHANGED, amount=500)
        assert game.contracts.board_size() == 3

    def test_pepper_quest_bribe_branch(self, game):
        """Play the bundled quest start to finish through player actions."""
        game.bus.emit(EventType.GOLD_CHANGED, amount=600)
        game.factions.adjust("crown", 10)
        assert game.quests.start("quest_pepper_contract")

        game.player.talk_to("npc_crown_representative")
        assert game.quests.advance_stage("quest_pepper_contract", "choice_bribe")
        assert game.player.get_flag("pepper_bribed_info") is True
        assert game.player.gold == 500

        assert game.quests.advance_stage("quest_pepper_contract", "choice_sign_easy")
        assert game.player.get_flag("pepper_contract_method") == "bribe"
        assert game.player.deliver("npc_crown_representative", "item_signed_pepper_contract")

        assert game.quests.advance_stage("quest_pepper_contract", "choice_modest")

        assert game.quests.is_complete("quest_pepper_contract")
        assert game.player.gold == 1500
        assert game.factions.get("crown") == 35
        assert game.player.has_item("item_royal_trade_license")
        assert game.progression.has_unlock("crown_exclusive_quests")
        assert game.npcs.attitude("npc_crown_representative") >= 5
