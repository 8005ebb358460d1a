"""
Developer command line for the Goa trade simulation.

Usage:
    python -m goa_trade slots
    python -m goa_trade show save_1
    python -m goa_trade simulate --hours 72 --seed 7 --slot save_1
    python -m goa_trade config --log-level INFO --starting-gold 250
"""

import argparse
import logging
import random
import sys
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .config import Config, get_config_path, load_config, merge_config, save_config
from .game import TradeGame
from .state.store import JsonSaveStore, StorageError
from .systems.progression import RANKS

logger = logging.getLogger(__name__)

console = Console()


def _format_timestamp(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")


def _build_game(config, save_dir: Path, seed: int | None) -> TradeGame:
    rng = random.Random(seed) if seed is not None else None
    quest_paths: list[Path | str | None] = [None, *config.get("quest_dirs", [])]
    return TradeGame(
        store=JsonSaveStore(save_dir),
        rng=rng,
        starting_gold=config.get("starting_gold", 0),
        quest_paths=quest_paths,
        autosave_on_location_change=config.get("autosave_on_location_change", True),
    )


def cmd_slots(game: TradeGame) -> int:
    table = Table(title="Save Slots")
    table.add_column("Slot", style="cyan")
    table.add_column("Saved")
    table.add_column("Day", justify="right")
    table.add_column("Gold", justify="right")
    table.add_column("Version", style="dim")

    for slot in game.saves.slots():
        info = game.saves.slot_info(slot)
        if info is None:
            table.add_row(slot, "[dim]empty[/dim]", "", "", "")
            continue
        table.add_row(
            slot,
            _format_timestamp(info["timestamp"]),
            str(info["day"]),
            str(info["gold"]),
            info["version"],
        )

    console.print(table)
    return 0


def cmd_show(game: TradeGame, slot: str) -> int:
    if game.load(slot) is None:
        console.print(f"[red]Could not load {slot}[/red]")
        return 1

    console.print(
        f"[bold]{slot}[/bold]  day {game.clock.day}, hour {game.clock.hour}  "
        f"gold {game.player.gold}"
    )

    factions = Table(title="Factions")
    factions.add_column("Faction")
    factions.add_column("Reputation", justify="right")
    factions.add_column("Level")
    for row in game.factions.summary():
        factions.add_row(row["name"], str(row["reputation"]), row["level"])
    console.print(factions)

    summary = game.progression.summary()
    console.print(
        f"Rank: [bold]{summary['title']}[/bold] "
        f"(highest gold {summary['highest_gold']}, {summary['total_trades']} trades)"
    )

    contracts = Table(title="Active Contracts")
    contracts.add_column("Client")
    contracts.add_column("Good")
    contracts.add_column("Delivered", justify="right")
    contracts.add_column("Hours left", justify="right")
    for contract in game.contracts.active_contracts():
        contracts.add_row(
            contract.client_name,
            contract.good,
            f"{contract.delivered}/{contract.quantity}",
            str(game.contracts.time_remaining(contract.id)),
        )
    console.print(contracts)

    voyages = Table(title="Expeditions")
    voyages.add_column("ID", style="dim")
    voyages.add_column("Route")
    voyages.add_column("Status")
    voyages.add_column("Expected", justify="right")
    for expedition in game.expeditions.all_expeditions():
        voyages.add_row(
            expedition.id,
            expedition.route_id,
            expedition.status.value,
            str(expedition.expected_return),
        )
    console.print(voyages)

    quests = Table(title="Quests")
    quests.add_column("Quest")
    quests.add_column("State")
    for state in game.quests.active_quests():
        quests.add_row(state.quest_id, f"stage {state.stage_id}")
    for quest_id in game.quests.completed_quests():
        quests.add_row(quest_id, "[green]completed[/green]")
    for quest_id in game.quests.failed_quests():
        quests.add_row(quest_id, "[red]failed[/red]")
    console.print(quests)

    console.print(f"Achievements: {game.achievements.completion_percentage()}% unlocked")
    return 0


def cmd_simulate(game: TradeGame, hours: int, slot: str) -> int:
    """Run a headless session: trade a little, take contracts, let time pass."""
    rank = RANKS[game.progression.rank]
    console.print(f"Starting as a {rank.title} with {game.player.gold} gold")

    for offer in game.contracts.available_contracts():
        outcome = game.contracts.accept(offer.id)
        if not outcome.success:
            break

    # One unit bought and resold per open contract each hour
    for _ in range(hours):
        game.advance(1)
        for contract in game.contracts.active_contracts():
            if game.player.buy(contract.good, 1, 10):
                game.player.sell(contract.good, 1, 15)

    stats = game.contracts.stats()
    console.print(
        f"After {hours} hours: {game.player.gold} gold, "
        f"{stats['completed']} contracts completed, {stats['failed']} failed"
    )
    if not game.save(slot):
        console.print(f"[red]Could not save to {slot}[/red]")
        return 1
    console.print(f"Saved to {slot}")
    return 0


def cmd_config(config: Config, config_dir: Path, changes: dict) -> int:
    """Apply and persist config changes, then print the resulting settings."""
    if changes:
        config = merge_config(config, changes)
        if not save_config(config, config_dir):
            console.print(f"[red]Could not write {get_config_path(config_dir)}[/red]")
            return 1
        console.print(f"Saved {get_config_path(config_dir)}")

    table = Table(title="Config")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in config.items():
        table.add_row(key, str(value))
    console.print(table)
    return 0


def _config_changes(args: argparse.Namespace) -> dict:
    changes: dict = {}
    if args.default_save_dir is not None:
        changes["save_dir"] = str(args.default_save_dir)
    if args.log_level is not None:
        changes["log_level"] = args.log_level
    if args.rng_seed is not None:
        changes["rng_seed"] = args.rng_seed
    if args.starting_gold is not None:
        changes["starting_gold"] = args.starting_gold
    if args.autosave is not None:
        changes["autosave_on_location_change"] = args.autosave
    if args.quest_dir:
        changes["quest_dirs"] = [str(p) for p in args.quest_dir]
    return changes


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Inspect and exercise Goa trade saves",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--save-dir", type=Path, help="Save directory (default from config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("slots", help="List save slots")

    show = sub.add_parser("show", help="Show the contents of a save slot")
    show.add_argument("slot")

    simulate = sub.add_parser("simulate", help="Run a headless session and save it")
    simulate.add_argument("--hours", type=int, default=48)
    simulate.add_argument("--seed", type=int, help="Random seed")
    simulate.add_argument("--slot", default="save_1")

    settings = sub.add_parser("config", help="Show or change persistent settings")
    settings.add_argument("--default-save-dir", type=Path, help="Save directory used when --save-dir is omitted")
    settings.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    settings.add_argument("--seed", dest="rng_seed", type=int, help="Fixed seed for every session")
    settings.add_argument("--starting-gold", type=int)
    settings.add_argument("--autosave", action=argparse.BooleanOptionalAction, default=None,
                          help="Autosave on location change")
    settings.add_argument("--quest-dir", type=Path, action="append", help="Extra quest directory (repeatable)")

    args = parser.parse_args(argv)

    config_dir = args.save_dir or Path("saves")
    save_dir = config_dir
    config = load_config(config_dir)
    if args.save_dir is None:
        save_dir = Path(config.get("save_dir", "saves"))

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.get("log_level", "WARNING"),
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "config":
        return cmd_config(config, config_dir, _config_changes(args))

    seed = getattr(args, "seed", None)
    if seed is None:
        seed = config.get("rng_seed")

    try:
        game = _build_game(config, save_dir, seed)
    except StorageError as e:
        console.print(f"[red]{e}[/red]")
        return 1

    if args.command == "slots":
        return cmd_slots(game)
    if args.command == "show":
        return cmd_show(game, args.slot)
    return cmd_simulate(game, args.hours, args.slot)


if __name__ == "__main__":
    sys.exit(main())
