"""
Tests for user configuration persistence and the config command.
"""

import json

from goa_trade.__main__ import main
from goa_trade.config import DEFAULT_CONFIG, get_config_path, load_config, merge_config, save_config


class TestConfig:

    def test_defaults_when_missing(self, tmp_path):
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_defaults_are_copied(self, tmp_path):
        config = load_config(tmp_path)
        config["starting_gold"] = 5
        config["quest_dirs"].append("extra")
        assert DEFAULT_CONFIG["starting_gold"] == 100
        assert DEFAULT_CONFIG["quest_dirs"] == []

    def test_round_trip_merges_with_defaults(self, tmp_path):
        """Keys missing from the file fall back to defaults."""
        assert save_config({"log_level": "DEBUG", "rng_seed": 7}, tmp_path)

        config = load_config(tmp_path)

        assert config["log_level"] == "DEBUG"
        assert config["rng_seed"] == 7
        assert config["save_dir"] == "saves"

    def test_corrupt_file_gives_defaults(self, tmp_path):
        get_config_path(tmp_path).write_text("{broken")
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_non_object_file_gives_defaults(self, tmp_path):
        get_config_path(tmp_path).write_text("[1, 2]")
        assert load_config(tmp_path) == DEFAULT_CONFIG

    def test_unknown_keys_dropped(self, tmp_path):
        get_config_path(tmp_path).write_text(json.dumps({"backend": "claude", "starting_gold": 40}))

        config = load_config(tmp_path)

        assert "backend" not in config
        assert config["starting_gold"] == 40

    def test_merge_leaves_base_alone(self):
        base = load_config("does-not-exist")
        merged = merge_config(base, {"log_level": "INFO"})
        assert merged["log_level"] == "INFO"
        assert base["log_level"] == "WARNING"

    def test_unwritable_location_returns_false(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        assert not save_config(DEFAULT_CONFIG, blocker)


class TestConfigCommand:
    """`goa-trade config` writes the settings later commands read."""

    def test_changes_are_persisted(self, tmp_path):
        code = main([
            "--save-dir", str(tmp_path), "config",
            "--log-level", "INFO", "--starting-gold", "250", "--seed", "7", "--no-autosave",
        ])

        assert code == 0
        config = load_config(tmp_path)
        assert config["log_level"] == "INFO"
        assert config["starting_gold"] == 250
        assert config["rng_seed"] == 7
        assert config["autosave_on_location_change"] is False

    def test_default_save_dir_and_quest_dirs(self, tmp_path):
        main([
            "--save-dir", str(tmp_path), "config",
            "--default-save-dir", "elsewhere", "--quest-dir", "a", "--quest-dir", "b",
        ])

        config = load_config(tmp_path)
        assert config["save_dir"] == "elsewhere"
        assert config["quest_dirs"] == ["a", "b"]

    def test_no_changes_writes_nothing(self, tmp_path):
        assert main(["--save-dir", str(tmp_path), "config"]) == 0
        assert not get_config_path(tmp_path).exists()

    def test_later_changes_keep_earlier_ones(self, tmp_path):
        main(["--save-dir", str(tmp_path), "config", "--starting-gold", "250"])
        main(["--save-dir", str(tmp_path), "config", "--log-level", "ERROR"])

        config = load_config(tmp_path)
        assert config["starting_gold"] == 250
        assert config["log_level"] == "ERROR"
