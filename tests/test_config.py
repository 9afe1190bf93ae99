"""
tests/test_config.py — YAML Configuration Loading
==================================================
"""

from __future__ import annotations

from pathlib import Path

import pytest

from spudverse.config import SpudConfig, load_config

EXAMPLE = Path(__file__).resolve().parent.parent / "config.yaml.example"


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_example_file_loads(self):
        cfg = load_config(EXAMPLE)
        assert isinstance(cfg, SpudConfig)
        assert cfg.game_name == "SpudVerse"
        assert cfg.channel_chat_id == "@spudverse_channel"
        assert cfg.referral_bonus == 100
        assert cfg.referred_bonus == 50

    def test_economy_defaults(self, tmp_path):
        path = _write(tmp_path, (
            'game_name: "Spud"\n'
            'bot_username: "SpudBot"\n'
            "channel_chat_id: -1001234567890\n"
            "api_port: 9000\n"
        ))
        cfg = load_config(path)
        assert cfg.api_port == 9000
        assert cfg.channel_chat_id == "-1001234567890"
        assert cfg.referral_bonus == 100
        assert cfg.referred_bonus == 50
        assert cfg.session_hours == 24

    def test_economy_overrides(self, tmp_path):
        path = _write(tmp_path, (
            'game_name: "Spud"\n'
            'bot_username: "SpudBot"\n'
            'channel_chat_id: "@spud"\n'
            "api_port: 8000\n"
            "session_hours: 2\n"
            "economy:\n"
            "  referral_bonus: 300\n"
            "  referred_bonus: 75\n"
        ))
        cfg = load_config(path)
        assert (cfg.referral_bonus, cfg.referred_bonus, cfg.session_hours) == (300, 75, 2)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        path = _write(tmp_path, 'game_name: "Spud"\n')
        with pytest.raises(KeyError):
            load_config(path)

    def test_config_is_frozen(self, config):
        with pytest.raises(AttributeError):
            config.game_name = "Other"
