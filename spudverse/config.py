"""
spudverse.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for the soft settings of a deployment (game identity,
bot username, referral bonuses).  Secrets (``BOT_TOKEN``, ``JWT_SECRET``,
``DATABASE_URL``) never live here — they come from the environment / ``.env``.

Usage::

    from spudverse.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.game_name)         # "SpudVerse"
    print(cfg.referral_bonus)    # 100
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SpudConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    game_name: str

    # Telegram
    bot_username: str
    channel_chat_id: str  # e.g. "@spudverse_channel", checked by the verifier

    # API
    api_port: int

    # Economy
    referral_bonus: int = 100  # Credited to the referrer
    referred_bonus: int = 50   # Credited to the newly referred account

    # Sessions issued by /auth/telegram
    session_hours: int = 24


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> SpudConfig:
    """Read *path* and return a :class:`SpudConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    economy: dict = raw.get("economy") or {}

    return SpudConfig(
        game_name=raw["game_name"],
        bot_username=raw["bot_username"],
        channel_chat_id=str(raw["channel_chat_id"]),
        api_port=int(raw["api_port"]),
        referral_bonus=int(economy.get("referral_bonus", 100)),
        referred_bonus=int(economy.get("referred_bonus", 50)),
        session_hours=int(raw.get("session_hours", 24)),
    )
