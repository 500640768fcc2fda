"""Configuration management for chartdesk.

Handles loading and generating TOML config files for per-installation
settings: who is recorded as the author of synthesized memos, the
dashboard's attention windows, audit options and the database location.
"""

from __future__ import annotations

import logging
import tomllib
from datetime import timedelta
from pathlib import Path

from chartdesk.commands import DEFAULT_ACTOR
from chartdesk.models import PersonRef

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "chartdesk.toml"
DEFAULT_DB = "chartdesk.db"

DEFAULT_CONFIG_TEMPLATE = """\
# chartdesk configuration
# Edit freely; missing keys fall back to built-in defaults.

[actor]
# Recorded as the creator of memos written by commands
id = "{actor_id}"
first_name = "{first_name}"
last_name = "{last_name}"
email = "{email}"

[view]
# Appointments starting within this many days auto-expand the section
upcoming_window_days = 7
# Doctor's notes created within this many hours auto-expand the section
recent_note_hours = 24

[audit]
# Also write a memo when a card payment settles charges
memo_on_charge_now = false

[storage]
db_path = "{db_path}"
"""


def _default_config() -> dict:
    """Return default configuration."""
    return {
        "actor": {
            "id": DEFAULT_ACTOR.id,
            "first_name": DEFAULT_ACTOR.first_name,
            "last_name": DEFAULT_ACTOR.last_name,
            "email": DEFAULT_ACTOR.email,
        },
        "view": {
            "upcoming_window_days": 7,
            "recent_note_hours": 24,
        },
        "audit": {
            "memo_on_charge_now": False,
        },
        "storage": {
            "db_path": DEFAULT_DB,
        },
    }


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> dict:
    """Load configuration from a TOML file.

    Returns a dict with the sections actor, view, audit and storage. Keys
    missing from the file keep their defaults; unknown sections are ignored.
    Falls back to defaults if the config file doesn't exist.
    """
    path = Path(config_path)
    if not path.exists():
        logger.warning(
            "Config file '%s' not found, using defaults. "
            "Run 'python -m chartdesk init-config' to generate one.",
            config_path,
        )
        return _default_config()

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    config = _default_config()
    for section, values in config.items():
        if isinstance(raw.get(section), dict):
            values.update(raw[section])

    view = config["view"]
    if view["upcoming_window_days"] < 0 or view["recent_note_hours"] < 0:
        raise ValueError(f"{config_path}: [view] windows must be non-negative")

    return config


def actor_from_config(config: dict) -> PersonRef:
    """Build the memo creator identity from the [actor] section."""
    actor = config.get("actor", {})
    return PersonRef(
        id=str(actor.get("id") or DEFAULT_ACTOR.id),
        first_name=str(actor.get("first_name", "")),
        last_name=str(actor.get("last_name", "")),
        email=str(actor.get("email", "")),
    )


def view_windows(config: dict) -> tuple[timedelta, timedelta]:
    """Return (upcoming appointment window, recent note window)."""
    view = config.get("view", {})
    return (
        timedelta(days=view.get("upcoming_window_days", 7)),
        timedelta(hours=view.get("recent_note_hours", 24)),
    )


def generate_config(
    config_path: str = DEFAULT_CONFIG_PATH,
    actor: PersonRef | None = None,
    db_path: str = DEFAULT_DB,
) -> str:
    """Write a commented config file and return its path.

    Args:
        config_path: Where to write the config file.
        actor: Identity recorded on synthesized memos. Defaults to the
            generic "Current Provider".
        db_path: SQLite database location to record under [storage].
    """
    actor = actor or DEFAULT_ACTOR
    content = DEFAULT_CONFIG_TEMPLATE.format(
        actor_id=actor.id,
        first_name=actor.first_name,
        last_name=actor.last_name,
        email=actor.email,
        db_path=db_path,
    )
    Path(config_path).write_text(content)
    return config_path
