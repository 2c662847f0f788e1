"""Data directory policy.

All persisted state (policy, audit log, statistics, log file) lives in one
directory so it can be relocated with a single environment variable.
"""

import os
from pathlib import Path

HOME_ENV_VAR = "TOOLWARDEN_HOME"

POLICY_FILENAME = "policy.yaml"
DECISIONS_FILENAME = "decisions.jsonl"
STATS_FILENAME = "stats.json"
LOG_FILENAME = "toolwarden.log"


def get_data_dir() -> Path:
    """Get the toolwarden data directory.

    Returns:
        ``$TOOLWARDEN_HOME`` when set, otherwise ``~/.toolwarden``
    """
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".toolwarden"


def get_policy_path(data_dir: Path | None = None) -> Path:
    return (data_dir or get_data_dir()) / POLICY_FILENAME


def get_decisions_path(data_dir: Path | None = None) -> Path:
    return (data_dir or get_data_dir()) / DECISIONS_FILENAME


def get_stats_path(data_dir: Path | None = None) -> Path:
    return (data_dir or get_data_dir()) / STATS_FILENAME


def get_log_path(data_dir: Path | None = None) -> Path:
    return (data_dir or get_data_dir()) / LOG_FILENAME
