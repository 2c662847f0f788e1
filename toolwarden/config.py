"""Runtime configuration and the built-in default policy."""

import logging
import os
from dataclasses import dataclass
from dataclasses import fields
from pathlib import Path
from typing import Any
from typing import get_args

from .models import Decision
from .models import SecurityPolicy
from .models import SecurityRule
from .paths import HOME_ENV_VAR

logger = logging.getLogger(__name__)

DEFAULT_ACTION_ENV_VAR = "TOOLWARDEN_DEFAULT_ACTION"

# Unknown tools ask a human.
DEFAULT_POLICY = SecurityPolicy(
    default_action="ASK",
    modules={
        "FileSystem": {
            "read": SecurityRule(action="ALLOW", description="Read-only access is generally safe"),
            "write": SecurityRule(action="ASK", description="Modification of files requires approval"),
            "delete": SecurityRule(action="DENY", description="Deletion is strictly prohibited"),
        },
        "Shell": {
            "bash": SecurityRule(action="ASK", description="Shell command execution risk"),
            "exec": SecurityRule(action="ASK", description="Arbitrary code execution risk"),
            "spawn": SecurityRule(action="ASK", description="Process spawning risk"),
        },
        "Network": {
            "fetch": SecurityRule(action="ASK", description="Potential data exfiltration"),
            "request": SecurityRule(action="ASK", description="HTTP request may leak data"),
        },
    },
)


def is_decision(value: Any) -> bool:
    return value in get_args(Decision)


@dataclass
class WardenConfig:
    """Configuration for the interceptor and approval queue.

    Durations are in seconds.
    """

    enabled: bool = True
    default_action: Decision = "ASK"
    approval_ttl: float = 120.0
    retry_window: float = 60.0
    cleanup_interval: float = 30.0
    blanket_duration: float = 15 * 60.0
    log_enabled: bool = True
    data_dir: Path | None = None

    def __post_init__(self) -> None:
        if not is_decision(self.default_action):
            raise ValueError(
                f"Invalid default_action {self.default_action!r}, expected one of {get_args(Decision)}"
            )
        for name in ("approval_ttl", "retry_window", "cleanup_interval", "blanket_duration"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.data_dir is not None:
            self.data_dir = Path(self.data_dir).expanduser()

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "WardenConfig":
        """Build from a host-supplied config dict, ignoring unknown keys."""
        data = data or {}
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.debug(f"Ignoring unknown config keys: {unknown}")
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_env(cls, base: dict[str, Any] | None = None) -> "WardenConfig":
        """Build from ``base`` with environment overrides applied on top."""
        data = dict(base or {})
        home = os.environ.get(HOME_ENV_VAR)
        if home:
            data["data_dir"] = Path(home)
        default_action = os.environ.get(DEFAULT_ACTION_ENV_VAR)
        if default_action:
            data["default_action"] = default_action.strip().upper()
        return cls.from_dict(data)
