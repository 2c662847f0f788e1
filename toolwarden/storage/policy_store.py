"""
Policy persistence in YAML.

The policy file is created from the built-in defaults on first load. Mutations
(CLI, hosts) go through this store; the interceptor only ever reads a loaded
copy.
"""

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..config import DEFAULT_POLICY
from ..errors import PolicyStoreError
from ..models import Decision
from ..models import PersistedPolicy
from ..models import SecurityRule
from ..models import utc_now_iso
from ..paths import get_policy_path
from .files import write_atomic

logger = logging.getLogger(__name__)


class PolicyStore:
    """
    Loads and saves the security policy.

    Contract:
    - Inputs: policy file path (defaults to <data dir>/policy.yaml)
    - Outputs: PersistedPolicy
    - Side Effects: creates the file with defaults if missing
    - Errors: PolicyStoreError for unreadable, unparsable or invalid files
    """

    def __init__(self, path: Path | None = None, default_action: Decision | None = None):
        """
        Initialize store.

        Args:
            path: Policy file location
            default_action: Default action written into a freshly created policy
                (the built-in default is ASK)
        """
        self.path = path or get_policy_path()
        self.default_action = default_action

    def defaults(self) -> PersistedPolicy:
        policy = PersistedPolicy(
            default_action=self.default_action or DEFAULT_POLICY.default_action,
            modules={module: dict(rules) for module, rules in DEFAULT_POLICY.modules.items()},
        )
        return policy

    def load(self) -> PersistedPolicy:
        """Load the policy, creating the default one when no file exists."""
        if not self.path.exists():
            logger.info(f"No existing policy found, creating default at {self.path}")
            policy = self.defaults()
            self.save(policy)
            return policy

        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise PolicyStoreError(f"Failed to load policy from {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise PolicyStoreError(f"Policy file {self.path} must contain a mapping")

        try:
            policy = PersistedPolicy.model_validate(data)
        except ValidationError as e:
            raise PolicyStoreError(f"Invalid policy in {self.path}: {e}") from e

        logger.info(
            f"Policy loaded from {self.path} "
            f"(default={policy.default_action}, rules={policy.rule_count()})"
        )
        return policy

    def save(self, policy: PersistedPolicy) -> None:
        """Persist the policy, refreshing ``updated_at``."""
        policy.updated_at = utc_now_iso()
        content = yaml.dump(
            policy.model_dump(mode="json", exclude_none=True),
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )
        try:
            write_atomic(self.path, content)
        except OSError as e:
            raise PolicyStoreError(f"Failed to save policy to {self.path}: {e}") from e
        logger.info(f"Policy saved to {self.path}")

    def reset(self) -> PersistedPolicy:
        """Overwrite the stored policy with the defaults."""
        policy = self.defaults()
        self.save(policy)
        logger.info("Policy reset to defaults")
        return policy

    def set_rule(
        self,
        module_name: str,
        method_name: str,
        action: Decision,
        description: str | None = None,
    ) -> PersistedPolicy:
        """Add or replace one module.method rule."""
        policy = self.load()
        existing = policy.modules.get(module_name, {}).get(method_name)
        if description is None and existing is not None:
            description = existing.description
        policy.modules.setdefault(module_name, {})[method_name] = SecurityRule(
            action=action, description=description
        )
        self.save(policy)
        return policy

    def set_default_action(self, action: Decision) -> PersistedPolicy:
        policy = self.load()
        policy.default_action = action
        self.save(policy)
        return policy
