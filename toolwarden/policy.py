"""Rule resolution: (module, method) -> SecurityRule."""

from .models import SecurityPolicy
from .models import SecurityRule


class RuleResolver:
    """Looks up the rule for an operation in a read-only policy.

    ``lookup`` is total: it always returns a rule, falling back to the
    policy's default action when nothing more specific is configured.
    """

    def __init__(self, policy: SecurityPolicy):
        self.policy = policy

    def lookup(self, module_name: str, method_name: str) -> SecurityRule:
        module_rules = self.policy.modules.get(module_name)
        if module_rules and method_name in module_rules:
            return module_rules[method_name]

        return SecurityRule(
            action=self.policy.default_action,
            description=f"No specific rule defined for {module_name}.{method_name}",
        )
