"""
Core data models for toolwarden.
Uses Pydantic for validation and serialization.
"""

from datetime import UTC
from datetime import datetime
from typing import Any
from typing import Literal

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

Decision = Literal["ALLOW", "DENY", "ASK"]
"""Rule action: run immediately, block, or ask a human first."""

DecisionKind = Literal["ALLOWED", "APPROVED", "REJECTED", "BLOCKED"]
"""Terminal outcome of one evaluation, as recorded in the audit trail."""


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


class SecurityRule(BaseModel):
    """Rule attached to a module.method pair (or the policy-wide default)."""

    model_config = ConfigDict(frozen=True)

    action: Decision = Field(..., description="ALLOW, DENY or ASK")
    description: str | None = Field(
        default=None, description="Risk explanation shown in prompts and denial messages"
    )


class SecurityPolicy(BaseModel):
    """
    Complete security policy.

    Rules are organized as ``modules[module][method]``. A method key such as
    ``"*"`` is an ordinary key; the resolver performs no pattern matching.

    ``defaultAction`` is accepted as an alias on input so policy files written
    by other tools load unchanged.
    """

    model_config = ConfigDict(populate_by_name=True)

    default_action: Decision = Field(
        default="ASK",
        alias="defaultAction",
        description="Fallback action when no rule exists for a module.method",
    )
    modules: dict[str, dict[str, SecurityRule]] = Field(default_factory=dict)

    def rule_count(self) -> int:
        """Total number of configured module.method rules."""
        return sum(len(methods) for methods in self.modules.values())


class PersistedPolicy(SecurityPolicy):
    """Policy as stored on disk, with bookkeeping fields."""

    version: str = "1.0.0"
    created_at: str = Field(default_factory=utc_now_iso, alias="createdAt")
    updated_at: str = Field(default_factory=utc_now_iso, alias="updatedAt")


class ExecutionContext(BaseModel):
    """Everything the arbitrator needs to judge one intercepted call."""

    model_config = ConfigDict(frozen=True)

    module_name: str
    method_name: str
    args: list[Any] = Field(default_factory=list)
    rule: SecurityRule
    session_key: str | None = Field(
        default=None,
        description="Host session identifier (e.g. a messaging thread). Present in channel mode.",
    )

    @property
    def action_name(self) -> str:
        return f"{self.module_name}.{self.method_name}"


class DecisionRecord(BaseModel):
    """One line of the audit trail."""

    timestamp: str = Field(default_factory=utc_now_iso)
    module: str
    method: str
    args: list[Any] = Field(default_factory=list)
    decision: DecisionKind
    decision_time_ms: int = Field(..., ge=0, description="Milliseconds spent deciding")
    user_id: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return self.model_dump(mode="json", exclude_none=True)


class Stats(BaseModel):
    """Aggregated decision counters."""

    total_calls: int = 0
    allowed: int = 0
    approved: int = 0
    rejected: int = 0
    blocked: int = 0
    avg_decision_time_ms: int = 0
    last_reset: str = Field(default_factory=utc_now_iso)

    def percentage(self, count: int) -> float:
        """Share of total calls, in percent (0.0 when nothing recorded)."""
        if self.total_calls == 0:
            return 0.0
        return count / self.total_calls * 100
