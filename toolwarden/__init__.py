"""
toolwarden - policy gate and human approval for autonomous agent tool calls.
"""

__version__ = "1.0.0"

from .approval_queue import ApprovalEntry
from .approval_queue import ApprovalQueue
from .arbitrator import ArbitrationMode
from .arbitrator import Arbitrator
from .arbitrator import ConsoleApprovalPrompt
from .config import DEFAULT_POLICY
from .config import WardenConfig
from .errors import ApprovalPending
from .errors import NoApprovalChannel
from .errors import PolicyDenied
from .errors import PolicyStoreError
from .errors import WardenError
from .interceptor import RESPOND_TOOL_NAME
from .interceptor import Interceptor
from .interfaces import ApprovalPrompt
from .interfaces import AuditSink
from .interfaces import StatsSink
from .models import Decision
from .models import DecisionKind
from .models import DecisionRecord
from .models import ExecutionContext
from .models import PersistedPolicy
from .models import SecurityPolicy
from .models import SecurityRule
from .models import Stats
from .policy import RuleResolver
from .tool_hook import HookResult
from .tool_hook import ToolCallHook
from .tool_hook import build_tool_hook
from .tool_hook import map_tool

__all__ = [
    # Core
    "RuleResolver",
    "ApprovalQueue",
    "ApprovalEntry",
    "Arbitrator",
    "ArbitrationMode",
    "ConsoleApprovalPrompt",
    "Interceptor",
    # Models
    "Decision",
    "DecisionKind",
    "DecisionRecord",
    "ExecutionContext",
    "PersistedPolicy",
    "SecurityPolicy",
    "SecurityRule",
    "Stats",
    # Collaborator protocols
    "ApprovalPrompt",
    "AuditSink",
    "StatsSink",
    # Errors
    "WardenError",
    "PolicyDenied",
    "ApprovalPending",
    "NoApprovalChannel",
    "PolicyStoreError",
    # Configuration
    "DEFAULT_POLICY",
    "WardenConfig",
    # Host integration
    "RESPOND_TOOL_NAME",
    "HookResult",
    "ToolCallHook",
    "build_tool_hook",
    "map_tool",
]
