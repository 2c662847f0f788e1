"""Error taxonomy for policy decisions.

Every "do not proceed" verdict is a ``PolicyDenied`` so callers can catch a
single type. Subclasses let hosts and logs tell apart why the call stopped:

- ``ApprovalPending``: channel mode, a human has to answer first. The message
  encodes the reply protocol and is meant to be relayed verbatim.
- ``NoApprovalChannel``: an ASK rule fired with no terminal and no session,
  so nobody could be asked.
"""

from __future__ import annotations


class WardenError(Exception):
    """Base for all toolwarden errors."""


class PolicyDenied(WardenError):
    """The operation must not run.

    Attributes:
        module: Module name of the blocked operation.
        method: Method name of the blocked operation.
        reason: Rule description or other human-readable cause.
    """

    def __init__(
        self,
        message: str,
        *,
        module: str,
        method: str,
        reason: str | None = None,
    ) -> None:
        super().__init__(message)
        self.module = module
        self.method = method
        self.reason = reason

    @property
    def action_name(self) -> str:
        return f"{self.module}.{self.method}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, action={self.action_name!r})"


class ApprovalPending(PolicyDenied):
    """Blocked until a human replies on the session's channel.

    Attributes:
        respond_tool_available: Whether the reply tool was offered in the
            instructions (otherwise the retry itself is the approval).
    """

    def __init__(
        self,
        message: str,
        *,
        module: str,
        method: str,
        reason: str | None = None,
        respond_tool_available: bool = False,
    ) -> None:
        super().__init__(message, module=module, method=method, reason=reason)
        self.respond_tool_available = respond_tool_available


class NoApprovalChannel(PolicyDenied):
    """ASK rule fired without a terminal or session to ask on."""

    pass


class PolicyStoreError(WardenError):
    """Policy file could not be read, parsed or written."""

    pass
