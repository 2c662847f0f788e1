"""Tests for policy evaluation and decision execution."""

from unittest.mock import AsyncMock

import pytest

from conftest import RecordingPrompt
from toolwarden.arbitrator import Arbitrator
from toolwarden.errors import ApprovalPending
from toolwarden.errors import NoApprovalChannel
from toolwarden.errors import PolicyDenied
from toolwarden.interceptor import APPROVAL_REQUIRED_TAG
from toolwarden.interceptor import RESPOND_TOOL_NAME
from toolwarden.interceptor import Interceptor
from toolwarden.models import SecurityPolicy
from toolwarden.models import SecurityRule

POLICY = SecurityPolicy(
    default_action="ASK",
    modules={
        "FileSystem": {
            "read": SecurityRule(action="ALLOW"),
            "delete": SecurityRule(action="DENY", description="Deletion is strictly prohibited"),
        },
        "Shell": {"bash": SecurityRule(action="ASK", description="Shell command execution risk")},
    },
)


@pytest.fixture
def audit():
    return AsyncMock()


@pytest.fixture
def stats():
    return AsyncMock()


@pytest.fixture
def interceptor(headless_arbitrator, audit, stats, clock):
    return Interceptor(POLICY, headless_arbitrator, audit=audit, stats=stats, clock=clock)


def interactive_interceptor(queue, answer, **kwargs):
    prompt = RecordingPrompt(answer)
    arbitrator = Arbitrator(queue, is_interactive=lambda: True, prompt=prompt)
    return Interceptor(POLICY, arbitrator, **kwargs), prompt


class TestImmediateDecisions:
    @pytest.mark.asyncio
    async def test_allow_succeeds_without_queue(self, interceptor, queue, audit, stats):
        await interceptor.evaluate("FileSystem", "read", [])

        assert len(queue) == 0
        record = audit.append.await_args.args[0]
        assert record.decision == "ALLOWED"
        assert record.module == "FileSystem"
        assert record.method == "read"
        stats.increment.assert_awaited_once_with("ALLOWED", 0)

    @pytest.mark.asyncio
    async def test_deny_raises_policy_denied(self, interceptor, queue, audit):
        with pytest.raises(PolicyDenied) as exc_info:
            await interceptor.evaluate("FileSystem", "delete", [{"path": "/etc"}])

        assert type(exc_info.value) is PolicyDenied
        assert exc_info.value.reason == "Deletion is strictly prohibited"
        assert exc_info.value.action_name == "FileSystem.delete"
        assert "FileSystem.delete() was DENIED" in str(exc_info.value)
        assert len(queue) == 0

        record = audit.append.await_args.args[0]
        assert record.decision == "BLOCKED"
        assert record.reason == "Policy: DENY"
        assert record.args == [{"path": "/etc"}]

    @pytest.mark.asyncio
    async def test_unknown_decision_type_is_rejected(self, interceptor):
        interceptor.resolver.lookup = lambda m, n: SecurityRule.model_construct(action="MAYBE")
        with pytest.raises(ValueError, match="Unknown decision type"):
            await interceptor.evaluate("Shell", "bash", [])


class TestHeadless:
    @pytest.mark.asyncio
    async def test_unknown_operation_has_no_approval_channel(self, interceptor, queue, audit):
        with pytest.raises(NoApprovalChannel) as exc_info:
            await interceptor.evaluate("Unknown", "x", [])

        assert "No specific rule defined for Unknown.x" in str(exc_info.value)
        assert len(queue) == 0
        record = audit.append.await_args.args[0]
        assert record.decision == "REJECTED"
        assert record.user_id == "human"

    @pytest.mark.asyncio
    async def test_no_approval_channel_is_a_denial(self, interceptor):
        with pytest.raises(PolicyDenied):
            await interceptor.evaluate("Shell", "bash", [])


class TestChannel:
    @pytest.mark.asyncio
    async def test_first_encounter_raises_approval_pending(self, interceptor, queue):
        with pytest.raises(ApprovalPending) as exc_info:
            await interceptor.evaluate("Shell", "bash", [{"command": "ls"}], session_key="s")

        message = str(exc_info.value)
        assert message.startswith(f"{APPROVAL_REQUIRED_TAG} Shell.bash() is blocked")
        assert "Risk: Shell command execution risk" in message
        assert "call Shell.bash() again exactly as before" in message
        assert RESPOND_TOOL_NAME not in message
        assert exc_info.value.respond_tool_available is False
        assert queue.has_pending("s") is True

    @pytest.mark.asyncio
    async def test_instructions_mention_respond_tool(self, interceptor):
        interceptor.respond_tool_available = True
        with pytest.raises(ApprovalPending) as exc_info:
            await interceptor.evaluate("Shell", "bash", [], session_key="s")

        message = str(exc_info.value)
        assert "YES, NO, or ALLOW (auto-approve for 15 min)" in message
        assert f'{RESPOND_TOOL_NAME}({{"decision": "yes"}}), then retry.' in message
        assert f'{RESPOND_TOOL_NAME}({{"decision": "no"}}). Do NOT retry.' in message
        assert exc_info.value.respond_tool_available is True

    @pytest.mark.asyncio
    async def test_message_is_deterministic(self, interceptor, queue):
        messages = []
        for _ in range(2):
            with pytest.raises(ApprovalPending) as exc_info:
                await interceptor.evaluate("Shell", "bash", [], session_key="s")
            messages.append(str(exc_info.value))
            queue.deny("s")
        assert messages[0] == messages[1]

    @pytest.mark.asyncio
    async def test_retry_after_explicit_approval_succeeds(self, interceptor, queue, audit, clock):
        with pytest.raises(ApprovalPending):
            await interceptor.evaluate("Shell", "bash", [], session_key="s")

        clock.advance(90)
        assert queue.approve("s") == 1
        clock.advance(90)

        await interceptor.evaluate("Shell", "bash", [], session_key="s")
        assert audit.append.await_args.args[0].decision == "APPROVED"

    @pytest.mark.asyncio
    async def test_retry_as_approval(self, interceptor, clock):
        with pytest.raises(ApprovalPending):
            await interceptor.evaluate("Shell", "bash", [], session_key="s")
        clock.advance(59)
        await interceptor.evaluate("Shell", "bash", [], session_key="s")

    @pytest.mark.asyncio
    async def test_allow_rule_ignores_session(self, interceptor, queue):
        await interceptor.evaluate("FileSystem", "read", [], session_key="s")
        assert len(queue) == 0


class TestInteractive:
    @pytest.mark.asyncio
    async def test_approved(self, queue, clock):
        interceptor, prompt = interactive_interceptor(queue, True, clock=clock)
        await interceptor.evaluate("Shell", "bash", [{"command": "ls"}])
        assert prompt.contexts[0].args == [{"command": "ls"}]
        assert prompt.contexts[0].rule.description == "Shell command execution risk"

    @pytest.mark.asyncio
    async def test_prompt_error_is_rejection(self, queue):
        audit = AsyncMock()
        interceptor, prompt = interactive_interceptor(queue, True, audit=audit)
        prompt.confirm = AsyncMock(side_effect=EOFError("stdin closed"))

        with pytest.raises(PolicyDenied) as exc_info:
            await interceptor.evaluate("Shell", "bash", [{"command": "rm -rf /"}])

        assert type(exc_info.value) is PolicyDenied
        record = audit.append.await_args.args[0]
        assert record.decision == "REJECTED"
        assert record.user_id == "human"

    @pytest.mark.asyncio
    async def test_rejected_raises_plain_denial(self, queue):
        interceptor, _ = interactive_interceptor(queue, False)
        with pytest.raises(PolicyDenied) as exc_info:
            await interceptor.evaluate("Shell", "bash", [], session_key="s")

        assert type(exc_info.value) is PolicyDenied
        assert "was DENIED" in str(exc_info.value)
        assert len(queue) == 0


class TestReporting:
    @pytest.mark.asyncio
    async def test_decision_time_is_measured(self, queue, clock):
        audit = AsyncMock()
        prompt = RecordingPrompt(True)

        async def slow_confirm(context):
            clock.advance(2.5)
            return True

        prompt.confirm = slow_confirm
        arbitrator = Arbitrator(queue, is_interactive=lambda: True, prompt=prompt)
        interceptor = Interceptor(POLICY, arbitrator, audit=audit, clock=clock)

        await interceptor.evaluate("Shell", "bash", [])
        assert audit.append.await_args.args[0].decision_time_ms == 2500

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_change_allow(self, interceptor, audit):
        audit.append.side_effect = OSError("disk full")
        await interceptor.evaluate("FileSystem", "read", [])

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_skip_stats(self, interceptor, audit, stats):
        audit.append.side_effect = OSError("disk full")
        await interceptor.evaluate("FileSystem", "read", [])
        stats.increment.assert_awaited_once_with("ALLOWED", 0)

    @pytest.mark.asyncio
    async def test_stats_failure_does_not_skip_audit(self, interceptor, audit, stats):
        stats.increment.side_effect = RuntimeError("boom")
        await interceptor.evaluate("FileSystem", "read", [])
        assert audit.append.await_args.args[0].decision == "ALLOWED"

    @pytest.mark.asyncio
    async def test_stats_failure_does_not_change_deny(self, interceptor, stats):
        stats.increment.side_effect = RuntimeError("boom")
        with pytest.raises(PolicyDenied):
            await interceptor.evaluate("FileSystem", "delete", [])

    @pytest.mark.asyncio
    async def test_works_without_sinks(self, headless_arbitrator):
        interceptor = Interceptor(POLICY, headless_arbitrator)
        await interceptor.evaluate("FileSystem", "read")
