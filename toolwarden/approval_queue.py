"""
Time-windowed approval queue for channel-mode ASK decisions.

A human's answer on a messaging channel arrives as a separate, later
invocation. The queue remembers what was asked so that invocation can be
matched back to the blocked operation.

Explicit reply (Path A):
    1. ASK fires with a session and no terminal -> ``request()``; call blocked
    2. Human answers, host calls the reply tool -> ``approve()`` / ``deny()``
    3. Agent retries the blocked call -> ``consume()`` succeeds once

Retry-as-approval (Path B, when the host has no reply tool):
    1. ASK fires -> ``request()``; call blocked
    2. Human says yes, agent retries the same call
    3. ``consume_pending()`` succeeds if the retry is within ``retry_window``

Entries expire at ``expires_at``; every read treats an expired entry as
absent. The sweep that physically removes them is lazy and throttled.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

DEFAULT_TTL = 120.0
"""Seconds an entry stays valid (reset when approved)."""

DEFAULT_RETRY_WINDOW = 60.0
"""Maximum age of a pending entry that a retry may still count as approval."""

DEFAULT_CLEANUP_INTERVAL = 30.0
"""Minimum seconds between two sweeps."""


@dataclass
class ApprovalEntry:
    """One outstanding question for a session + module.method."""

    session_key: str
    module_name: str
    method_name: str
    status: Literal["pending", "approved"]
    created_at: float
    expires_at: float

    @property
    def action_name(self) -> str:
        return f"{self.module_name}.{self.method_name}"


class ApprovalQueue:
    """
    In-memory approval state machine.

    One instance is created by the host entry point and shared by reference
    with the arbitrator and the reply-tool handler. Deny and consumption
    delete entries; there is no stored terminal state.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        retry_window: float = DEFAULT_RETRY_WINDOW,
        cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.retry_window = retry_window
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._entries: dict[str, ApprovalEntry] = {}
        self._blanket_allows: dict[str, float] = {}  # key -> expires_at
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ---- keys ----

    @staticmethod
    def key(session_key: str, module_name: str, method_name: str) -> str:
        """Composite key: one entry per session + module.method."""
        return f"{session_key}::{module_name}.{method_name}"

    def _session_entries(self, session_key: str) -> list[tuple[str, ApprovalEntry]]:
        # Match on the field; session keys may themselves contain "::"
        return [(k, e) for k, e in self._entries.items() if e.session_key == session_key]

    def _live(self, entry: ApprovalEntry | None, now: float) -> bool:
        return entry is not None and now < entry.expires_at

    # ---- core API ----

    def request(self, session_key: str, module_name: str, method_name: str) -> str:
        """
        Register a pending approval request.

        Idempotent inside the retry window: a live pending entry younger than
        ``retry_window`` is left untouched so its ``created_at`` keeps
        measuring from the first block. An older pending entry is replaced
        with a fresh one (the human is asked again).

        Returns:
            The composite key
        """
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)
            k = self.key(session_key, module_name, method_name)
            existing = self._entries.get(k)
            if existing is not None and existing.status == "pending" and self._live(existing, now):
                age = now - existing.created_at
                if age <= self.retry_window:
                    logger.debug(
                        f"ApprovalQueue: pending already exists within retry window, skipping "
                        f"(session={session_key}, action={module_name}.{method_name}, age={age:.1f}s)"
                    )
                    return k

            self._entries[k] = ApprovalEntry(
                session_key=session_key,
                module_name=module_name,
                method_name=method_name,
                status="pending",
                created_at=now,
                expires_at=now + self.ttl,
            )
            logger.info(
                f"ApprovalQueue: pending request created "
                f"(session={session_key}, action={module_name}.{method_name})"
            )
            return k

    def consume(self, session_key: str, module_name: str, method_name: str) -> bool:
        """
        Use up an explicit approval (Path A). Single use.

        Returns:
            True if a live approved entry was found and removed
        """
        with self._lock:
            now = self._clock()
            k = self.key(session_key, module_name, method_name)
            entry = self._entries.get(k)
            if entry is not None and entry.status == "approved" and self._live(entry, now):
                del self._entries[k]
                logger.info(
                    f"ApprovalQueue: approval consumed "
                    f"(session={session_key}, action={module_name}.{method_name})"
                )
                return True

            logger.debug(
                f"ApprovalQueue.consume: not found/not approved "
                f"(session={session_key}, action={module_name}.{method_name}, "
                f"status={entry.status if entry else 'missing'}, "
                f"expired={entry is not None and not self._live(entry, now)}, "
                f"queue_size={len(self._entries)})"
            )
            return False

    def consume_pending(self, session_key: str, module_name: str, method_name: str) -> bool:
        """
        Treat a retry of a blocked call as approval (Path B).

        A pending entry older than ``retry_window`` is stale: it is kept, the
        call returns False, and the next ``request()`` re-arms the wait.

        Returns:
            True if a fresh pending entry was found and removed
        """
        with self._lock:
            now = self._clock()
            k = self.key(session_key, module_name, method_name)
            entry = self._entries.get(k)
            if entry is None or entry.status != "pending" or not self._live(entry, now):
                return False

            age = now - entry.created_at
            if age > self.retry_window:
                logger.info(
                    f"ApprovalQueue: pending too old for retry-as-approval, will re-prompt "
                    f"(session={session_key}, action={module_name}.{method_name}, "
                    f"age={age:.1f}s, max_age={self.retry_window:.0f}s)"
                )
                return False

            del self._entries[k]
            logger.info(
                f"ApprovalQueue: pending consumed (retry-as-approval) "
                f"(session={session_key}, action={module_name}.{method_name}, age={age:.1f}s)"
            )
            return True

    def approve(self, session_key: str) -> int:
        """
        Approve every live pending entry of a session.

        The TTL restarts at the approval instant so a slow retry still finds
        the approval.

        Returns:
            Number of entries approved
        """
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)
            count = 0
            for _, entry in self._session_entries(session_key):
                if entry.status == "pending" and self._live(entry, now):
                    entry.status = "approved"
                    entry.expires_at = now + self.ttl
                    count += 1
                    logger.info(
                        f"ApprovalQueue: approved (session={session_key}, action={entry.action_name})"
                    )
            return count

    def deny(self, session_key: str) -> int:
        """
        Remove every pending entry of a session.

        Returns:
            Number of entries denied
        """
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)
            count = 0
            for k, entry in self._session_entries(session_key):
                if entry.status == "pending":
                    del self._entries[k]
                    count += 1
                    logger.info(
                        f"ApprovalQueue: denied (session={session_key}, action={entry.action_name})"
                    )
            return count

    def has_pending(self, session_key: str) -> bool:
        """Whether the session has at least one live pending entry."""
        with self._lock:
            now = self._clock()
            session_entries = self._session_entries(session_key)
            result = any(
                e.status == "pending" and self._live(e, now) for _, e in session_entries
            )
            logger.debug(
                f"ApprovalQueue.has_pending: {result} (session={session_key}, "
                f"session_entries={len(session_entries)}, total={len(self._entries)})"
            )
            return result

    def pending_age(self, session_key: str, module_name: str, method_name: str) -> float | None:
        """Seconds since the live pending entry was created, or None if there is none."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(self.key(session_key, module_name, method_name))
            if entry is None or entry.status != "pending" or not self._live(entry, now):
                return None
            return now - entry.created_at

    def get_pending_actions(self, session_key: str) -> list[tuple[str, str]]:
        """Snapshot of (module, method) pairs still waiting for an answer."""
        with self._lock:
            now = self._clock()
            return [
                (e.module_name, e.method_name)
                for _, e in self._session_entries(session_key)
                if e.status == "pending" and self._live(e, now)
            ]

    # ---- blanket allows ----

    def allow_for(
        self, session_key: str, module_name: str, method_name: str, duration: float
    ) -> None:
        """Auto-approve module.method for this session during ``duration`` seconds.

        In-memory only; the stored policy is not modified.
        """
        with self._lock:
            k = self.key(session_key, module_name, method_name)
            self._blanket_allows[k] = self._clock() + duration
            logger.info(
                f"ApprovalQueue: blanket allow created "
                f"(session={session_key}, action={module_name}.{method_name}, duration={duration:.0f}s)"
            )

    def has_blanket_allow(self, session_key: str, module_name: str, method_name: str) -> bool:
        """Whether a blanket allow is active. Expired grants are evicted here."""
        with self._lock:
            k = self.key(session_key, module_name, method_name)
            expires_at = self._blanket_allows.get(k)
            if expires_at is None:
                return False
            if self._clock() >= expires_at:
                del self._blanket_allows[k]
                return False
            return True

    # ---- housekeeping ----

    def _maybe_cleanup(self, now: float) -> None:
        if now - self._last_cleanup > self.cleanup_interval:
            self._cleanup(now)

    def _cleanup(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for k in expired:
            del self._entries[k]
        expired_allows = [k for k, exp in self._blanket_allows.items() if now >= exp]
        for k in expired_allows:
            del self._blanket_allows[k]
        self._last_cleanup = now
        if expired or expired_allows:
            logger.debug(
                f"ApprovalQueue: swept {len(expired)} entries, {len(expired_allows)} blanket allows"
            )
