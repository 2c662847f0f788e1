"""Shared fixtures for toolwarden tests."""

import logging
from pathlib import Path

import pytest

from toolwarden.approval_queue import ApprovalQueue
from toolwarden.arbitrator import Arbitrator
from toolwarden.models import ExecutionContext


class FakeClock:
    """Manually advanced time source (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingPrompt:
    """ApprovalPrompt stand-in that answers with a fixed decision."""

    def __init__(self, answer: bool):
        self.answer = answer
        self.contexts: list[ExecutionContext] = []

    async def confirm(self, context: ExecutionContext) -> bool:
        self.contexts.append(context)
        return self.answer


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue(clock: FakeClock) -> ApprovalQueue:
    return ApprovalQueue(clock=clock)


@pytest.fixture
def headless_arbitrator(queue: ApprovalQueue) -> Arbitrator:
    """Arbitrator with no terminal attached."""
    return Arbitrator(queue, is_interactive=lambda: False, prompt=RecordingPrompt(False))


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "toolwarden"


@pytest.fixture
def restore_logging():
    """Undo configure_logging() on the package logger after the test."""
    yield
    package_logger = logging.getLogger("toolwarden")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
