"""Tests for policy, audit log and statistics persistence."""

import asyncio
import json

import pytest
import yaml

from toolwarden.errors import PolicyStoreError
from toolwarden.models import DecisionRecord
from toolwarden.models import Stats
from toolwarden.storage import DecisionLog
from toolwarden.storage import PolicyStore
from toolwarden.storage import StatsTracker
from toolwarden.storage.files import append_line
from toolwarden.storage.files import write_atomic


class TestFiles:
    def test_write_atomic_creates_parents_and_replaces(self, tmp_path):
        path = tmp_path / "a" / "b" / "file.txt"
        write_atomic(path, "one")
        write_atomic(path, "two")

        assert path.read_text(encoding="utf-8") == "two"
        assert [p.name for p in path.parent.iterdir()] == ["file.txt"]

    def test_write_atomic_failure_raises_oserror(self, tmp_path):
        target = tmp_path / "dir"
        target.mkdir()
        (target / "child").write_text("x")

        with pytest.raises(OSError, match="Failed to write atomically"):
            write_atomic(target, "content")
        assert not list(tmp_path.glob(".dir_*.tmp"))

    def test_append_line_terminates_lines(self, tmp_path):
        path = tmp_path / "log.jsonl"
        append_line(path, "a")
        append_line(path, "b\n")
        assert path.read_text(encoding="utf-8") == "a\nb\n"


class TestPolicyStore:
    def test_load_creates_defaults(self, data_dir):
        store = PolicyStore(data_dir / "policy.yaml")
        policy = store.load()

        assert store.path.exists()
        assert policy.default_action == "ASK"
        assert policy.modules["FileSystem"]["delete"].action == "DENY"
        assert policy.rule_count() == 8

    def test_fresh_policy_uses_configured_default_action(self, data_dir):
        policy = PolicyStore(data_dir / "policy.yaml", default_action="DENY").load()
        assert policy.default_action == "DENY"

    def test_file_is_readable_yaml(self, data_dir):
        store = PolicyStore(data_dir / "policy.yaml")
        store.load()

        data = yaml.safe_load(store.path.read_text(encoding="utf-8"))
        assert data["default_action"] == "ASK"
        assert data["modules"]["Shell"]["bash"]["action"] == "ASK"
        assert data["version"] == "1.0.0"

    def test_round_trip_preserves_rules(self, data_dir):
        store = PolicyStore(data_dir / "policy.yaml")
        store.set_rule("Browser", "navigate", "DENY", "No browsing")

        reloaded = PolicyStore(store.path).load()
        rule = reloaded.modules["Browser"]["navigate"]
        assert rule.action == "DENY"
        assert rule.description == "No browsing"

    def test_set_rule_keeps_existing_description(self, data_dir):
        store = PolicyStore(data_dir / "policy.yaml")
        policy = store.set_rule("Shell", "bash", "DENY")
        assert policy.modules["Shell"]["bash"].action == "DENY"
        assert policy.modules["Shell"]["bash"].description == "Shell command execution risk"

    def test_set_default_action(self, data_dir):
        store = PolicyStore(data_dir / "policy.yaml")
        store.set_default_action("ALLOW")
        assert store.load().default_action == "ALLOW"

    def test_reset(self, data_dir):
        store = PolicyStore(data_dir / "policy.yaml")
        store.set_rule("Custom", "op", "ALLOW")
        policy = store.reset()
        assert "Custom" not in policy.modules
        assert "Custom" not in store.load().modules

    def test_accepts_camel_case_keys(self, data_dir):
        path = data_dir / "policy.yaml"
        path.parent.mkdir(parents=True)
        path.write_text(
            "defaultAction: DENY\n"
            "createdAt: '2024-01-01T00:00:00+00:00'\n"
            "modules:\n"
            "  Shell:\n"
            "    bash: {action: ALLOW}\n",
            encoding="utf-8",
        )
        policy = PolicyStore(path).load()
        assert policy.default_action == "DENY"
        assert policy.created_at == "2024-01-01T00:00:00+00:00"
        assert policy.modules["Shell"]["bash"].action == "ALLOW"

    def test_invalid_yaml_raises(self, data_dir):
        path = data_dir / "policy.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("modules: [unclosed\n", encoding="utf-8")
        with pytest.raises(PolicyStoreError, match="Failed to load policy"):
            PolicyStore(path).load()

    def test_non_mapping_raises(self, data_dir):
        path = data_dir / "policy.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(PolicyStoreError, match="must contain a mapping"):
            PolicyStore(path).load()

    def test_invalid_action_raises(self, data_dir):
        path = data_dir / "policy.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("modules:\n  Shell:\n    bash: {action: MAYBE}\n", encoding="utf-8")
        with pytest.raises(PolicyStoreError, match="Invalid policy"):
            PolicyStore(path).load()


def make_record(decision="ALLOWED", decision_time_ms=0, **kwargs):
    return DecisionRecord(
        module="Shell",
        method="bash",
        args=[{"command": "ls"}],
        decision=decision,
        decision_time_ms=decision_time_ms,
        **kwargs,
    )


class TestDecisionLog:
    @pytest.mark.asyncio
    async def test_missing_file_reads_empty(self, data_dir):
        assert await DecisionLog(data_dir / "decisions.jsonl").read_all() == []

    @pytest.mark.asyncio
    async def test_append_writes_one_json_line_per_record(self, data_dir):
        log = DecisionLog(data_dir / "decisions.jsonl")
        await log.append(make_record())
        await log.append(make_record("BLOCKED", reason="Policy: DENY"))

        lines = log.path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["decision"] == "ALLOWED"
        assert "reason" not in first
        assert json.loads(lines[1])["reason"] == "Policy: DENY"

    @pytest.mark.asyncio
    async def test_non_serializable_args_are_stringified(self, data_dir):
        log = DecisionLog(data_dir / "decisions.jsonl")
        record = make_record()
        await log.append(record.model_copy(update={"args": [object()]}))
        record = (await log.read_all())[0]
        assert record.args[0].startswith("<object object")

    @pytest.mark.asyncio
    async def test_read_last(self, data_dir):
        log = DecisionLog(data_dir / "decisions.jsonl")
        for ms in range(5):
            await log.append(make_record(decision_time_ms=ms))

        last = await log.read_last(2)
        assert [r.decision_time_ms for r in last] == [3, 4]
        assert await log.read_last(0) == []
        assert len(await log.read_last(50)) == 5

    @pytest.mark.asyncio
    async def test_corrupt_lines_are_skipped(self, data_dir):
        log = DecisionLog(data_dir / "decisions.jsonl")
        await log.append(make_record())
        append_line(log.path, "{not json")
        append_line(log.path, '{"module": "Shell"}')
        await log.append(make_record("APPROVED", user_id="human"))

        records = await log.read_all()
        assert [r.decision for r in records] == ["ALLOWED", "APPROVED"]


class TestStatsTracker:
    @pytest.mark.asyncio
    async def test_load_initializes_file(self, data_dir):
        tracker = StatsTracker(data_dir / "stats.json")
        stats = await tracker.load()
        assert stats.total_calls == 0
        assert tracker.path.exists()

    @pytest.mark.asyncio
    async def test_increment_counts_and_averages(self, data_dir):
        tracker = StatsTracker(data_dir / "stats.json")
        await tracker.increment("ALLOWED", 0)
        await tracker.increment("APPROVED", 3000)
        await tracker.increment("REJECTED", 1000)
        await tracker.increment("BLOCKED", 0)

        stats = await tracker.load()
        assert stats.total_calls == 4
        assert (stats.allowed, stats.approved, stats.rejected, stats.blocked) == (1, 1, 1, 1)
        # (0 + 3000) / 2 = 1500; (1500 * 2 + 1000) / 3 = 1333; (1333 * 3 + 0) / 4 = 1000
        assert stats.avg_decision_time_ms == 1000
        assert stats.percentage(stats.allowed) == 25.0

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self, data_dir):
        tracker = StatsTracker(data_dir / "stats.json")
        await asyncio.gather(*(tracker.increment("ALLOWED", 10) for _ in range(20)))

        stats = await tracker.load()
        assert stats.total_calls == 20
        assert stats.allowed == 20
        assert stats.avg_decision_time_ms == 10

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_from_zero(self, data_dir):
        tracker = StatsTracker(data_dir / "stats.json")
        data_dir.mkdir(parents=True)
        tracker.path.write_text("{broken", encoding="utf-8")

        assert (await tracker.load()).total_calls == 0
        await tracker.increment("BLOCKED", 5)
        assert (await tracker.load()).blocked == 1

    @pytest.mark.asyncio
    async def test_reset(self, data_dir):
        tracker = StatsTracker(data_dir / "stats.json")
        await tracker.increment("ALLOWED", 100)
        stats = await tracker.reset()
        assert stats.total_calls == 0
        assert (await tracker.load()).avg_decision_time_ms == 0

    def test_empty_percentage(self):
        assert Stats().percentage(0) == 0.0
