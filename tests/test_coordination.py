"""Tests for runner arbitration (in-process registry and file leader lock)."""

from unittest.mock import MagicMock

import pytest

from settings_sync.sync.coordination import (
    LEADER_LOCK_FILE,
    InstanceRegistry,
    ProcessLeaderLock,
)


class TestInstanceRegistry:
    def test_first_registrant_runs(self):
        registry = InstanceRegistry()
        start_a = MagicMock()

        registry.register("a", start_a)

        assert registry.runner == "a"
        start_a.assert_called_once_with()

    def test_later_registrants_wait_in_order(self):
        registry = InstanceRegistry()
        start_b, start_c = MagicMock(), MagicMock()
        registry.register("a", MagicMock())
        registry.register("b", start_b)
        registry.register("c", start_c)

        assert registry.waiting == ["b", "c"]
        start_b.assert_not_called()

        registry.unregister("a")

        assert registry.runner == "b"
        assert registry.waiting == ["c"]
        start_b.assert_called_once_with()
        start_c.assert_not_called()

    def test_unregister_waiting_instance(self):
        registry = InstanceRegistry()
        start_c = MagicMock()
        registry.register("a", MagicMock())
        registry.register("b", MagicMock())
        registry.register("c", start_c)

        registry.unregister("b")
        registry.unregister("a")

        assert registry.runner == "c"
        start_c.assert_called_once_with()

    def test_last_runner_leaves(self):
        registry = InstanceRegistry()
        registry.register("a", MagicMock())

        registry.unregister("a")

        assert registry.runner is None
        assert registry.waiting == []

    def test_duplicate_registration_rejected(self):
        registry = InstanceRegistry()
        registry.register("a", MagicMock())
        registry.register("b", MagicMock())

        with pytest.raises(ValueError, match="already registered"):
            registry.register("a", MagicMock())
        with pytest.raises(ValueError):
            registry.register("b", MagicMock())

    def test_unknown_id_ignored(self):
        registry = InstanceRegistry()
        registry.register("a", MagicMock())

        registry.unregister("ghost")

        assert registry.runner == "a"


class TestProcessLeaderLock:
    def test_acquire_writes_pid(self, tmp_path):
        lock = ProcessLeaderLock(tmp_path / "state" / LEADER_LOCK_FILE)

        assert lock.try_acquire() is True
        assert lock.held is True
        assert lock.path.read_text().strip().isdigit()
        lock.release()

    def test_second_holder_refused_until_release(self, tmp_path):
        path = tmp_path / LEADER_LOCK_FILE
        first, second = ProcessLeaderLock(path), ProcessLeaderLock(path)

        assert first.try_acquire() is True
        assert second.try_acquire() is False
        assert second.held is False

        first.release()
        assert second.try_acquire() is True
        second.release()

    def test_reacquire_is_idempotent(self, tmp_path):
        lock = ProcessLeaderLock(tmp_path / LEADER_LOCK_FILE)
        lock.try_acquire()

        assert lock.try_acquire() is True
        lock.release()
        lock.release()
        assert lock.held is False

    async def test_wait_for_leadership(self, tmp_path):
        path = tmp_path / LEADER_LOCK_FILE
        lock = ProcessLeaderLock(path)

        await lock.wait_for_leadership(poll_interval=0)

        assert lock.held is True
        lock.release()
