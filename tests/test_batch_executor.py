"""
Contractor Compliance Decision Engine
Tests — Batch Executor (sequential / parallel, failure modes).
"""

import pytest

from compliance_engine.models.action import ActionStatus, BatchExecutionRequest, EmailDetails
from compliance_engine.services.action_executor import ActionExecutor
from compliance_engine.services.action_store import ActionStore
from compliance_engine.services.batch_executor import BatchExecutor

from conftest import make_action


@pytest.fixture
def action_store(kv_store):
    store = ActionStore(kv_store)
    store.save(make_action("A", "meeting"))
    store.save(make_action("B", "email", details=EmailDetails(recipients=[])))
    store.save(make_action("C", "review"))
    return store


@pytest.fixture
def batch(action_store):
    return BatchExecutor(action_store, ActionExecutor(action_store))


# ═════════════════════════════════════════════════════════════════════════════
# SEQUENTIAL
# ═════════════════════════════════════════════════════════════════════════════

class TestSequentialBatch:

    def test_stop_on_first(self, batch, action_store):
        result = batch.execute_batch(BatchExecutionRequest(
            ["A", "B", "C"], execution_mode="sequential", failure_mode="stop_on_first"))
        assert result.total_actions == 2
        assert (result.successful, result.failed) == (1, 1)
        assert [r.action_id for r in result.results] == ["A", "B"]
        assert action_store.get("C").status is ActionStatus.PENDING

    def test_continue_on_error(self, batch, action_store):
        result = batch.execute_batch(BatchExecutionRequest(
            ["A", "B", "C"], failure_mode="continue_on_error"))
        assert [r.success for r in result.results] == [True, False, True]
        assert result.results[1].error == "Email action has no recipients"
        assert action_store.get("C").status is ActionStatus.COMPLETED

    def test_missing_id(self, batch):
        result = batch.execute_batch(BatchExecutionRequest(["ghost", "A"]))
        missing = result.results[0]
        assert missing.success is False
        assert missing.error == "Action not found"
        assert missing.execution_time == 0
        assert missing.metrics.resources_used == []
        assert missing.metrics.lessons_learned == []
        assert result.results[1].success is True

    def test_empty_request(self, batch):
        result = batch.execute_batch(BatchExecutionRequest([]))
        assert result.total_actions == 0
        assert result.to_dict()["results"] == []

    def test_summary(self, batch):
        result = batch.execute_batch(BatchExecutionRequest(["A", "C"]))
        data = result.to_dict()
        assert data["batch_id"].startswith("batch-")
        assert data["total_actions"] == 2
        assert data["successful"] == 2
        assert data["total_duration"] >= 0
        assert result.end_time >= result.start_time


# ═════════════════════════════════════════════════════════════════════════════
# PARALLEL
# ═════════════════════════════════════════════════════════════════════════════

class TestParallelBatch:

    def test_order_preserved(self, batch):
        result = batch.execute_batch(BatchExecutionRequest(["C", "B", "A"], execution_mode="parallel"))
        assert [r.action_id for r in result.results] == ["C", "B", "A"]
        assert [r.success for r in result.results] == [True, False, True]

    def test_failure_mode_ignored(self, batch, action_store):
        result = batch.execute_batch(BatchExecutionRequest(
            ["B", "A", "C"], execution_mode="parallel", failure_mode="stop_on_first"))
        assert result.total_actions == 3
        assert action_store.get("C").status is ActionStatus.COMPLETED

    def test_each_action_runs_once(self, batch, action_store):
        for i in range(10):
            action_store.save(make_action(f"R{i}", "review"))
        ids = [f"R{i}" for i in range(10)]
        result = batch.execute_batch(BatchExecutionRequest(ids, execution_mode="parallel"))
        assert result.successful == 10
        assert all(action_store.get(i).status is ActionStatus.COMPLETED for i in ids)

    def test_duplicate_id_runs_once(self, batch, action_store):
        result = batch.execute_batch(BatchExecutionRequest(["C"] * 6, execution_mode="parallel"))
        assert result.total_actions == 6
        assert result.successful == 1
        assert all(r.error.startswith("Action is ") for r in result.results if not r.success)
        assert action_store.get("C").status is ActionStatus.COMPLETED
