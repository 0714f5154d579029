"""
Batch Executor — runs several stored actions in one request.

Sequential mode executes in ``action_ids`` order and, under
``stop_on_first``, stops right after the first failed result; the
results list then holds only what was executed. Parallel mode fans every
action out to its own worker thread and joins them all; the failure mode
does not apply there because dispatched work cannot be stopped. Results
keep request order in both modes.

An id that is not in the Action Store becomes a failed result with error
``Action not found`` and zeroed metrics.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor

from flask import current_app, has_app_context

from compliance_engine.core.exceptions import ActionNotFoundError
from compliance_engine.models.action import (
    ActionExecutionResult,
    BatchExecutionRequest,
    BatchExecutionResult,
    ExecutionMode,
    ExecutionMetrics,
    FailureMode,
)
from compliance_engine.models.base import utcnow
from compliance_engine.services.action_executor import ActionExecutor
from compliance_engine.services.action_store import ActionStore

logger = logging.getLogger(__name__)


def _with_app_context(fn):
    """Wrap ``fn`` so worker threads see the caller's Flask app (SQL store access)."""
    if not has_app_context():
        return fn
    app = current_app._get_current_object()

    def wrapper(*args, **kwargs):
        with app.app_context():
            return fn(*args, **kwargs)
    return wrapper


class BatchExecutor:
    def __init__(self, action_store: ActionStore, executor: ActionExecutor):
        self.action_store = action_store
        self.executor = executor

    def execute_batch(self, request: BatchExecutionRequest) -> BatchExecutionResult:
        batch_id = f"batch-{uuid.uuid4().hex[:12]}"
        start_time = utcnow()
        logger.info("Batch %s: %d action(s), mode=%s, failure_mode=%s", batch_id,
                    len(request.action_ids), request.execution_mode.value, request.failure_mode.value,
                    extra={"batch_id": batch_id})

        if request.execution_mode == ExecutionMode.PARALLEL:
            results = self._run_parallel(request.action_ids)
        else:
            results = self._run_sequential(request.action_ids, request.failure_mode, batch_id)

        batch = BatchExecutionResult(batch_id=batch_id, results=results,
                                     start_time=start_time, end_time=utcnow())
        logger.info("Batch %s finished: %d ok, %d failed in %d ms", batch_id, batch.successful,
                    batch.failed, batch.total_duration, extra={"batch_id": batch_id})
        return batch

    def _run_sequential(self, action_ids, failure_mode, batch_id) -> list[ActionExecutionResult]:
        results = []
        for action_id in action_ids:
            result = self._execute_one(action_id)
            results.append(result)
            if not result.success and failure_mode == FailureMode.STOP_ON_FIRST:
                logger.info("Batch %s stopped at %s: %s", batch_id, action_id, result.error,
                            extra={"batch_id": batch_id, "action_id": action_id})
                break
        return results

    def _run_parallel(self, action_ids) -> list[ActionExecutionResult]:
        if not action_ids:
            return []
        run = _with_app_context(self._execute_one)
        with ThreadPoolExecutor(max_workers=len(action_ids), thread_name_prefix="batch") as pool:
            return list(pool.map(run, action_ids))

    def _execute_one(self, action_id: str) -> ActionExecutionResult:
        action = self.action_store.get(action_id)
        if action is None:
            return self._not_found(action_id)
        return self.executor.execute_action(action)

    @staticmethod
    def _not_found(action_id: str) -> ActionExecutionResult:
        return ActionExecutionResult(
            action_id=action_id,
            success=False,
            executed_at=utcnow(),
            execution_time=0,
            error=str(ActionNotFoundError(action_id)),
            metrics=ExecutionMetrics(),
        )
