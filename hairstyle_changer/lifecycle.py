"""Task lifecycle: start pending tasks, poll running ones, record results.

    pending --start--> running --poll--> succeeded
                               --poll--> failed

Transitions only move forward. ``reconcile`` is the entry point for status
polling; it is safe to call repeatedly on the same task.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

from .errors import (
    InvalidTaskIdError,
    ProviderError,
    ProviderRejectedError,
    TaskAlreadyStartedError,
    TaskNotDueError,
    TaskNotFoundError,
    TaskStartError,
    TaskStateError,
)
from .models import AiTask, TaskStatus, utcnow
from .providers import InProgress, ProviderRegistry, Succeeded
from .repository import TaskRepository
from .storage import RESULT_NAMESPACE, AssetStorage

logger = logging.getLogger(__name__)

RESULT_URL_MISSING = "Result url not retrieved"
GENERATION_FAILED = "Generation failed"


@dataclass
class ReconcileResult:
    task: AiTask
    progress: float


class TaskLifecycle:
    def __init__(
        self,
        repository: TaskRepository,
        providers: ProviderRegistry,
        storage: Optional[AssetStorage] = None,
        relocate_results: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.providers = providers
        self.storage = storage
        self.relocate_results = relocate_results
        self.clock = clock

    def _resolve(self, task: Union[str, AiTask]) -> AiTask:
        if isinstance(task, AiTask):
            return task
        found = self.repository.get_by_task_no(task)
        if found is None:
            raise TaskNotFoundError(f"Invalid task no: {task}")
        return found

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def start(self, task: Union[str, AiTask]) -> AiTask:
        """pending -> running. Raises TaskStartError subclasses without touching the row.

        The write only lands while the row is still pending, so a concurrent
        start keeps the first provider job id.
        """
        task = self._resolve(task)
        if task.status != TaskStatus.PENDING:
            raise TaskStateError(f"Task {task.task_no} is not pending (status={task.status})")

        now = self.clock()
        if task.estimated_start_at > now:
            raise TaskNotDueError(f"Task {task.task_no} is not allowed to start before {task.estimated_start_at}")

        adapter = self.providers.get(task.provider)
        try:
            task_id = adapter.submit(task.request_param)
        except ProviderError as e:
            raise ProviderRejectedError(f"Provider rejected task {task.task_no}: {e}") from e

        updated = self.repository.update_if_status(
            task.task_no,
            TaskStatus.PENDING.value,
            task_id=task_id,
            status=TaskStatus.RUNNING.value,
            started_at=now,
        )
        if updated is None:
            logger.warning("task_start_lost task_no=%s discarded_task_id=%s", task.task_no, task_id)
            raise TaskAlreadyStartedError(f"Task {task.task_no} was started concurrently")
        logger.info("task_start task_no=%s provider=%s task_id=%s", task.task_no, task.provider, task_id)
        return updated

    def poll(self, task: Union[str, AiTask]) -> ReconcileResult:
        """running -> running | succeeded | failed, from the provider's latest report."""
        task = self._resolve(task)
        if task.status != TaskStatus.RUNNING or not task.task_id:
            raise InvalidTaskIdError(f"Invalid task id for task {task.task_no}")

        adapter = self.providers.get(task.provider)
        data, outcome = adapter.query(task.task_id)

        if isinstance(outcome, InProgress):
            logger.debug("task_poll task_no=%s task_id=%s progress=%s", task.task_no, task.task_id, outcome.progress)
            return ReconcileResult(task=task, progress=outcome.progress)

        now = self.clock()
        if isinstance(outcome, Succeeded) and outcome.result_url:
            updated = self.repository.update(
                task.task_no,
                status=TaskStatus.SUCCEEDED.value,
                completed_at=now,
                result_data=data,
                result_url=self._relocate_result(task, outcome.result_url),
            )
        else:
            # a success report without a usable url is not trusted
            reason = RESULT_URL_MISSING if isinstance(outcome, Succeeded) else (outcome.reason or GENERATION_FAILED)
            updated = self.repository.update(
                task.task_no,
                status=TaskStatus.FAILED.value,
                completed_at=now,
                result_data=data,
                fail_reason=reason,
            )

        logger.info(
            "task_complete task_no=%s task_id=%s status=%s fail_reason=%s",
            updated.task_no,
            updated.task_id,
            updated.status,
            updated.fail_reason,
        )
        return ReconcileResult(task=updated, progress=1.0)

    def _relocate_result(self, task: AiTask, url: str) -> str:
        if not self.relocate_results or self.storage is None:
            return url
        try:
            return self.storage.relocate(url, RESULT_NAMESPACE, task.task_no, ext="png")
        except Exception:
            logger.warning("result_relocation_failed task_no=%s url=%s", task.task_no, url, exc_info=True)
            return url

    # -------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------
    def reconcile(self, task: Union[str, AiTask]) -> ReconcileResult:
        """Advance a task by one step based on its current status."""
        task = self._resolve(task)

        if task.status == TaskStatus.PENDING:
            try:
                return ReconcileResult(task=self.start(task), progress=0.0)
            except TaskStartError as e:
                logger.info("task_start_skipped task_no=%s reason=%s", task.task_no, e)
                return ReconcileResult(task=task, progress=0.0)

        if task.status == TaskStatus.RUNNING:
            return self.poll(task)

        return ReconcileResult(task=task, progress=1.0)

    def reconcile_by_task_id(self, task_id: str) -> None:
        """Provider push notification: the task must still be running."""
        task = self.repository.get_by_task_id(task_id)
        if task is None or task.status != TaskStatus.RUNNING:
            raise InvalidTaskIdError(f"Invalid task id: {task_id}")
        self.reconcile(task)
