"""
SessionCoordinator: 전체 분석(9단계)을 하나의 세션으로 순차 실행합니다.

- 실행마다 새 session_id(uuid4)를 발급합니다.
- 단계는 STAGE_SEQUENCE 순서대로 하나씩, 이전 단계가 끝난 뒤에만 시작합니다.
- 쓰기 가드가 거부한 단계는 저장 없이 성공으로 처리하고 다음 단계로 넘어갑니다.
- 단계가 실패하면 남은 단계는 실행하지 않습니다. 자동 재시도는 없습니다.
- 같은 학급의 실행은 동시에 하나만 허용합니다 (프로세스 내 잠금).
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from app.core.exceptions import (
    ClassInsightError,
    RunAlreadyInProgressError,
    StageExecutionError,
)
from app.models.stage import STAGE_SEQUENCE, StageType
from app.services.progress import ProgressReporter, RunState
from app.services.stage_executor import StageExecutor
from app.services.write_guard import WriteGuard

logger = logging.getLogger("classinsight.pipeline")


def new_session_id() -> str:
    return str(uuid.uuid4())


@dataclass
class RunHandle:
    class_id: str
    session_id: str
    reporter: ProgressReporter
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass
class RunStatus:
    class_id: str
    session_id: str
    state: RunState
    completed_stages: List[str] = field(default_factory=list)
    skipped_stages: List[str] = field(default_factory=list)
    failed_stage: Optional[str] = None
    error: Optional[StageExecutionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_status(self) -> None:
        if self.error is not None:
            raise self.error


class RunRegistry:
    """
    진행 중/완료된 실행을 session_id로 보관하고, 학급별 실행 잠금을 관리합니다.
    완료된 실행도 상태 조회를 위해 max_finished개까지 남겨둡니다.
    """

    def __init__(self, max_finished: int = 100):
        self._lock = threading.Lock()
        self._active_by_class: Dict[str, RunHandle] = {}
        self._runs: Dict[str, RunHandle] = {}
        self._finished_order: List[str] = []
        self._max_finished = max_finished

    def begin(self, class_id: str) -> RunHandle:
        with self._lock:
            active = self._active_by_class.get(class_id)
            if active is not None:
                raise RunAlreadyInProgressError(class_id, active.session_id)
            handle = RunHandle(
                class_id=class_id,
                session_id=new_session_id(),
                reporter=ProgressReporter(),
            )
            self._active_by_class[class_id] = handle
            self._runs[handle.session_id] = handle
        return handle

    def release(self, handle: RunHandle) -> None:
        with self._lock:
            if self._active_by_class.get(handle.class_id) is handle:
                del self._active_by_class[handle.class_id]
            self._finished_order.append(handle.session_id)
            while len(self._finished_order) > self._max_finished:
                self._runs.pop(self._finished_order.pop(0), None)

    def get(self, session_id: str) -> Optional[RunHandle]:
        with self._lock:
            return self._runs.get(session_id)

    def active_for_class(self, class_id: str) -> Optional[RunHandle]:
        with self._lock:
            return self._active_by_class.get(class_id)


default_registry = RunRegistry()


class SessionCoordinator:
    def __init__(
        self,
        executor: StageExecutor,
        guard: WriteGuard,
        registry: Optional[RunRegistry] = None,
    ):
        self.executor = executor
        self.guard = guard
        self.registry = registry if registry is not None else default_registry

    def run(
        self, class_id: str, cancel_event: Optional[threading.Event] = None
    ) -> RunStatus:
        handle = self.registry.begin(class_id)
        if cancel_event is not None:
            handle.cancel_event = cancel_event
        return self.execute(handle)

    def execute(self, handle: RunHandle) -> RunStatus:
        """begin()으로 확보한 실행을 끝까지(또는 실패/취소 시점까지) 진행합니다."""
        try:
            return self._execute(handle)
        except Exception:
            logger.exception("Analysis run crashed (session=%s)", handle.session_id)
            handle.reporter.finish(RunState.FAILED)
            raise
        finally:
            self.registry.release(handle)

    def _execute(self, handle: RunHandle) -> RunStatus:
        class_id, session_id, reporter = handle.class_id, handle.session_id, handle.reporter
        status = RunStatus(
            class_id=class_id, session_id=session_id, state=RunState.PROCESSING
        )
        reporter.start()
        logger.info("Analysis run started (class=%s, session=%s)", class_id, session_id)

        for stage in STAGE_SEQUENCE:
            if handle.cancelled:
                logger.info(
                    "Analysis run cancelled before %s (session=%s)", stage.value, session_id
                )
                status.state = RunState.CANCELLED
                reporter.finish(RunState.CANCELLED)
                return status

            reporter.stage_started(stage)

            try:
                allowed = self.guard.allows_write(class_id)
            except ClassInsightError as e:
                return self._fail(status, reporter, stage, e)

            if not allowed:
                logger.info("Write denied for class %s, skipping %s", class_id, stage.value)
                status.completed_stages.append(stage.value)
                status.skipped_stages.append(stage.value)
                reporter.stage_completed(stage, skipped=True)
                continue

            try:
                self.executor.execute(class_id, stage, session_id)
            except ClassInsightError as e:
                return self._fail(status, reporter, stage, e)

            status.completed_stages.append(stage.value)
            reporter.stage_completed(stage)

        status.state = RunState.COMPLETED
        reporter.finish(RunState.COMPLETED)
        logger.info(
            "Analysis run completed (class=%s, session=%s, %.1fs)",
            class_id,
            session_id,
            reporter.elapsed_seconds(),
        )
        return status

    def _fail(
        self,
        status: RunStatus,
        reporter: ProgressReporter,
        stage: StageType,
        cause: Exception,
    ) -> RunStatus:
        error = StageExecutionError(stage.value, status.session_id, cause)
        error.__cause__ = cause
        logger.error(
            "Analysis run aborted at %s (class=%s, session=%s): %s",
            stage.value,
            status.class_id,
            status.session_id,
            cause,
        )
        status.state = RunState.FAILED
        status.failed_stage = stage.value
        status.error = error
        reporter.stage_failed(stage, cause)
        reporter.finish(RunState.FAILED)
        return status
