"""
전체 분석 실행의 진행 상황 관찰자

SessionCoordinator가 단계 전환마다 갱신하고, UI(실행 상태 조회 API)는 읽기만 합니다.
경과 시간은 표시용이며 타임아웃으로 쓰이지 않습니다.
"""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from app.models.stage import StageType


class RunState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


IDLE_LABEL = "대기 중"


class ProgressReporter:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._state = RunState.PENDING
        self._current_stage: Optional[StageType] = None
        self._started_at: Optional[float] = None
        self._finished_at: Optional[float] = None
        self._completed: List[str] = []
        self._skipped: List[str] = []
        self._failed_stage: Optional[str] = None
        self._error_message: Optional[str] = None
        self._label_history: List[str] = []

    # --- coordinator 쪽 갱신 ---

    def start(self) -> None:
        with self._lock:
            self._state = RunState.PROCESSING
            self._started_at = self._clock()
            self._finished_at = None

    def stage_started(self, stage: StageType) -> None:
        with self._lock:
            self._current_stage = stage
            self._label_history.append(stage.label)

    def stage_completed(self, stage: StageType, skipped: bool = False) -> None:
        with self._lock:
            self._completed.append(stage.value)
            if skipped:
                self._skipped.append(stage.value)

    def stage_failed(self, stage: StageType, error: Exception) -> None:
        with self._lock:
            self._failed_stage = stage.value
            self._error_message = str(error)

    def finish(self, state: RunState) -> None:
        with self._lock:
            self._state = state
            self._current_stage = None
            self._finished_at = self._clock()

    # --- UI 쪽 조회 ---

    def current_stage_label(self) -> str:
        with self._lock:
            if self._current_stage is None:
                return IDLE_LABEL
            return self._current_stage.label

    def elapsed_seconds(self) -> float:
        with self._lock:
            if self._started_at is None:
                return 0.0
            end = self._finished_at if self._finished_at is not None else self._clock()
            return max(0.0, end - self._started_at)

    def is_running(self) -> bool:
        with self._lock:
            return self._state is RunState.PROCESSING

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state

    @property
    def completed_stages(self) -> List[str]:
        with self._lock:
            return list(self._completed)

    @property
    def skipped_stages(self) -> List[str]:
        with self._lock:
            return list(self._skipped)

    @property
    def failed_stage(self) -> Optional[str]:
        with self._lock:
            return self._failed_stage

    @property
    def error_message(self) -> Optional[str]:
        with self._lock:
            return self._error_message

    @property
    def label_history(self) -> List[str]:
        with self._lock:
            return list(self._label_history)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "status": self.state.value,
            "current_stage_label": self.current_stage_label(),
            "elapsed_seconds": int(self.elapsed_seconds()),
            "is_running": self.is_running(),
            "completed_stages": self.completed_stages,
            "skipped_stages": self.skipped_stages,
            "failed_stage": self.failed_stage,
            "error": self.error_message,
        }
