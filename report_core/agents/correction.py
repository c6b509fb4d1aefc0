"""报告纠错：提交到外部 Assistant 服务并轮询至终态。

状态处理：
- completed：拉取 last_message_id 之后的新消息，按时间升序返回。
- failed / expired / cancelled：返回兜底文案，不抛异常（调用方只能通过
  比较文案区分“任务失败”与“正常回答”）。
- 其他状态：等待 poll_interval 后再次查询。

轮询设有次数/时长上限，并可通过 threading.Event 取消，超限或取消时
抛出 JobTimeoutError。
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import uuid4

from report_core.domain.exceptions import JobTimeoutError, ValidationError
from report_core.domain.jobs import FAILED_STATUSES, ExternalJob, ThreadMessage
from report_core.infrastructure.logging.logger import log_event
from report_core.providers.base import AssistantClient

FALLBACK_TEXT = "I cannot reply at this time. Reach out to the team on Discord"

CorrectionResult = Union[List[ThreadMessage], str]


@dataclass
class PollConfig:
    interval: float = 0.5
    max_attempts: Optional[int] = 600  # None 或 0 表示不限制
    deadline_seconds: Optional[float] = None

    @classmethod
    def from_settings(cls, cfg) -> "PollConfig":
        return cls(
            interval=float(getattr(cfg, "poll_interval", 0.5)),
            max_attempts=getattr(cfg, "max_poll_attempts", 600),
            deadline_seconds=getattr(cfg, "poll_deadline_seconds", None),
        )


class AsyncJobPoller:
    def __init__(
        self,
        client: AssistantClient,
        assistant_id: str,
        config: Optional[PollConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not assistant_id:
            raise ValidationError(code="MISSING_ASSISTANT_ID", message="correction assistant id not set")
        self._client = client
        self._assistant_id = assistant_id
        self._config = config or PollConfig()
        self._sleep = sleep
        self._clock = clock

    def submit(self, text: str) -> ExternalJob:
        thread_id = self._client.create_thread()
        last_message_id = self._client.post_message(thread_id, text, role="user")
        run_id = self._client.start_run(thread_id, self._assistant_id)
        return ExternalJob(thread_id=thread_id, run_id=run_id, last_message_id=last_message_id)

    def poll(
        self,
        job: ExternalJob,
        cancel: Optional[threading.Event] = None,
        log_ctx: Optional[Dict[str, Any]] = None,
    ) -> CorrectionResult:
        log_ctx = dict(log_ctx or {})
        log_ctx.update(thread_id=job.thread_id, run_id=job.run_id)
        started = self._clock()
        attempts = 0

        while True:
            self._check_cancel(cancel, log_ctx)
            status = self._client.get_run_status(job.thread_id, job.run_id)
            attempts += 1

            if status == "completed":
                messages = self._client.list_messages(job.thread_id, after=job.last_message_id, order="asc")
                log_event(
                    logging.INFO,
                    "Correction job completed",
                    log_ctx,
                    attempts=attempts,
                    message_count=len(messages),
                )
                return messages
            if status in FAILED_STATUSES:
                log_event(logging.WARNING, "Correction job ended without result", log_ctx, status=status, attempts=attempts)
                return FALLBACK_TEXT

            if self._config.max_attempts and attempts >= self._config.max_attempts:
                self._timeout(log_ctx, f"job still {status} after {attempts} polls", attempts)
            if self._config.deadline_seconds and self._clock() - started >= self._config.deadline_seconds:
                self._timeout(log_ctx, f"job still {status} after {self._config.deadline_seconds}s", attempts)

            self._sleep(self._config.interval)

    def run(self, text: str, cancel: Optional[threading.Event] = None) -> CorrectionResult:
        """提交纠错任务并阻塞直到得到结果。"""
        if not text or not text.strip():
            raise ValidationError(code="VALIDATION_ERROR", message="correction text is empty")
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}"}
        job = self.submit(text)
        log_event(logging.INFO, "Submitted correction job", log_ctx, thread_id=job.thread_id, run_id=job.run_id)
        return self.poll(job, cancel=cancel, log_ctx=log_ctx)

    @staticmethod
    def _check_cancel(cancel: Optional[threading.Event], log_ctx: Dict[str, Any]) -> None:
        if cancel is not None and cancel.is_set():
            log_event(logging.WARNING, "Correction polling cancelled", log_ctx)
            raise JobTimeoutError(code="JOB_CANCELLED", message="correction polling cancelled", http_status=499)

    @staticmethod
    def _timeout(log_ctx: Dict[str, Any], message: str, attempts: int) -> None:
        log_event(logging.WARNING, "Correction polling timed out", log_ctx, attempts=attempts)
        raise JobTimeoutError(code="JOB_TIMEOUT", message=message, http_status=504, **log_ctx)
