"""
Background render jobs.

Render commands can take a while (asset downloads, PDF typesetting), so the
HTTP API can queue them instead of holding the request open. This module
tracks each queued render:
- Job registration and execution on a small thread pool
- Status tracking and a timestamped event log
- The final chat message and uploaded-file actions of the render

Each job runs the async render pipeline on its own event loop inside a
worker thread; job state is shared with request threads under a lock.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Callable, Dict, Mapping, Optional
from uuid import uuid4

from .commands import BotCommand, RenderCommand
from .models import BotAction, CommandContext, JobDetail, JobEvent, JobStatus, JobSummary

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class JobRecord:
    """
    Internal representation of a render job with full state.

    Attributes:
        id: Unique job identifier (hex UUID)
        context: Command context the render runs with (manuscript, config, token)
        params: Render parameters (output, template, engine)
        status: Current execution status
        created_at: Job creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
        message: Chat message produced by the render, once finished
        actions: Uploaded-file actions reported by the render
        error: Error description if the job failed
        events: Chronological list of job lifecycle events
    """

    id: str
    context: CommandContext
    params: Dict[str, str]
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    message: Optional[str] = None
    actions: list[BotAction] = field(default_factory=list)
    error: Optional[str] = None
    events: list[JobEvent] = field(default_factory=list)

    def to_summary(self) -> JobSummary:
        output = self.params.get("output")
        return JobSummary(
            id=self.id,
            manuscript_id=self.context.manuscript_id,
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
            output_formats=output.split(",") if output else list(self.context.config.output_formats),
        )

    def to_detail(self) -> JobDetail:
        summary = self.to_summary()
        return JobDetail(
            **summary.model_dump(),
            params=self.params,
            message=self.message,
            actions=self.actions,
            events=self.events,
            error=self.error,
        )


class RenderJobManager:
    """
    Central coordinator for queued render jobs.

    Thread Safety:
        All job state modifications are protected by a lock so request
        threads always see a consistent snapshot.
    """

    def __init__(
        self,
        max_workers: int = 1,
        command_factory: Callable[[], BotCommand] = RenderCommand,
    ) -> None:
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers)
        self._command_factory = command_factory

    def list_jobs(self) -> list[JobSummary]:
        with self._lock:
            records = sorted(self._jobs.values(), key=lambda r: r.created_at, reverse=True)
            return [record.to_summary() for record in records]

    def get_job(self, job_id: str) -> Optional[JobDetail]:
        with self._lock:
            record = self._jobs.get(job_id)
            return record.to_detail() if record else None

    def _update_job(self, job_id: str, **kwargs: Any) -> None:
        with self._lock:
            record = self._jobs[job_id]
            for key, value in kwargs.items():
                setattr(record, key, value)
            record.updated_at = _now()

    def _append_event(self, job_id: str, message: str) -> None:
        event = JobEvent(timestamp=_now(), message=message)
        with self._lock:
            record = self._jobs[job_id]
            record.events.append(event)
            record.updated_at = event.timestamp

    def create_job(self, context: CommandContext, params: Mapping[str, str]) -> JobSummary:
        """
        Register a render job and submit it for background execution.

        Returns:
            JobSummary of the queued job
        """
        created_at = _now()
        record = JobRecord(
            id=uuid4().hex,
            context=context,
            params=dict(params),
            status=JobStatus.PENDING,
            created_at=created_at,
            updated_at=created_at,
        )
        record.events.append(JobEvent(timestamp=created_at, message="Render registered and awaiting execution."))

        with self._lock:
            self._jobs[record.id] = record

        self._executor.submit(self._run_render, record.id)
        logger.info(f"Queued render job {record.id} for manuscript {context.manuscript_id}")
        return record.to_summary()

    def _run_render(self, job_id: str) -> None:
        self._update_job(job_id, status=JobStatus.RUNNING)
        self._append_event(job_id, "Render started.")

        with self._lock:
            context = self._jobs[job_id].context
            params = dict(self._jobs[job_id].params)

        try:
            command = self._command_factory()
            result = asyncio.run(command.execute(params, context))
        except Exception as exc:
            logger.error(f"Render job {job_id} crashed: {exc}")
            self._update_job(job_id, status=JobStatus.FAILED, error=str(exc))
            self._append_event(job_id, f"Render failed: {exc}")
            return

        if result.actions:
            self._update_job(job_id, status=JobStatus.COMPLETED, message=result.message, actions=result.actions)
            self._append_event(job_id, f"Render completed with {len(result.actions)} output(s).")
        else:
            summary_line = result.message.splitlines()[0] if result.message else "No output"
            error = "; ".join(result.errors) or summary_line
            self._update_job(job_id, status=JobStatus.FAILED, message=result.message, error=error)
            self._append_event(job_id, "Render finished without outputs.")

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
