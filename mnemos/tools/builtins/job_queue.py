"""Job queue context: a sticky tool context for tracking a prioritized task list.

Opened through its gateway tool (`job_queue`). Jobs live with the session's
orchestrator and are addressed by id or an unambiguous id prefix.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import structlog

from mnemos.agent.messages import ToolResult
from mnemos.tools.base import BaseTool
from mnemos.tools.context import ToolContext

logger = structlog.get_logger()

JOB_QUEUE_DESCRIPTION = (
    "Open the job queue to plan multi-step work: add jobs with priorities, "
    "list them and track their status."
)


class JobStatus(StrEnum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"


@dataclass
class Job:
    title: str
    description: str | None = None
    priority: int = 0
    status: JobStatus = JobStatus.pending
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def formatted(self) -> str:
        line = f"- [{self.status}] {self.title} (priority {self.priority}, id {self.id[:8]})"
        if self.description:
            line += f"\n  {self.description}"
        return line


class JobQueueContext(ToolContext):
    """In-process job queue; highest priority first, insertion order on ties."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._tools: list[BaseTool] = [
            AddJobTool(self),
            ListJobsTool(self),
            UpdateJobStatusTool(self),
            RemoveJobTool(self),
        ]

    @property
    def context_id(self) -> str:
        return "job_queue"

    @property
    def display_name(self) -> str:
        return "Job Queue Manager"

    @property
    def context_tools(self) -> list[BaseTool]:
        return list(self._tools)

    async def activate(self) -> None:
        logger.info("job_queue_activated", jobs=len(self._jobs))

    async def deactivate(self) -> None:
        logger.info("job_queue_deactivated", jobs=len(self._jobs))

    def format_state(self) -> str:
        jobs = self.list_jobs()
        if not jobs:
            return "**Job Queue**: Empty"
        noun = "job" if len(jobs) == 1 else "jobs"
        listing = "\n".join(job.formatted for job in jobs)
        return f"**Job Queue** ({len(jobs)} {noun}):\n{listing}"

    def add_job(self, title: str, description: str | None = None, priority: int = 0) -> Job:
        job = Job(title=title, description=description, priority=priority)
        self._jobs[job.id] = job
        logger.info("job_added", job_id=job.id, priority=priority)
        return job

    def list_jobs(self) -> list[Job]:
        return sorted(self._jobs.values(), key=lambda j: j.priority, reverse=True)

    def find_job(self, id_prefix: str) -> Job | None:
        """Job whose id starts with id_prefix; None when missing or ambiguous."""
        prefix = id_prefix.strip().lower()
        if not prefix:
            return None
        matches = [job for job in self._jobs.values() if job.id.lower().startswith(prefix)]
        return matches[0] if len(matches) == 1 else None

    def remove_job(self, job_id: str) -> Job | None:
        return self._jobs.pop(job_id, None)

    def update_status(self, job_id: str, status: JobStatus) -> Job | None:
        job = self._jobs.get(job_id)
        if job is None:
            return None
        job.status = status
        job.updated_at = datetime.now(UTC)
        logger.info("job_status_updated", job_id=job_id, status=status)
        return job


class _JobTool(BaseTool):
    def __init__(self, queue: JobQueueContext) -> None:
        self._queue = queue

    def _lookup(self, arguments: dict[str, Any]) -> Job | ToolResult:
        job_id = arguments.get("id")
        if not isinstance(job_id, str) or not job_id.strip():
            return ToolResult.fail("id must be a non-empty string.")
        job = self._queue.find_job(job_id)
        if job is None:
            return ToolResult.fail(f"No unique job matches id '{job_id}'.")
        return job


class AddJobTool(_JobTool):
    @property
    def name(self) -> str:
        return "add_job"

    @property
    def description(self) -> str:
        return "Add a job to the queue. Higher priority runs first."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Short job title."},
                "description": {"type": "string", "description": "Optional details."},
                "priority": {"type": "integer", "description": "Priority (default 0)."},
            },
            "required": ["title"],
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        title = arguments.get("title", "")
        if not isinstance(title, str) or not title.strip():
            return ToolResult.fail("title must be a non-empty string.")
        priority = arguments.get("priority", 0)
        if isinstance(priority, bool) or not isinstance(priority, int):
            return ToolResult.fail("priority must be an integer.")
        description = arguments.get("description")
        if not isinstance(description, str) or not description.strip():
            description = None

        job = self._queue.add_job(title.strip(), description, priority)
        return ToolResult.ok(f"Added job {job.id[:8]}: {job.title}")


class ListJobsTool(_JobTool):
    @property
    def name(self) -> str:
        return "list_jobs"

    @property
    def description(self) -> str:
        return "List all jobs, highest priority first."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        jobs = self._queue.list_jobs()
        if not jobs:
            return ToolResult.ok("The job queue is empty.")
        return ToolResult.ok("\n".join(job.formatted for job in jobs))


class UpdateJobStatusTool(_JobTool):
    @property
    def name(self) -> str:
        return "update_job_status"

    @property
    def description(self) -> str:
        return "Set the status of a job."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Job id or id prefix."},
                "status": {"type": "string", "enum": [s.value for s in JobStatus]},
            },
            "required": ["id", "status"],
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        try:
            status = JobStatus(arguments.get("status"))
        except ValueError:
            allowed = ", ".join(s.value for s in JobStatus)
            return ToolResult.fail(f"status must be one of: {allowed}.")

        found = self._lookup(arguments)
        if isinstance(found, ToolResult):
            return found
        self._queue.update_status(found.id, status)
        return ToolResult.ok(f"Job {found.id[:8]} is now {status}.")


class RemoveJobTool(_JobTool):
    @property
    def name(self) -> str:
        return "remove_job"

    @property
    def description(self) -> str:
        return "Remove a job from the queue."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"id": {"type": "string", "description": "Job id or id prefix."}},
            "required": ["id"],
        }

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        found = self._lookup(arguments)
        if isinstance(found, ToolResult):
            return found
        self._queue.remove_job(found.id)
        return ToolResult.ok(f"Removed job {found.id[:8]}: {found.title}")
