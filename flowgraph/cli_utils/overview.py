"""Text rendering of a workflow for ``flowgraph workflow show``."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import typer

from flowgraph.job import Job, JobStatus
from flowgraph.workflow import Workflow

STATUS_COLORS: Dict[str, str] = {
    "stopped": typer.colors.BRIGHT_BLACK,
    JobStatus.PENDING.value: typer.colors.CYAN,
    JobStatus.ENQUEUED.value: typer.colors.BLUE,
    JobStatus.RUNNING.value: typer.colors.MAGENTA,
    JobStatus.RETRYING.value: typer.colors.YELLOW,
    JobStatus.FAILED.value: typer.colors.RED,
    JobStatus.SUCCEEDED.value: typer.colors.GREEN,
}

# Order used for the per-status counts and for sorting the job list.
JOB_STATUS_ORDER: List[JobStatus] = [
    JobStatus.PENDING,
    JobStatus.ENQUEUED,
    JobStatus.RUNNING,
    JobStatus.RETRYING,
    JobStatus.FAILED,
    JobStatus.SUCCEEDED,
]


def colorize(text: str, status: str, color: bool = True) -> str:
    if not color:
        return text
    return typer.style(text, fg=STATUS_COLORS.get(status))


def _time(value: Optional[datetime]) -> str:
    return value.isoformat(sep=" ", timespec="seconds") if value else "-"


def job_counts(workflow: Workflow) -> Counter:
    return Counter(job.status for job in workflow.jobs)


def overview_rows(workflow: Workflow, color: bool = True) -> List[Tuple[str, str]]:
    """Label/value rows summarizing ``workflow``; statuses with no jobs are omitted."""
    counts = job_counts(workflow)
    rows: List[Tuple[str, str]] = [
        ("ID", str(workflow.id)),
        ("Name", workflow.klass),
        ("Jobs", str(len(workflow.jobs))),
    ]
    for status in JOB_STATUS_ORDER:
        if counts[status]:
            label = colorize(f"{status.value.capitalize()} jobs", status.value, color)
            rows.append((label, colorize(str(counts[status]), status.value, color)))

    status = workflow.status.value
    remaining = sum(1 for job in workflow.jobs if job.remaining)
    rows.extend(
        [
            ("Remaining jobs", str(remaining)),
            ("Started at", _time(workflow.started_at)),
            ("Finished at", _time(workflow.finished_at)),
            ("Status", colorize(status.capitalize(), status, color)),
        ]
    )
    return rows


def sorted_jobs(jobs: List[Job]) -> List[Job]:
    """Jobs ordered most-advanced first, succeeded at the top."""
    order = list(reversed(JOB_STATUS_ORDER))
    return sorted(jobs, key=lambda job: order.index(job.status))


def render_overview(workflow: Workflow, show_jobs: bool = True, color: bool = True) -> str:
    rows = overview_rows(workflow, color=color)
    width = max(len(typer.unstyle(label)) for label, _ in rows)
    lines = []
    for label, value in rows:
        padding = " " * (width - len(typer.unstyle(label)))
        lines.append(f"{label}{padding} : {value}")

    if workflow.failed:
        failed = next(job for job in workflow.jobs if job.status is JobStatus.FAILED)
        lines.append(f"{failed.name} failed: {failed.error or 'unknown error'}")

    if show_jobs:
        lines.append("")
        lines.append("Jobs list:")
        for job in sorted_jobs(workflow.jobs):
            lines.append(f"  [{colorize(job.status.value, job.status.value, color)}] {job.name}")
    return "\n".join(lines)
