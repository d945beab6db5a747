"""Step context assembly."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from ..contracts import StepContext
from ..persistence.models import JobRecord


def build_context(job: JobRecord, previous_results: Mapping[int, Dict[str, Any]]) -> StepContext:
    """Context for the next step: the job's input plus every completed result."""
    return StepContext(
        job_id=job.id,
        user_id=job.owner_id,
        project_id=job.project_id,
        job_params=dict(job.input_params),
        previous_results={int(k): dict(v) for k, v in previous_results.items()},
    )
