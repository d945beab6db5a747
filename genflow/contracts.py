"""Core contracts shared by the workflow engine, step builders and tasks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import TaskStatus
from .persistence.models import JobRecord, TaskRecord

if TYPE_CHECKING:
    from .providers.adapter import ProviderAdapter

ProgressCallback = Callable[[int], Awaitable[None]]


class StepContext(BaseModel):
    """Everything a step input builder may read.

    ``job_params`` is the job's initial input; ``previous_results`` maps the
    step index of every completed task to its result data.
    """

    job_id: str
    user_id: Optional[str] = None
    project_id: Optional[str] = None
    job_params: Dict[str, Any] = Field(default_factory=dict)
    previous_results: Dict[int, Dict[str, Any]] = Field(default_factory=dict)

    def result_of(self, step_index: int, key: str, default: Any = None) -> Any:
        """Return ``key`` from the result of ``step_index`` or ``default``."""
        value = self.previous_results.get(step_index, {}).get(key)
        return default if value is None else value


class TaskRuntime:
    """Services handed to a task handler for one execution."""

    def __init__(
        self,
        adapter: "ProviderAdapter",
        report_progress: ProgressCallback,
        task_id: str = "",
        step_type: str = "",
    ) -> None:
        self.adapter = adapter
        self.report_progress = report_progress
        self.task_id = task_id
        self.step_type = step_type


BuildInput = Callable[[StepContext], Dict[str, Any]]
TaskHandler = Callable[[Dict[str, Any], TaskRuntime], Awaitable[Dict[str, Any]]]


class StepDefinition(BaseModel):
    """Defines one step in a workflow."""

    model_config = ConfigDict(frozen=True)

    type: str
    target_type: str
    handler: TaskHandler
    build_input: BuildInput


class WorkflowDefinition(BaseModel):
    """A named, ordered pipeline of steps."""

    model_config = ConfigDict(frozen=True)

    type: str
    name: str
    steps: List[StepDefinition]

    def step_at(self, index: int) -> Optional[StepDefinition]:
        if 0 <= index < len(self.steps):
            return self.steps[index]
        return None

    def describe(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "total_steps": len(self.steps),
            "steps": [
                {"index": i, "type": s.type, "target_type": s.target_type}
                for i, s in enumerate(self.steps)
            ],
        }


class TaskSummary(BaseModel):
    id: str
    step_index: int
    type: str
    status: str


class StartResult(BaseModel):
    """Returned by ``WorkflowEngine.start`` before any step has run."""

    job_id: str
    tasks: List[TaskSummary]


class JobAck(BaseModel):
    job_id: str
    status: str


class JobStatusView(BaseModel):
    """A job together with its ordered tasks."""

    job: JobRecord
    workflow_name: str
    tasks: List[TaskRecord] = Field(default_factory=list)

    @property
    def failed_step(self) -> Optional[TaskRecord]:
        return next((t for t in self.tasks if t.status == TaskStatus.FAILED), None)
