"""genflow: multi-step AI generation workflows over configurable providers."""

from .contracts import StepContext, StepDefinition, TaskRuntime, WorkflowDefinition
from .definitions import WORKFLOW_DEFINITIONS, available_workflows, get_workflow_definition
from .engine import WorkflowEngine, create_engine
from .handlers import HandlerRegistry
from .inputs import FieldRef, compile_input
from .persistence import get_repository
from .providers import InMemoryProviderStore, ProviderAdapter, ProviderConfig
from .registry import FIELD_REGISTRY

__version__ = "0.1.0"
__all__ = [
    "FIELD_REGISTRY",
    "FieldRef",
    "HandlerRegistry",
    "InMemoryProviderStore",
    "ProviderAdapter",
    "ProviderConfig",
    "StepContext",
    "StepDefinition",
    "TaskRuntime",
    "WORKFLOW_DEFINITIONS",
    "WorkflowDefinition",
    "WorkflowEngine",
    "available_workflows",
    "compile_input",
    "create_engine",
    "get_repository",
    "get_workflow_definition",
]
