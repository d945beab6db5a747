"""Error taxonomy for genflow."""

from __future__ import annotations

from typing import Any, Optional


class GenflowError(Exception):
    """Base class for all genflow errors."""


# ----------------------------------------------------------------------
# Workflow definition / engine errors
class UnknownWorkflow(GenflowError):
    def __init__(self, workflow_type: str) -> None:
        super().__init__(f"unknown workflow type: {workflow_type}")
        self.workflow_type = workflow_type


class StepDefinitionMissing(GenflowError):
    def __init__(self, workflow_type: str, step_index: int) -> None:
        super().__init__(
            f"step definition missing: workflow={workflow_type} index={step_index}"
        )
        self.workflow_type = workflow_type
        self.step_index = step_index


class InputBuildFailed(GenflowError):
    def __init__(self, step_index: int, cause: BaseException) -> None:
        super().__init__(f"input build failed for step {step_index}: {cause}")
        self.step_index = step_index
        self.cause = cause


class UnknownField(GenflowError):
    """Raised when a step references a field that is not in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f'unregistered field "{name}": register it in FIELD_REGISTRY or '
            "supply an explicit source"
        )
        self.name = name


class JobNotFound(GenflowError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"job not found: {job_id}")
        self.job_id = job_id


class InvalidJobState(GenflowError):
    """Operation rejected because of the job's current status."""


class TaskInputError(GenflowError):
    """A task handler received inputs it cannot work with."""


# ----------------------------------------------------------------------
# Provider errors
class ProviderError(GenflowError):
    """Base class for errors raised while talking to an AI provider."""


class ModelNotFound(ProviderError):
    def __init__(self, model_name: str) -> None:
        super().__init__(f'model "{model_name}" does not exist or is inactive')
        self.model_name = model_name


class ProviderConfigError(ProviderError):
    """Provider configuration cannot be used as written."""


class ConditionError(ProviderConfigError):
    """A poll condition expression could not be parsed or evaluated."""


class MalformedResponse(ProviderError):
    def __init__(self, body: str) -> None:
        super().__init__(
            f"provider returned neither JSON nor form-encoded data: {body[:300]}"
        )
        self.body = body


class ProviderHTTPError(ProviderError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"provider request failed ({status_code}): {message}")
        self.status_code = status_code
        self.message = message


class ProviderNetworkError(ProviderError):
    """Transport-level failure reaching a provider."""


class ProviderTaskFailed(ProviderError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details = details or {}


class ProviderTimeout(ProviderError):
    def __init__(self, elapsed_ms: int, task_ref: Optional[str] = None) -> None:
        suffix = f" (task: {task_ref})" if task_ref else ""
        super().__init__(f"polling timed out after {elapsed_ms} ms{suffix}")
        self.elapsed_ms = elapsed_ms
        self.task_ref = task_ref


# ----------------------------------------------------------------------
# Custom handler errors
class HandlerNotFound(ProviderError):
    def __init__(self, name: str) -> None:
        super().__init__(f"custom handler not found: {name}")
        self.name = name


class IllegalHandlerName(ProviderError):
    def __init__(self, name: str) -> None:
        super().__init__(f"illegal custom handler name: {name!r}")
        self.name = name
