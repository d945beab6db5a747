"""Command line interface for operating genflow jobs."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import typer

from genflow.config import load_config
from genflow.definitions import available_workflows
from genflow.engine import WorkflowEngine, create_engine
from genflow.exceptions import GenflowError
from genflow.persistence import get_repository
from genflow.registry import FIELD_REGISTRY

app = typer.Typer(help="CLI for genflow generation workflows")

workflow_app = typer.Typer(help="Commands for managing workflow jobs")
fields_app = typer.Typer(help="Commands for the field registry")
provider_app = typer.Typer(help="Commands for provider configurations")

app.add_typer(workflow_app, name="workflow")
app.add_typer(fields_app, name="fields")
app.add_typer(provider_app, name="provider")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """genflow CLI entry point."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _engine() -> WorkflowEngine:
    config = load_config()
    return create_engine(config, repository=get_repository())


def _parse_params(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        params = json.loads(raw)
    except ValueError as exc:
        typer.secho(f"Invalid JSON for --params: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    if not isinstance(params, dict):
        typer.secho("--params must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    return params


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _echo_status(view) -> None:
    job = view.job
    typer.echo(f"Job {job.id}: {job.status.value} ({view.workflow_name})")
    typer.echo(f"Step: {job.current_step_index + 1}/{job.total_steps}")
    if job.error_message:
        typer.echo(f"Error: {job.error_message}")
    for task in view.tasks:
        line = f"- [{task.step_index}] {task.step_type}: {task.status.value} {task.progress}%"
        if task.error_message:
            line += f" ({task.error_message})"
        typer.echo(line)
        if task.result_data:
            typer.echo(f"    {json.dumps(task.result_data, ensure_ascii=False, default=str)}")


# ----------------------------------------------------------------------
# workflow
@workflow_app.command("types")
def workflow_types() -> None:
    """List the workflow types that can be started."""
    for item in available_workflows():
        steps = " -> ".join(s["type"] for s in item["steps"])
        typer.echo(f"{item['type']}\t{item['name']}\t{steps}")


@workflow_app.command("run")
def workflow_run(
    workflow_type: str,
    owner: Optional[str] = typer.Option(None, help="Owning user id"),
    project: Optional[str] = typer.Option(None, help="Project id"),
    params: Optional[str] = typer.Option(None, help="Job input parameters as JSON"),
    detach: bool = typer.Option(
        False, help="Only create the job; run it later with 'workflow resume'"
    ),
) -> None:
    """
    Start a workflow job and, unless detached, run it to the end.

    Example:
        genflow workflow run script_only --params '{"textModel": "DeepSeek Chat", "title": "Dawn"}'
    """
    job_params = _parse_params(params)

    async def _run() -> None:
        engine = _engine()
        try:
            started = await engine.start(
                workflow_type, owner, project, job_params, background=not detach
            )
            typer.echo(f"Job created: {started.job_id}")
            if detach:
                return
            _echo_status(await engine.wait(started.job_id))
        finally:
            await engine.aclose()

    try:
        asyncio.run(_run())
    except GenflowError as exc:
        _fail(str(exc))


@workflow_app.command("list")
def workflow_list(
    owner: Optional[str] = typer.Option(None, help="Filter by owner"),
    project: Optional[str] = typer.Option(None, help="Filter by project"),
    status: Optional[str] = typer.Option(None, help="Comma separated statuses"),
    limit: int = typer.Option(50, help="Maximum number of jobs"),
) -> None:
    """List jobs, newest first."""

    async def _list():
        engine = _engine()
        try:
            return await engine.list_jobs(
                owner_id=owner, project_id=project, status=status, limit=limit
            )
        finally:
            await engine.aclose()

    jobs = asyncio.run(_list())
    if not jobs:
        typer.echo("No jobs found")
        return
    for job in jobs:
        typer.echo(
            f"{job.id}\t{job.workflow_type}\t{job.status.value}\t"
            f"{job.current_step_index + 1}/{job.total_steps}"
        )


@workflow_app.command("show")
def workflow_show(job_id: str) -> None:
    """Show a job with its ordered tasks."""

    async def _show():
        engine = _engine()
        try:
            return await engine.get_status(job_id)
        finally:
            await engine.aclose()

    try:
        view = asyncio.run(_show())
    except GenflowError:
        _fail("Job not found")
    _echo_status(view)


@workflow_app.command("resume")
def workflow_resume(job_id: str) -> None:
    """Retry the failed steps of a job and wait for it to finish."""

    async def _resume():
        engine = _engine()
        try:
            ack = await engine.resume(job_id)
            typer.echo(f"Job {ack.job_id}: {ack.status}")
            return await engine.wait(job_id)
        finally:
            await engine.aclose()

    try:
        view = asyncio.run(_resume())
    except GenflowError as exc:
        _fail(str(exc))
    _echo_status(view)


@workflow_app.command("cancel")
def workflow_cancel(
    job_id: str,
    owner: Optional[str] = typer.Option(None, help="Owner id the job must belong to"),
) -> None:
    """Cancel a job that has not completed."""

    async def _cancel():
        engine = _engine()
        try:
            return await engine.cancel(job_id, owner)
        finally:
            await engine.aclose()

    try:
        ack = asyncio.run(_cancel())
    except GenflowError as exc:
        _fail(str(exc))
    typer.echo(f"Job {ack.job_id}: {ack.status}")


# ----------------------------------------------------------------------
# fields
@fields_app.command("list")
def fields_list(
    category: Optional[str] = typer.Option(None, help="Only show one category"),
) -> None:
    """List registered step-input fields."""
    for spec in FIELD_REGISTRY.values():
        if category and spec.category != category:
            continue
        source = "resolver" if spec.resolver else spec.source
        default = "" if spec.default is None else f" [default: {spec.default!r}]"
        typer.echo(f"{spec.name}\t{spec.category}\t{source}\t{spec.description}{default}")


# ----------------------------------------------------------------------
# provider
@provider_app.command("list")
def provider_list(
    category: Optional[str] = typer.Option(None, help="TEXT, IMAGE, VIDEO or AUDIO"),
) -> None:
    """List active provider configurations."""

    async def _list():
        engine = _engine()
        try:
            return await engine.adapter.list_models(category)
        finally:
            await engine.aclose()

    configs = asyncio.run(_list())
    if not configs:
        typer.echo("No providers configured")
        return
    for config in configs:
        mode = "async" if config.is_async else "sync"
        typer.echo(f"{config.name}\t{config.category}\t{config.provider}\t{mode}")


@provider_app.command("call")
def provider_call(
    model_name: str,
    params: Optional[str] = typer.Option(None, help="Request parameters as JSON"),
) -> None:
    """Call one provider directly and print the mapped result."""
    request = _parse_params(params)

    async def _call():
        engine = _engine()
        try:
            return await engine.adapter.execute(model_name, request)
        finally:
            await engine.aclose()

    try:
        result = asyncio.run(_call())
    except GenflowError as exc:
        _fail(str(exc))
    typer.echo(json.dumps(result, ensure_ascii=False, indent=2, default=str))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
