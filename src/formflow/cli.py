"""CLI for FormFlow."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from formflow.config import load_app_config
from formflow.constants import PACKAGE_VERSION
from formflow.definitions import load_flow_definition
from formflow.errors import ConfigurationError
from formflow.runner import FormFlowRunner, drive
from formflow.schemas.answer_models import coerce_answer
from formflow.schemas.enums import SubmissionStatus
from formflow.schemas.flow_models import AdvanceResult
from formflow.security.redaction import redact_text
from formflow.sinks import DirectorySubmitter, DirectoryUploader
from formflow.steps import FlowDefinition

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="FormFlow multi-step form flow engine.",
)
console = Console()


@app.command()
def version() -> None:
    """Print the FormFlow version."""
    typer.echo(PACKAGE_VERSION)


@app.command("validate-config")
def validate_config(
    config: Path | None = typer.Option(
        None, "--config", help="Path to settings.yaml override."
    ),
) -> None:
    """Validate configuration and print the effective settings."""
    try:
        config_model = load_app_config(config)
    except Exception as exc:  # noqa: BLE001
        console.print(f"[red]Configuration validation failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title="Effective Settings")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("schema_version", config_model.schema_version)
    table.add_row("submission.timeout_seconds", str(config_model.submission.timeout_seconds))
    table.add_row(
        "submission.max_concurrent_transforms",
        str(config_model.submission.max_concurrent_transforms),
    )
    table.add_row("transitions.enabled", str(config_model.transitions.enabled))
    table.add_row("transitions.db_path", config_model.transitions.db_path)
    table.add_row("logging.level", config_model.logging.level)
    console.print(table)


@app.command("inspect")
def inspect_flow(
    flow_file: Path = typer.Argument(..., help="Flow definition YAML."),
    answers_file: Path | None = typer.Option(
        None, "--answers", help="YAML/JSON answers used to evaluate applicability."
    ),
) -> None:
    """Show the derived steps and which of them currently apply."""
    try:
        definition = load_flow_definition(flow_file)
        answers = _parsed_answers(definition, _load_answers(answers_file))
    except Exception as exc:  # noqa: BLE001
        console.print(f"[red]Flow inspection failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title=f"Flow: {definition.title or definition.key}")
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Fields")
    table.add_column("Applicable")
    for step in definition.steps:
        visible = {field.id for field in definition.step_fields(step, answers)}
        fields = ", ".join(
            f"{field.id} ({field.kind})" if field.id in visible else f"[dim]{field.id}[/dim]"
            for field in step.fields
        )
        marker = "[green]yes[/green]" if visible else "[dim]no[/dim]"
        label = f"{step.key} [cyan](lead)[/cyan]" if step.lead else step.key
        table.add_row(str(step.index), label, fields, marker)
    console.print(table)


@app.command("run")
def run(
    flow_file: Path = typer.Argument(..., help="Flow definition YAML."),
    answers_file: Path = typer.Option(..., "--answers", help="YAML/JSON answers file."),
    output_dir: Path = typer.Option(
        Path("submissions"), "--output-dir", help="Directory for submission payloads."
    ),
    config: Path | None = typer.Option(None, "--config", help="Path to settings.yaml override."),
    log_level: str | None = typer.Option(None, "--log-level", help="Override log level."),
    timeout_seconds: float | None = typer.Option(
        None, "--timeout", help="Submit operation timeout in seconds."
    ),
) -> None:
    """Drive a flow with prepared answers and write the submission payload."""
    try:
        runner = FormFlowRunner(
            config_path=config,
            cli_overrides={"log_level": log_level, "timeout_seconds": timeout_seconds},
        )
        _configure_logging(runner.config.logging.level)
        definition = load_flow_definition(flow_file)
        answers = _load_answers(answers_file)
        submitter = DirectorySubmitter(output_dir)
        flow = runner.start(
            definition,
            submitter,
            uploader=DirectoryUploader(output_dir),
        )
        result = asyncio.run(drive(flow, answers))
    except ConfigurationError as exc:
        console.print(f"[red]Flow configuration error:[/red] {exc}")
        raise typer.Exit(code=2) from exc
    except Exception as exc:  # noqa: BLE001
        console.print(f"[red]Run failed:[/red] {redact_text(str(exc))}")
        raise typer.Exit(code=1) from exc

    _render_result(result, flow.current_step.key)
    if result.submission.status != SubmissionStatus.SUCCEEDED:
        raise typer.Exit(code=1)
    console.print(
        Panel.fit(
            f"submission id: [bold]{result.submission.submission_id}[/bold]\n"
            f"payload: [bold]{submitter.written[-1]}[/bold]",
            title="Submitted",
        )
    )


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_answers(path: Path | None) -> dict[str, Any]:
    if path is None:
        return {}
    if not path.exists():
        raise FileNotFoundError(f"Answers file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError("Answers file must deserialize to a mapping")
    return data


def _parsed_answers(definition: FlowDefinition, raw: dict[str, Any]) -> dict[str, Any]:
    return {
        field_id: coerce_answer(definition.field(field_id).kind, value)
        for field_id, value in raw.items()
    }


def _render_result(result: AdvanceResult, step_key: str) -> None:
    if result.issues:
        table = Table(title=f"Validation issues at step '{step_key}'")
        table.add_column("Field")
        table.add_column("Code")
        table.add_column("Message")
        for issue in result.issues:
            table.add_row(issue.field_id, issue.code, issue.message)
        console.print(table)
    status = result.submission
    table = Table(title="Submission")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Reason")
    table.add_row(status.status.value, str(status.attempts), status.reason or "-")
    console.print(table)
