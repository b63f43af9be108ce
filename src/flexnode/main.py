"""CLI main entry point."""

import asyncio
import json
import sys
from collections.abc import Coroutine
from typing import Any

import click
import structlog
from rich.console import Console
from rich.markup import escape

from . import __version__
from .bootstrap import Bootstrapper, ExecutionResult, StepStatus
from .bootstrap.platform import is_azure_vm, select_identity_strategy
from .config import NodeConfig, load_config
from .errors import FlexNodeError
from .shared.logging import configure_logging

logger = structlog.get_logger(__name__)

console = Console(stderr=True)

STATUS_STYLES = {
    StepStatus.SUCCEEDED: "green",
    StepStatus.FAILED: "red",
    StepStatus.SKIPPED: "yellow",
    StepStatus.NOT_RUN: "dim",
}


@click.group()
@click.option("-c", "--config", type=click.Path(), help="Config file path")
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: int, json_logs: bool) -> None:
    """Join this machine to an AKS cluster as a flex node."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["json_logs"] = json_logs


def _load(ctx: click.Context) -> NodeConfig:
    """Load configuration and set up logging from it."""
    try:
        config = load_config(ctx.obj["config_path"])
    except FlexNodeError as e:
        console.print(f"[red]Error:[/red] {escape(e.message)}")
        sys.exit(1)

    level = "debug" if ctx.obj["verbose"] else config.logging.level
    configure_logging(
        level=level,
        log_file=config.logging.file,
        json_output=ctx.obj["json_logs"] or config.logging.json,
    )
    logger.debug("Configuration loaded", source=config.source)
    return config


def _run(coro: Coroutine[Any, Any, ExecutionResult], timeout: int | None) -> ExecutionResult:
    """Run a bootstrap coroutine, optionally under an overall deadline."""

    async def _with_deadline() -> ExecutionResult:
        if timeout:
            return await asyncio.wait_for(coro, timeout=timeout)
        return await coro

    try:
        return asyncio.run(_with_deadline())
    except asyncio.TimeoutError:
        console.print(f"[red]Error:[/red] timed out after {timeout}s")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("[yellow]Aborted[/yellow]")
        sys.exit(130)


def _result_dict(result: ExecutionResult) -> dict[str, Any]:
    return {
        "label": result.label,
        "success": result.success,
        "error": str(result.error) if result.error else None,
        "steps": [
            {
                "name": o.name,
                "status": o.status.value,
                "phase": o.phase.value if o.phase else None,
                "error": str(o.error) if o.error else None,
                "duration_seconds": round(o.duration_seconds, 3),
            }
            for o in result.outcomes
        ],
    }


def _report(result: ExecutionResult, json_output: bool, verbose: int) -> None:
    """Print the result and exit non-zero on failure."""
    if json_output:
        click.echo(json.dumps(_result_dict(result), indent=2))
    else:
        for outcome in result.outcomes:
            style = STATUS_STYLES[outcome.status]
            console.print(f"  [{style}]{outcome.status.value:<9}[/{style}] {escape(outcome.name)}")
        console.print(escape(result.summary()))

    if result.error is None:
        return

    console.print(f"[red]Error:[/red] {escape(result.error.message)}")
    if verbose:
        # The top-level message already embeds the direct cause
        cause = result.error.__cause__.__cause__ if result.error.__cause__ else None
        while cause is not None:
            console.print(f"  [dim]caused by {type(cause).__name__}:[/dim] {escape(str(cause))}")
            cause = cause.__cause__
    sys.exit(1)


@cli.command()
@click.option("-t", "--timeout", type=int, help="Overall deadline in seconds")
@click.option("--skip-completed", is_flag=True, help="Skip steps that report they are already done")
@click.option("--json", "json_output", is_flag=True, help="Output result as JSON")
@click.pass_context
def bootstrap(ctx: click.Context, timeout: int | None, skip_completed: bool, json_output: bool) -> None:
    """Install node components and establish cluster trust."""
    config = _load(ctx)
    bootstrapper = Bootstrapper(config)
    result = _run(bootstrapper.bootstrap(skip_completed=skip_completed), timeout)
    _report(result, json_output, ctx.obj["verbose"])


@cli.command()
@click.option("-t", "--timeout", type=int, help="Overall deadline in seconds")
@click.option("--json", "json_output", is_flag=True, help="Output result as JSON")
@click.pass_context
def unbootstrap(ctx: click.Context, timeout: int | None, json_output: bool) -> None:
    """Remove node components and revoke cluster trust."""
    config = _load(ctx)
    bootstrapper = Bootstrapper(config)
    result = _run(bootstrapper.unbootstrap(), timeout)
    _report(result, json_output, ctx.obj["verbose"])


@cli.command()
@click.pass_context
def detect(ctx: click.Context) -> None:
    """Show which identity strategy this host would use."""
    config = _load(ctx)
    azure_vm = is_azure_vm()
    strategy = select_identity_strategy(lambda: azure_vm, config.identity_strategy)
    click.echo(f"Azure VM: {'yes' if azure_vm else 'no'}")
    source = "configured" if config.identity_strategy != "auto" else "detected"
    click.echo(f"Identity strategy: {strategy.value} ({source})")


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"flexnode version {__version__}")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
