"""CLI entry point for e2eguard."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from e2eguard.environment.modes import MODE_CONFIGS, get_test_mode_summary
from e2eguard.models.config import DEFAULT_CONFIG_FILE, FrameworkConfig
from e2eguard.models.test_mode import TestMode
from e2eguard.models.test_plan import TestPlan
from e2eguard.models.timeouts import TimeoutOperation
from e2eguard.models.visual import StandardViewport
from e2eguard.orchestrator import Orchestrator
from e2eguard.policy.timeouts import BASE_TIMEOUTS, MAX_TIMEOUTS, derive_config, get_multiplier

console = Console()
logger = logging.getLogger(__name__)

MODE_CHOICE = click.Choice([m.value for m in TestMode])
VIEWPORT_CHOICE = click.Choice([v.value for v in StandardViewport])


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(path: str) -> FrameworkConfig:
    """Load the config file, falling back to defaults when it does not exist."""
    try:
        return FrameworkConfig.load(path)
    except FileNotFoundError:
        logger.debug("No config at %s, using defaults", path)
        return FrameworkConfig()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Environment-adaptive end-to-end test runner"""
    setup_logging(verbose)


@cli.command()
@click.option("--plan", "-p", "plan_file", required=True, help="Path to test plan JSON")
@click.option("--config", "-c", default=DEFAULT_CONFIG_FILE, help="Config file path")
@click.option("--mode", "-m", type=MODE_CHOICE, default=None, help="Force a test mode")
@click.option("--base-url", default=None, help="Override the configured base URL")
def run(plan_file: str, config: str, mode: Optional[str], base_url: Optional[str]) -> None:
    """Execute a test plan in the detected (or forced) test mode."""
    cfg = _load_config(config)
    if base_url:
        cfg.base_url = base_url
    try:
        test_plan = TestPlan.load(plan_file)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    orchestrator = Orchestrator(cfg, mode_override=mode)
    result, reports = orchestrator.run_plan(test_plan)

    table = Table(title=f"Results ({result.mode})")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Run ID", result.run_id)
    table.add_row("Duration", f"{result.duration_seconds}s")
    table.add_row("Total Tests", str(result.total_tests))
    table.add_row("Passed", f"[green]{result.passed}[/green]")
    table.add_row("Failed", f"[red]{result.failed}[/red]")
    table.add_row("Skipped", f"[yellow]{result.skipped}[/yellow]")
    table.add_row("Errors", f"[red]{result.errors}[/red]")
    table.add_row("Flaky", f"[yellow]{result.flaky}[/yellow]")
    table.add_row("Visual soft failures", f"[yellow]{len(result.visual_soft_failures)}[/yellow]")
    console.print(table)

    for soft in result.visual_soft_failures:
        console.print(f"  [yellow]soft failure[/yellow] {soft.screenshot_name}: {soft.message}")
    for fmt, path in reports.items():
        console.print(f"  {fmt.upper()} report: [blue]{path}[/blue]")

    sys.exit(orchestrator.exit_code(result))


@cli.command("mode-info")
@click.option("--config", "-c", default=DEFAULT_CONFIG_FILE, help="Config file path")
@click.option("--mode", "-m", type=MODE_CHOICE, default=None, help="Force a test mode")
def mode_info(config: str, mode: Optional[str]) -> None:
    """Show the active test mode and every mode's configuration."""
    orchestrator = Orchestrator(_load_config(config), mode_override=mode)
    ctx = orchestrator.context
    summary = get_test_mode_summary(ctx.mode, ctx.environment, ctx.timeouts)

    console.print(f"[bold]Active mode:[/bold] [green]{ctx.mode.value}[/green]")
    console.print(f"  {summary['description']}")
    console.print(f"  CI: {summary['is_ci']} | OS: {summary['os']} | browsers: {', '.join(summary['browsers'])}")

    table = Table(title="Test modes")
    table.add_column("Mode", style="bold")
    table.add_column("Browsers")
    table.add_column("Retries")
    table.add_column("Workers")
    table.add_column("Visual")
    table.add_column("Tags")
    for test_mode, mode_config in MODE_CONFIGS.items():
        tags = [f"+{t.value}" for t in mode_config.include_tags] + [f"-{t.value}" for t in mode_config.exclude_tags]
        marker = " *" if test_mode is ctx.mode else ""
        table.add_row(
            f"{test_mode.value}{marker}",
            ", ".join(b.value for b in mode_config.browsers),
            str(mode_config.retries),
            str(mode_config.workers or "auto"),
            "yes" if mode_config.visual_testing_enabled else "no",
            " ".join(tags) or "-",
        )
    console.print(table)


@cli.command()
@click.option("--mode", "-m", type=MODE_CHOICE, default=None, help="Mode to show (default: detected)")
@click.option("--config", "-c", default=DEFAULT_CONFIG_FILE, help="Config file path")
def timeouts(mode: Optional[str], config: str) -> None:
    """Show operation timeouts for a test mode."""
    if mode is None:
        test_mode = Orchestrator(_load_config(config)).context.mode
    else:
        test_mode = TestMode(mode)
    resolved = derive_config(test_mode)

    table = Table(title=f"Timeouts for {test_mode.value} ({get_multiplier(test_mode):.1f}x)")
    table.add_column("Operation", style="bold")
    table.add_column("Base (ms)", justify="right")
    table.add_column("Effective (ms)", justify="right")
    table.add_column("Max (ms)", justify="right")
    for operation in TimeoutOperation:
        table.add_row(
            operation.value,
            str(BASE_TIMEOUTS[operation]),
            str(resolved.for_operation(operation)),
            str(MAX_TIMEOUTS[operation]),
        )
    console.print(table)


@cli.command("validate-env")
@click.option("--config", "-c", default=DEFAULT_CONFIG_FILE, help="Config file path")
def validate_env(config: str) -> None:
    """Check artifact directories and environment variables."""
    result = Orchestrator(_load_config(config)).validate_environment()
    for warning in result.warnings:
        console.print(f"[yellow]warning[/yellow] {warning}")
    for error in result.errors:
        console.print(f"[red]error[/red] {error}")
    if not result.success:
        console.print("[red]Environment validation failed[/red]")
        sys.exit(1)
    console.print("[green]Environment OK[/green]")


@cli.command("generate-baselines")
@click.option("--page", "pages", multiple=True, required=True, help="Baseline to capture as NAME=PATH")
@click.option("--viewport", "viewports", multiple=True, type=VIEWPORT_CHOICE, help="Viewport (repeatable)")
@click.option("--config", "-c", default=DEFAULT_CONFIG_FILE, help="Config file path")
@click.option("--base-url", default=None, help="Override the configured base URL")
def generate_baselines(pages: tuple[str, ...], viewports: tuple[str, ...], config: str, base_url: Optional[str]) -> None:
    """Capture baseline screenshots for the given pages."""
    targets: dict[str, str] = {}
    for value in pages:
        name, sep, target = value.partition("=")
        if not sep or not name or not target:
            raise click.BadParameter(f"expected NAME=PATH, got {value!r}", param_hint="--page")
        targets[name] = target

    cfg = _load_config(config)
    if base_url:
        cfg.base_url = base_url
    orchestrator = Orchestrator(cfg)
    entries = orchestrator.generate_baselines(
        targets, [StandardViewport(v) for v in viewports] or None
    )
    for entry in entries:
        console.print(f"  [green]baseline[/green] {entry.screenshot_name}")
    console.print(f"[green]{len(entries)} baseline(s) written to {cfg.baseline_dir}[/green]")


@cli.command()
@click.option("--base-url", "-u", prompt="Base URL", help="Website URL to test")
@click.option("--config", "-c", default=DEFAULT_CONFIG_FILE, help="Config file path")
def init(base_url: str, config: str) -> None:
    """Create a default configuration file."""
    config_path = Path(config)
    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    cfg = FrameworkConfig(base_url=base_url)
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nYou can now customize this file and run:")
    console.print("  [blue]e2eguard run --plan plan.json[/blue]")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
