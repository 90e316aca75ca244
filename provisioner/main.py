"""
Posit host provisioner — CLI entrypoint.

Usage:
    posit-provisioner --help
    posit-provisioner plan
    posit-provisioner --variant package-manager run
    python -m provisioner.main config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from provisioner import __version__
from provisioner.core.observability.logging_config import DEFAULT_LEVEL, setup_logging

VARIANTS = ("package-manager", "workbench")

_STATUS_STYLE = {
    "ok": ("✓", "green"),
    "skipped": ("⊘", "yellow"),
    "diagnostic": ("!", "yellow"),
    "fatal": ("✗", "red"),
}


@click.group()
@click.version_option(version=__version__, prog_name="posit-provisioner")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to provision.yml (default: auto-detect).",
)
@click.option(
    "--variant",
    type=click.Choice(VARIANTS),
    default=None,
    help="Product variant (overrides the config file).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    variant: str | None,
) -> None:
    """Provision an Ubuntu host with R, Python, Quarto and a Posit server product."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["variant"] = variant

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("PROVISIONER_LOG_LEVEL", DEFAULT_LEVEL)

    setup_logging(
        level=level,
        log_file=os.environ.get("PROVISIONER_LOG_FILE"),
        log_file_level=os.environ.get("PROVISIONER_LOG_FILE_LEVEL"),
    )


def _load_config(ctx: click.Context):
    """Load the config selected by the global options, or exit 1."""
    from provisioner.core.config.loader import ConfigError, load_config

    try:
        return load_config(ctx.obj.get("config_path"), variant=ctx.obj.get("variant"))
    except ConfigError as e:
        click.secho(f"ERROR: {e}", fg="red", err=True)
        sys.exit(1)


def _echo_step(result, verbose: bool) -> None:
    marker, color = _STATUS_STYLE.get(result.status, ("?", "white"))
    click.secho(f"   {marker} {result.step}", fg=color, nl=False)
    timing = f" ({result.duration_ms}ms)" if result.duration_ms else ""
    detail = result.error if result.fatal else result.message
    click.echo(f"{timing}  {detail}" if detail else timing)
    for warning in result.warnings:
        click.secho(f"     ⚠ {warning}", fg="yellow")
    for check in result.checks:
        if verbose or not check.ok:
            check_marker = "✓" if check.ok else "✗"
            click.echo(f"     {check_marker} {check.name}: {check.detail}")


# ── Pipeline ────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, help="Validate and show the plan without executing.")
@click.option("--skip-smoke", is_flag=True, help="Leave out the smoke-test step.")
@click.pass_context
def run(ctx: click.Context, as_json: bool, dry_run: bool, skip_smoke: bool) -> None:
    """Run the full provisioning pipeline.

    Examples:

        posit-provisioner run

        posit-provisioner --variant package-manager run --skip-smoke

        posit-provisioner run --dry-run
    """
    from provisioner.core.use_cases.provision import run_provision

    config = _load_config(ctx)
    result = run_provision(
        config,
        runner=ctx.obj.get("runner"),
        fetch=ctx.obj.get("fetch"),
        probe=ctx.obj.get("probe"),
        dry_run=dry_run,
        skip_smoke=skip_smoke,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"ERROR: {result.error}", fg="red", err=True)
        sys.exit(1)

    if dry_run:
        click.secho(f"\n[dry-run] {config.product_label} ({config.variant})", fg="cyan", bold=True)
        for i, entry in enumerate(result.plan, start=1):
            click.echo(f"   {i}. {entry['step']:<10} {entry['title']}")
        click.echo()
        return

    report = result.report
    if report is None:
        sys.exit(result.exit_code)

    click.secho(f"\n⚡ {config.product_label} ({config.variant}) — {report.run_id}", fg="cyan", bold=True)
    for step_result in report.results:
        _echo_step(step_result, ctx.obj.get("verbose", False))

    click.echo()
    status_color = {"ok": "green", "degraded": "yellow", "failed": "red"}.get(report.status, "white")
    click.secho(f"   Result: {report.status}", fg=status_color, bold=True)

    if report.failed:
        sys.exit(1)

    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--skip-smoke", is_flag=True, help="Leave out the smoke-test step.")
@click.pass_context
def plan(ctx: click.Context, as_json: bool, skip_smoke: bool) -> None:
    """Show the ordered steps and the artifacts they pass along."""
    from provisioner.core.engine.orchestrator import build_plan, describe_plan, validate_plan
    from provisioner.core.errors import PlanError

    config = _load_config(ctx)
    steps = build_plan(config, skip_smoke=skip_smoke)
    try:
        validate_plan(steps, config)
    except PlanError as e:
        click.secho(f"ERROR: {e}", fg="red", err=True)
        sys.exit(1)

    entries = describe_plan(steps, config)
    if as_json:
        click.echo(json.dumps({"variant": config.variant, "steps": entries}, indent=2))
        return

    click.secho(f"\n📋 {config.product_label} ({config.variant})", fg="cyan", bold=True)
    for i, entry in enumerate(entries, start=1):
        click.secho(f"   {i}. {entry['step']}", bold=True, nl=False)
        click.echo(f" — {entry['title']}")
        if entry["requires"]:
            click.echo(f"      needs:    {', '.join(entry['requires'])}")
        if entry["produces"]:
            names = ", ".join(a["name"] for a in entry["produces"])
            click.echo(f"      produces: {names}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def arch(ctx: click.Context, as_json: bool) -> None:
    """Detect the host architecture and its download tokens."""
    from provisioner.adapters.base import CommandError
    from provisioner.adapters.shell import SubprocessRunner
    from provisioner.core.errors import ProvisionError
    from provisioner.core.services.preflight import detect_architecture

    runner = ctx.obj.get("runner") or SubprocessRunner()
    try:
        detected = detect_architecture(runner)
    except (ProvisionError, CommandError) as e:
        click.secho(f"ERROR: {e}", fg="red", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(detected.to_dict(), indent=2))
        return

    click.echo(f"deb:    {detected.deb}")
    click.echo(f"quarto: {detected.quarto}")


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def smoke(ctx: click.Context, as_json: bool) -> None:
    """Run only the smoke tests against an already provisioned host.

    Smoke tests are observational: the exit code is 0 whatever they find.
    """
    from provisioner.core.use_cases.provision import run_smoke_only

    config = _load_config(ctx)
    result = run_smoke_only(config, runner=ctx.obj.get("runner"), probe=ctx.obj.get("probe"))

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    click.echo()
    _echo_step(result, verbose=True)
    click.echo()


# ── Config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Provisioning configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate provision.yml configuration."""
    from provisioner.core.config.loader import ConfigError, find_config_file, load_config

    config_path: Path | None = ctx.obj.get("config_path") or find_config_file()
    source = str(config_path) if config_path else "built-in defaults"

    try:
        cfg = load_config(config_path, variant=ctx.obj.get("variant"), search=False)
    except ConfigError as e:
        if as_json:
            click.echo(json.dumps({"valid": False, "source": source, "errors": [str(e)]}, indent=2))
        else:
            click.secho("❌ Configuration errors:", fg="red", bold=True)
            click.echo(f"   • {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({"valid": True, "source": source, "config": cfg.summary()}, indent=2))
        return

    summary = cfg.summary()
    click.secho("✅ Configuration is valid", fg="green", bold=True)
    click.echo(f"   Source:  {source}")
    click.echo(f"   Variant: {cfg.variant}")
    click.echo(f"   Product: {summary['product']['name']} {summary['product']['version']}")
    click.echo(f"   R:       {', '.join(summary['r_versions'])}")
    click.echo(f"   Python:  {', '.join(summary['python_versions'])}")
    if "quarto_versions" in summary:
        click.echo(f"   Quarto:  {', '.join(summary['quarto_versions'])}")
    if "drivers_version" in summary:
        click.echo(f"   Drivers: {summary['drivers_version']}")
    click.echo()


@config.command("init")
@click.option(
    "--path",
    "target",
    type=click.Path(dir_okay=False),
    default=None,
    help="Where to write provision.yml (default: ./provision.yml).",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file.")
@click.pass_context
def config_init(ctx: click.Context, target: str | None, force: bool) -> None:
    """Write a provision.yml with the built-in defaults."""
    from provisioner.core.config.loader import CONFIG_FILE, load_config, render_config

    path = Path(target) if target else Path.cwd() / CONFIG_FILE
    if path.exists() and not force:
        click.secho(f"ERROR: {path} already exists (use --force to overwrite)", fg="red", err=True)
        sys.exit(1)

    cfg = load_config(None, variant=ctx.obj.get("variant"), search=False)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_config(cfg), encoding="utf-8")
    click.secho(f"✅ Wrote {path} ({cfg.variant})", fg="green")


# ── History ─────────────────────────────────────────────────────


@cli.command()
@click.option("-n", "count", default=10, show_default=True, type=int, help="Number of entries.")
@click.option(
    "--status",
    type=click.Choice(["ok", "degraded", "failed"]),
    default=None,
    help="Only show runs that ended with this status.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, status: str | None, as_json: bool) -> None:
    """Show recent provisioning runs from the audit ledger."""
    from provisioner.core.persistence.audit import AuditWriter

    cfg = _load_config(ctx)
    if not cfg.audit_log:
        if as_json:
            click.echo("[]")
        else:
            click.echo("No audit_log configured.")
        return

    entries = AuditWriter(Path(cfg.audit_log)).read_recent(count, status=status)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo(f"No runs recorded in {cfg.audit_log}.")
        return

    for entry in entries:
        color = {"ok": "green", "degraded": "yellow", "failed": "red"}.get(entry.status, "white")
        click.echo(f"{entry.timestamp}  {entry.run_id}  {entry.variant:<16}", nl=False)
        click.secho(f" {entry.status}", fg=color, nl=False)
        click.echo(f"  ({entry.duration_ms}ms)")
        if entry.failed_step:
            click.echo(f"    {entry.failed_step}: {entry.error}")


if __name__ == "__main__":
    cli()
