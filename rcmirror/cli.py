"""CLI interface for rcmirror."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from .cli_progress import run_mirror_with_progress
from .config import Config, MirrorSettings, RunOptions
from .exceptions import MirrorError, MirrorStructuralError
from .log import EventId, configure_logging, event
from .output import OutputFormatter
from .supervisor import RunContext
from .sync import MirrorEngine, RunStateManager, ScopeFilterBuilder

logger = logging.getLogger(__name__)


def _load_settings(ctx: Any) -> MirrorSettings:
    """Load settings or exit with an error message."""
    out: OutputFormatter = ctx.obj["out"]
    cfg: Config = ctx.obj["config"]
    try:
        return cfg.load()
    except MirrorError as e:
        out.error(f"Configuration error: {e}")
        ctx.exit(e.exit_code)
        raise  # Unreachable, but helps type checker


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="RCMIRROR_CONFIG",
    help="Path to config file (default: ~/.config/rcmirror/config.json)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="rcmirror")
@click.pass_context
def main(
    ctx: Any,
    config_path: Optional[Path],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """rcmirror - Mirror a cloud remote into a local folder using rclone."""
    # Store settings in context for subcommands to access
    ctx.ensure_object(dict)
    ctx.obj["config"] = Config(config_path)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    # Console logging only until a command knows where the run log lives
    configure_logging(None, verbose=verbose)


@main.command()
@click.option("--remote", "-r", prompt="rclone remote (e.g. gdrive:)", help="rclone remote")
@click.option(
    "--local-root",
    "-l",
    prompt="Local mirror folder",
    type=click.Path(file_okay=False, path_type=Path),
    help="Local destination directory",
)
@click.option("--rclone", "rclone_path", default="rclone", help="rclone executable")
@click.option(
    "--work-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for logs and run state (default: ~/.config/rcmirror)",
)
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def init(
    ctx: Any,
    remote: str,
    local_root: Path,
    rclone_path: str,
    work_dir: Optional[Path],
    force: bool,
) -> None:
    """Write a config file and create the local hash inventory."""
    out: OutputFormatter = ctx.obj["out"]
    cfg: Config = ctx.obj["config"]

    if cfg.is_configured() and not force:
        out.error(f"Config already exists at {cfg.get_config_path()} (use --force)")
        ctx.exit(1)

    if not remote.endswith(":"):
        remote = f"{remote}:"
    kwargs: dict[str, Any] = {
        "remote": remote,
        "local_root": local_root,
        "rclone_path": rclone_path,
    }
    if work_dir is not None:
        kwargs["work_dir"] = work_dir

    try:
        settings = MirrorSettings(**kwargs)
        settings.validate()
        config_file = cfg.save(settings)
        state = RunStateManager(settings.last_run_file, settings.local_hash_file)
        created = state.initialize()
    except (MirrorError, OSError) as e:
        out.error(f"Initialization failed: {e}")
        ctx.exit(1)
        return

    out.print_summary(
        "Initialization Complete",
        [
            ("Config file", str(config_file)),
            ("Remote", settings.remote_base),
            ("Local folder", str(settings.local_root)),
            (
                "Hash inventory",
                f"{settings.local_hash_file} ({'created' if created else 'kept'})",
            ),
        ],
    )


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Show configuration and the state left by the last run."""
    out: OutputFormatter = ctx.obj["out"]
    cfg: Config = ctx.obj["config"]
    settings = _load_settings(ctx)
    state = RunStateManager(settings.last_run_file, settings.local_hash_file)

    last_run = state.load_last_run()
    try:
        local_hashes: Optional[int] = len(state.load_local_hashes())
    except MirrorError:
        local_hashes = None

    data = {
        "config_file": str(cfg.get_config_path()),
        "configured": cfg.is_configured(),
        "remote": settings.remote_base,
        "local_root": str(settings.local_root),
        "work_dir": str(settings.work_dir),
        "last_run": last_run.run_date.isoformat() if last_run else None,
        "last_run_complete": last_run.complete if last_run else None,
        "local_hashes": local_hashes,
    }
    if out.json_output:
        out.output_json(data)
        return

    last_run_text = "never"
    if last_run is not None:
        last_run_text = last_run.run_date.isoformat()
        if not last_run.complete:
            last_run_text += " (incomplete)"
    out.print_summary(
        "rcmirror status",
        [
            ("Config file", data["config_file"]),
            ("Remote", data["remote"]),
            ("Local folder", data["local_root"]),
            ("Last run", last_run_text),
            (
                "Local hashes",
                "missing (run 'rcmirror init')"
                if local_hashes is None
                else local_hashes,
            ),
        ],
    )


@main.command(name="scope-filter")
@click.argument("scope")
@click.option("--remote", "-r", default=None, help="Remote prefix to strip")
@click.pass_context
def scope_filter(ctx: Any, scope: str, remote: Optional[str]) -> None:
    """Print the filter rules a scoped sync would use for SCOPE."""
    out: OutputFormatter = ctx.obj["out"]
    prefix = remote if remote is not None else _load_settings(ctx).remote_base
    built = ScopeFilterBuilder(prefix).build(scope)
    if built is None:
        out.warning(f"Scope {scope!r} is empty; the configured filter would be used")
        ctx.exit(1)
        return
    if out.json_output:
        out.output_json(
            {"subtree": built.subtree, "rules": [r.to_line() for r in built.rules]}
        )
        return
    click.echo(built.to_text(), nl=False)


@main.command()
@click.option(
    "--live/--simulate",
    default=False,
    help="Really copy and delete (default: --simulate, change nothing)",
)
@click.option("--remote", "-r", default=None, help="Override the configured remote")
@click.option("--scope", "-s", default=None, help="Only mirror this remote subfolder")
@click.option("--skip-dedupe", is_flag=True, help="Do not deduplicate the remote")
@click.option(
    "--skip-process-control",
    is_flag=True,
    help="Do not stop/start the file-stream client",
)
@click.option(
    "--ignore-max-age",
    is_flag=True,
    help="Scan the whole remote, not just files changed since the last run",
)
@click.option(
    "--fail-on-tool-error",
    is_flag=True,
    help="Abort on the first rclone failure instead of continuing",
)
@click.option("--no-progress", is_flag=True, help="Disable progress bars")
@click.pass_context
def sync(
    ctx: Any,
    live: bool,
    remote: Optional[str],
    scope: Optional[str],
    skip_dedupe: bool,
    skip_process_control: bool,
    ignore_max_age: bool,
    fail_on_tool_error: bool,
    no_progress: bool,
) -> None:
    """Mirror the remote into the local folder.

    Runs a simulation unless --live is given.

    Examples:
        rcmirror sync                              # Simulate a full run
        rcmirror sync --live                       # Mirror for real
        rcmirror sync --live -s "gdrive:/My Pics/Tests"   # Test on a subfolder
        rcmirror sync --live --skip-dedupe --ignore-max-age
    """
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx)
    configure_logging(settings.run_log, verbose=ctx.obj["verbose"])

    options = RunOptions(
        simulate=not live,
        remote=remote,
        scope=scope,
        skip_dedupe=skip_dedupe,
        skip_process_control=skip_process_control,
        ignore_max_age=ignore_max_age,
        fail_fast=fail_on_tool_error,
    )

    context = RunContext()
    try:
        # Create output formatter for engine (respect no_progress)
        engine_out = OutputFormatter(
            json_output=out.json_output, quiet=no_progress or out.quiet
        )
        engine = MirrorEngine(settings, engine_out, context=context)
        report = run_mirror_with_progress(
            engine, options, show_progress=not (no_progress or out.quiet)
        )
    except KeyboardInterrupt:
        context.cancel()
        logger.error("Mirror run cancelled by user", extra=event(EventId.RUN_ABORTED))
        out.warning("\nMirror cancelled by user")
        ctx.exit(130)
        return
    except MirrorStructuralError as e:
        # Engine already logged the final ERROR line
        out.error(f"Run aborted: {e}")
        ctx.exit(e.exit_code)
        return
    except MirrorError as e:
        logger.error(f"Run failed: {e}", extra=event(EventId.RUN_ABORTED))
        out.error(f"Error: {e}")
        ctx.exit(e.exit_code)
        return

    if out.json_output:
        out.output_json(report.to_dict())
    elif report.warnings and not out.quiet:
        out.warning(
            f"\n⚠  {len(report.warnings)} warning(s); see {settings.run_log}"
        )


if __name__ == "__main__":
    main()
