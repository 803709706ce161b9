"""
CLI interface for sqlstudio.

Provides commands to run jobs and inspect their executions.

Jobs are YAML or JSON files in <data_dir>/jobs/ and executions are recorded
as JSON in <data_dir>/executions/ (see FileJobService).
"""

import json
from pathlib import Path

import click

from sqlstudio import __version__


@click.group()
@click.version_option(version=__version__, prog_name="sqlstudio")
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.yaml (default: $SQLSTUDIO_HOME/config.yaml)",
)
@click.pass_context
def main(ctx, config_path):
    """
    sqlstudio - Workflow execution engine.

    Run jobs that query SQL Server and Redshift and merge the results.
    """
    from sqlstudio.config import ConfigError, load_config

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        # 'init' runs without a config; other commands report this error
        ctx.obj["config_error"] = str(e)


def _require_config(ctx):
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'sqlstudio init' to create a configuration file.", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _job_service(config):
    from sqlstudio.job_service import FileJobService

    return FileJobService(config.data_dir)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize sqlstudio configuration."""
    import yaml

    from sqlstudio.config import get_studio_home

    home = get_studio_home()
    home.mkdir(parents=True, exist_ok=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = {
        "data_dir": str(home / "data"),
        "env_file": str(home / ".env"),
        "sqlserver": {
            "host": "localhost",
            "port": 1433,
            "database": "master",
            "user": "sa",
            "password_env": "SQLSERVER_PASSWORD",
        },
        "redshift": {
            "host": "localhost",
            "port": 5439,
            "database": "dev",
            "user": "awsuser",
            "password_env": "REDSHIFT_PASSWORD",
        },
        "logging": {
            "level": "INFO",
            "format": "structured",
            "file": str(home / "logs" / "sqlstudio.log"),
        },
        "progress_queue_size": 1000,
    }
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# SQLSERVER_PASSWORD=...\n# REDSHIFT_PASSWORD=...\n")

    (home / "data" / "jobs").mkdir(parents=True, exist_ok=True)
    click.echo(f"Initialized sqlstudio config at {cfg_path}")


@main.command("run")
@click.argument("job_id")
@click.option("--scheduled", is_flag=True, help="Record the run as scheduled instead of manual")
@click.pass_context
def run(ctx, job_id: str, scheduled: bool):
    """
    Run a job by ID.

    JOB_ID is the job file name without extension.

    Examples:

        sqlstudio run daily_revenue

        sqlstudio run daily_revenue --scheduled
    """
    from sqlstudio.backends import build_executors
    from sqlstudio.broadcaster import ConsoleSink, ProgressBroadcaster
    from sqlstudio.executor import JobExecutor
    from sqlstudio.handlers import HandlerRegistry
    from sqlstudio.utils import setup_logging

    config = _require_config(ctx)
    setup_logging(config.log_file, config.log_level, config.log_format, console_output=False)

    broadcaster = ProgressBroadcaster(ConsoleSink(), queue_size=config.progress_queue_size)
    try:
        executors = build_executors(config)
        executor = JobExecutor(
            job_service=_job_service(config),
            handlers=HandlerRegistry.create_default(**executors),
            progress=broadcaster,
        )
        execution = executor.execute_job(job_id, "scheduled" if scheduled else "manual")
    except Exception as e:
        broadcaster.close()
        click.echo(f"✗ {job_id} failed: {e}", err=True)
        raise SystemExit(1)
    broadcaster.close()

    failed = execution.failed_steps()
    click.echo(
        f"✓ {job_id} completed (execution {execution.id}, "
        f"{execution.rows_processed or 0} rows, {execution.duration_seconds or 0:.2f}s)"
    )
    if failed:
        click.echo(f"  {len(failed)} step(s) failed: {', '.join(str(r.step_number) for r in failed)}")


@main.command("jobs")
@click.pass_context
def list_jobs(ctx):
    """List jobs."""
    config = _require_config(ctx)
    jobs = _job_service(config).list_jobs()

    if not jobs:
        click.echo("No jobs found.")
        return

    for job in jobs:
        last_run = job.last_run_time.isoformat() if job.last_run_time else "never"
        status = "" if job.is_active else " (inactive)"
        click.echo(f"{job.id}  {job.job_type.value}  {job.job_name}  last run: {last_run}{status}")


@main.command("executions")
@click.argument("job_id")
@click.pass_context
def list_executions(ctx, job_id: str):
    """List executions of a job, oldest first."""
    config = _require_config(ctx)
    executions = _job_service(config).list_executions(job_id)

    if not executions:
        click.echo(f"No executions for job {job_id}.")
        return

    for execution in executions:
        started = execution.started_at.isoformat() if execution.started_at else "-"
        click.echo(
            f"{execution.id}  {execution.status.value}  {execution.trigger_type.value}  "
            f"{started}  rows: {execution.rows_processed if execution.rows_processed is not None else '-'}"
        )


@main.command("show")
@click.argument("execution_id")
@click.pass_context
def show_execution(ctx, execution_id: str):
    """Show an execution record as JSON."""
    config = _require_config(ctx)
    execution = _job_service(config).get_execution(execution_id)

    if execution is None:
        click.echo(f"✗ Execution {execution_id} not found", err=True)
        raise SystemExit(1)

    click.echo(json.dumps(execution.to_dict(), indent=2, default=str))


if __name__ == "__main__":
    main()
