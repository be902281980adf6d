import importlib
import json
import logging

import click

import command_job  # noqa: F401  registers the "command" job
import database
from cli_utils import TABLE_HEADERS, format_job_details, format_job_line, job_rows, print_job_table
from config import Config
from database import JobRecord
from dlq import DLQManager
from enqueue import enqueue_job, parse_arg
from errors import JobError, JobNotFound, UnknownJobType
from executor import run_job
from lockable import LockManager
from models import RunStatus
from registry import registry
from storage import JobStorage
from utils import clock, format_datetime
from worker import Worker

EXIT_NOT_FOUND = 4


def import_job_modules(modules):
    """Import the modules declaring job types so they get registered."""
    for name in modules:
        importlib.import_module(name)


def lock_manager_for(cfg):
    return LockManager(JobRecord, lock_timeout=int(cfg.get("lock_timeout")))


@click.group()
@click.option("--database-url", envvar="JOBCTL_DATABASE_URL", default=None, help="SQLAlchemy URL of the jobs database")
@click.option("--import", "modules", multiple=True, help="Module registering job types (repeatable)")
@click.pass_context
def cli(ctx, database_url, modules):
    """jobctl - schedule jobs and run the workers executing them"""
    cfg = Config()
    logging.basicConfig(
        level=cfg.get("log_level"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    clock.set_timezone(cfg.get("timezone"))
    import_job_modules(list(cfg.get("job_modules") or []) + list(modules))
    database.configure(database_url)
    database.initialize_db()
    ctx.obj = cfg


@cli.command("init-db")
def init_db():
    """Create the jobs table"""
    database.initialize_db()
    click.echo(f"Initialized database at {database.get_engine().url}")


@cli.command()
@click.argument("name")
@click.argument("args", nargs=-1)
@click.option("--at", "perform_at", default=None, help="ISO datetime or relative time (\"+10 minutes\")")
@click.option("--queue", default=None, help="Queue of the job (default: the job type's one)")
@click.option("--frequency", default=None, help="Repeat the job, e.g. \"+1 hour\"")
def enqueue(name, args, perform_at, queue, frequency):
    """Schedule a registered job"""
    try:
        job = enqueue_job(
            name,
            [parse_arg(a) for a in args],
            perform_at=perform_at,
            queue=queue,
            frequency=frequency,
        )
    except UnknownJobType as e:
        raise click.ClickException(f"{e} Registered job types: {', '.join(registry.names())}")
    except JobError as e:
        raise click.ClickException(str(e))
    click.echo(f"job#{job.id} ({job.name}) scheduled at {format_datetime(job.perform_at)} in queue {job.queue}")


@cli.command()
@click.option("--queue", default="all", help="Queue to watch (trailing numbers are ignored)")
@click.option("--stop-after", default=0, type=int, help="Stop after this number of jobs (0: never)")
@click.option("--sleep-duration", default=None, type=float, help="Seconds to wait when there is no job")
@click.pass_obj
def watch(cfg, queue, stop_after, sleep_duration):
    """Start a worker executing the jobs in a loop"""
    worker = Worker(queue=queue, stop_after=stop_after, sleep_duration=sleep_duration, config=cfg)
    for line in worker.watch():
        click.echo(line)


@cli.command()
@click.argument("job_id", type=int)
@click.pass_context
def run(ctx, job_id):
    """Execute a job, even if it's not its time yet"""
    result = run_job(job_id, lock_manager=lock_manager_for(ctx.obj))
    click.echo(str(result))
    if result.status is RunStatus.NOT_FOUND:
        ctx.exit(EXIT_NOT_FOUND)
    if not result.ok:
        ctx.exit(1)


@cli.command()
@click.option("--queue", default=None, help="Only list the jobs of this queue")
@click.option("--table", is_flag=True, help="Display the jobs as a table")
def index(queue, table):
    """List the jobs"""
    records = JobStorage().list_jobs(queue)
    if not records:
        click.echo("No jobs.")
        return
    if table:
        click.echo(print_job_table(TABLE_HEADERS, job_rows(records)))
        return
    for record in records:
        click.echo(format_job_line(record))


@cli.command()
@click.argument("job_id", type=int)
@click.pass_context
def show(ctx, job_id):
    """Display the information about a job"""
    try:
        record = JobStorage().require_job(job_id)
    except JobNotFound as e:
        click.echo(str(e))
        ctx.exit(EXIT_NOT_FOUND)
    click.echo(format_job_details(record))


@cli.command()
@click.argument("job_id", type=int)
@click.pass_context
def unfail(ctx, job_id):
    """Discard the error of a job"""
    try:
        error = JobStorage().unfail(job_id)
    except JobNotFound as e:
        click.echo(str(e))
        ctx.exit(EXIT_NOT_FOUND)
    if error is None:
        click.echo(f"Job {job_id} has not failed.")
    else:
        click.echo(f"Job {job_id} is no longer failing, was:\n{error}")


@cli.command()
@click.argument("job_id", type=int)
@click.pass_context
def unlock(ctx, job_id):
    """Release the lock of a job"""
    try:
        record = JobStorage().require_job(job_id)
    except JobNotFound as e:
        click.echo(str(e))
        ctx.exit(EXIT_NOT_FOUND)

    lock_manager = lock_manager_for(ctx.obj)
    if not lock_manager.is_locked(record):
        click.echo(f"Job {job_id} was not locked.")
        return
    lock_manager.release(record)
    click.echo(f"Job {job_id} lock has been released.")


@cli.group()
def dlq():
    """Jobs which exhausted their attempts"""


@dlq.command("list")
@click.pass_obj
def dlq_list(cfg):
    records = DLQManager(cfg.get("max_attempts")).list_dlq()
    if not records:
        click.echo("DLQ is empty.")
        return
    click.echo(print_job_table(TABLE_HEADERS, job_rows(records)))


@dlq.command("retry")
@click.argument("job_id", type=int)
@click.pass_context
def dlq_retry(ctx, job_id):
    try:
        DLQManager(ctx.obj.get("max_attempts")).retry_job(job_id)
    except JobNotFound as e:
        click.echo(str(e))
        ctx.exit(EXIT_NOT_FOUND)
    click.echo(f"Job {job_id} will be retried as soon as possible.")


@dlq.command("cleanup")
@click.option("--days", default=7, type=int, help="Delete the jobs not updated since this number of days")
@click.pass_obj
def dlq_cleanup(cfg, days):
    count = DLQManager(cfg.get("max_attempts")).cleanup_old_jobs(days)
    if count:
        click.echo(f"Cleaned up {count} old DLQ job(s).")
    else:
        click.echo("No old DLQ jobs to clean up.")


@cli.group("config")
def config_group():
    """Show or change the configuration"""


@config_group.command("show")
@click.pass_obj
def config_show(cfg):
    for k, v in cfg.all().items():
        click.echo(f"{k}: {json.dumps(v)}")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def config_set(cfg, key, value):
    try:
        v = json.loads(value)
    except ValueError:
        v = value
    cfg.set(key, v)
    click.echo(f"Set {key} = {json.dumps(v)}")


@cli.command()
@click.option("--host", default="127.0.0.1")
@click.option("--port", default=5000, type=int)
def dashboard(host, port):
    """Serve the jobs dashboard"""
    from web_dashboard import app
    app.run(host=host, port=port)


if __name__ == '__main__':
    cli()
