from typing import Any, List

from prettytable import PrettyTable

from utils import format_datetime

TABLE_HEADERS = ["id", "name", "queue", "perform at", "attempts", "repeat", "status"]


def job_flags(record) -> List[str]:
    flags = []
    if record.locked_at:
        flags.append("locked")
    if record.failed_at:
        flags.append("failed")
    return flags


def format_job_line(record) -> str:
    """One line summary of a job, as listed by `jobctl index`."""
    text = f"job#{record.id} {record.name}"
    perform_at = format_datetime(record.perform_at)
    if record.frequency:
        text += f" scheduled each {record.frequency}, next at {perform_at}"
    else:
        text += f" at {perform_at}, {record.number_attempts} attempts"

    for flag in job_flags(record):
        text += f" ({flag})"
    return text


def format_job_details(record) -> str:
    """Everything about a job, as displayed by `jobctl show`."""
    lines = [
        f"id: {record.id}",
        f"name: {record.name}",
    ]
    if record.args:
        lines.append("args: " + ", ".join(repr(arg) for arg in record.args))
    else:
        lines.append("args: none")

    lines.append(f"perform: {format_datetime(record.perform_at)}")
    lines.append(f"attempts: {record.number_attempts}")
    lines.append(f"queue: {record.queue}")
    lines.append(f"repeat: {record.frequency or 'once'}")
    lines.append(f"created: {format_datetime(record.created_at)}")
    lines.append(f"updated: {format_datetime(record.updated_at)}")

    if record.locked_at:
        lines.append(f"locked: {format_datetime(record.locked_at)}")

    if record.failed_at:
        lines.append(f"failed: {format_datetime(record.failed_at)}")
        lines.append(record.last_error)
    else:
        lines.append("failed: never")

    return "\n".join(lines)


def job_rows(records) -> List[List[Any]]:
    return [
        [
            r.id,
            r.name,
            r.queue,
            format_datetime(r.perform_at),
            r.number_attempts,
            r.frequency or "once",
            ", ".join(job_flags(r)) or "scheduled",
        ]
        for r in records
    ]


def print_job_table(headers: List[str], data: List[List[Any]]) -> str:
    """Format rows as a table using PrettyTable."""
    table = PrettyTable()
    table.field_names = headers
    for row in data:
        table.add_row(row)

    table.align = 'l'
    return table.get_string()
