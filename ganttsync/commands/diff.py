"""
Diff commands for the ganttsync CLI.

Snapshot files hold a JSON list of tasks or an object with a "tasks" list,
as exported by the project API.
"""
import json
from pathlib import Path
from typing import List

import click

from ganttsync.exceptions import ConfigurationError, ValidationError
from ganttsync.managers.versioning import (
    auto_version_description,
    diff as diff_items,
    diff_summary,
    format_change,
    should_version as policy_allows,
)
from ganttsync.models.base import Task
from ganttsync.models.files import ConfigFile


def load_snapshot(path: Path) -> List[Task]:
    """Read tasks from a snapshot file.

    Raises:
        click.ClickException: If the file is missing, not JSON, or holds invalid tasks.
    """
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise click.ClickException(f"File '{path}' not found.")
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON format in '{path}': {e}")

    if isinstance(data, dict):
        data = data.get("tasks", [])
    if not isinstance(data, list):
        raise click.ClickException(f"'{path}' must contain a list of tasks.")

    try:
        return [Task.from_payload(item) for item in data]
    except ValidationError as e:
        raise click.ClickException(str(e))


@click.command()
@click.argument("old", type=click.Path(path_type=Path))
@click.argument("new", type=click.Path(path_type=Path))
@click.option("--summary", is_flag=True, help="Print only the one-line summary.")
def diff(old, new, summary):
    """Show the changes between two task snapshots."""
    changes = diff_items(load_snapshot(old), load_snapshot(new))
    if summary:
        click.echo(diff_summary(changes))
        return

    for task in changes.added:
        click.echo(f"+ {task.name} ({task.id})")
    for task in changes.removed:
        click.echo(f"- {task.name} ({task.id})")
    for modified in changes.modified:
        click.echo(f"~ {modified.after.name} ({modified.id})")
        for change in modified.changes:
            click.echo(f"    {format_change(change)}")
    click.echo(diff_summary(changes))


@click.command(name="should-version")
@click.argument("old", type=click.Path(path_type=Path))
@click.argument("new", type=click.Path(path_type=Path))
@click.pass_obj
def should_version(config_manager, old, new):
    """Check whether the changes would create an automatic version.

    Exits with 0 when a version would be created, 1 otherwise.
    """
    try:
        settings = ConfigFile.load(config_manager)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    changes = diff_items(load_snapshot(old), load_snapshot(new))
    if policy_allows(changes, settings.auto_version_config()):
        click.echo(f"Would create version: {auto_version_description(changes)}")
        return
    click.echo(f"No version: {diff_summary(changes)}")
    raise click.exceptions.Exit(1)
