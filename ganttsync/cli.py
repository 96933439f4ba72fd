"""
Command-line interface for ganttsync.

Offline tools around the engine: diffing task snapshots, evaluating the
auto-version policy and editing .ganttsync/config.json.
"""
from pathlib import Path

import click

from ganttsync.commands.config import config
from ganttsync.commands.diff import diff, should_version
from ganttsync.constants import ConfigManager
from ganttsync.logger import setup_logger


@click.group()
@click.option(
    "--log-level",
    default=None,
    help="Logging level (DEBUG, INFO, WARNING, ERROR). Defaults to the configured level.",
)
@click.option(
    "--config-path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.json. Defaults to .ganttsync/config.json.",
)
@click.pass_context
def cli(ctx, log_level, config_path):
    """Client-side consistency tools for Gantt projects."""
    manager = ConfigManager(config_path=config_path)
    ctx.obj = manager
    setup_logger(level=log_level or manager.get("log_level", "INFO"))


cli.add_command(diff)
cli.add_command(should_version)
cli.add_command(config)


if __name__ == '__main__':
    cli()
