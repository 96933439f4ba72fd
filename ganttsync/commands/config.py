"""
Config command group for the ganttsync CLI.

Commands for viewing and editing engine configuration.
"""
import json

import click

from ganttsync.exceptions import ConfigurationError
from ganttsync.models.files import ConfigFile


def _load_settings(config_manager) -> ConfigFile:
    try:
        return ConfigFile.load(config_manager)
    except ConfigurationError as e:
        raise click.ClickException(str(e))


def _check_key(key: str) -> None:
    if key not in ConfigFile.model_fields:
        known = ", ".join(sorted(ConfigFile.model_fields))
        raise click.ClickException(f"Unknown config key '{key}'. Known keys: {known}")


@click.group()
def config():
    """View and edit engine configuration.

    Configuration is stored in .ganttsync/config.json.
    """
    pass


@config.command(name="show")
@click.pass_obj
def show_config(config_manager):
    """Show current configuration, defaults included."""
    settings = _load_settings(config_manager)
    click.echo(f"# {config_manager.config_path}")
    click.echo(json.dumps(settings.model_dump(), indent=2))


@config.command(name="get")
@click.argument("key")
@click.pass_obj
def get_config(config_manager, key):
    """Get a configuration value."""
    _check_key(key)
    click.echo(json.dumps(getattr(_load_settings(config_manager), key)))


@config.command(name="set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def set_config(config_manager, key, value):
    """Set a configuration value."""
    _check_key(key)
    values = config_manager.as_dict()
    values[key] = value
    try:
        settings = ConfigFile.model_validate(values)
    except ValueError as e:
        raise click.ClickException(f"Invalid value for '{key}': {value}\n{e}")

    values[key] = getattr(settings, key)
    try:
        config_manager.save(values)
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    click.echo(f"Set {key} = {json.dumps(values[key])}")
