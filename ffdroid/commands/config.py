import click
import json
import os
from .. import config as config_module
from ..cli_logger import logger

# [build] keys and the type each is stored as
BUILD_KEYS = {
    "abis": list,
    "ffmpeg_tag": str,
    "ndk_version": str,
    "min_api_level": int,
    "internal_version": str,
    "jobs": int,
    "dav1d_version": str,
    "skip_dep_install": bool,
}

def _coerce(key, value):
    section, _, name = key.partition(".")
    kind = BUILD_KEYS.get(name) if section == "build" else None
    if kind is list:
        return [item.strip() for item in value.split(",") if item.strip()]
    if kind is int:
        try:
            return int(value)
        except ValueError:
            raise click.BadParameter(f"'{key}' expects an integer, got '{value}'")
    if kind is bool:
        return value.strip().lower() in config_module.TRUTHY
    return value

def _lookup(conf, dotted_key):
    """Return (parent table, last key) for ``dotted_key``; KeyError if absent."""
    *parents, last = dotted_key.split(".")
    table = conf
    for part in parents:
        table = table[part]
        if not isinstance(table, dict):
            raise KeyError(part)
    if last not in table:
        raise KeyError(last)
    return table, last

def _missing_key(key):
    logger.error(f"Error: Key '{key}' not found in {config_module.CONFIG_FILE}")

@click.group()
@click.pass_context
def config(ctx):
    """View or edit the ffdroid.toml configuration file."""
    ctx.ensure_object(dict)

@config.command()
@click.pass_context
def view(ctx):
    """Print ffdroid.toml as it is on disk."""
    config_file = os.path.join(ctx.obj.get("path", "."), config_module.CONFIG_FILE)
    if not os.path.isfile(config_file):
        logger.error(f"Error: No {config_module.CONFIG_FILE} found.")
        return
    with open(config_file, "r") as f:
        click.echo(f.read())

@config.command(name="list")
@click.pass_context
def list_config(ctx):
    """Print every key and value as JSON."""
    conf = config_module.load_config(path=ctx.obj.get("path", "."))
    if not conf:
        logger.error(f"Error: No {config_module.CONFIG_FILE} found.")
        return
    click.echo(json.dumps(conf, indent=4))

@config.command()
@click.argument("key")
@click.pass_context
def get(ctx, key):
    """Print one value, e.g. 'build.ffmpeg_tag'."""
    conf = config_module.load_config(path=ctx.obj.get("path", "."))
    try:
        table, name = _lookup(conf, key)
    except KeyError:
        _missing_key(key)
        return
    click.echo(table[name])

@config.command(name="set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def set_value(ctx, key, value):
    """Set a value; ffdroid.toml is created when missing."""
    path = ctx.obj.get("path", ".")
    stored = _coerce(key, value)
    conf = config_module.load_config(path=path)

    *parents, last = key.split(".")
    table = conf
    for part in parents:
        table = table.setdefault(part, {})
    table[last] = stored

    if config_module.save_config(conf, path=path):
        logger.info(f"Set '{key}' to {stored!r}")

@config.command()
@click.argument("key")
@click.pass_context
def unset(ctx, key):
    """Remove a key from ffdroid.toml."""
    path = ctx.obj.get("path", ".")
    conf = config_module.load_config(path=path)
    try:
        table, name = _lookup(conf, key)
    except KeyError:
        _missing_key(key)
        return
    del table[name]
    if config_module.save_config(conf, path=path):
        logger.info(f"Unset '{key}'")
