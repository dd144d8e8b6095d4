import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import typer

from pgsql_plugin.core.config import get_settings
from pgsql_plugin.core.errors import PluginError
from pgsql_plugin.core.logger import set_log_stream, setup_logger
from pgsql_plugin.plugin import METADATA, PostgreSqlPlugin
from pgsql_plugin.plugin.connection import redact_conninfo, to_conninfo
from pgsql_plugin.util.serialization import to_json

cli = typer.Typer(no_args_is_help=True, help="Run PostgreSQL plugin operations from the command line.")


def parse_param(raw: str):
    """Parse name=value; the value is read as JSON when possible (42, true, null, "x")."""
    if "=" not in raw:
        raise typer.BadParameter(f"Expected name=value, got '{raw}'.")
    name, value = raw.split("=", 1)
    name = name.strip()
    if not name:
        raise typer.BadParameter(f"Parameter name is empty in '{raw}'.")
    try:
        parsed = json.loads(value)
    except ValueError:
        return name, value
    # Objects and arrays are not bindable; keep them as text
    if isinstance(parsed, (dict, list)):
        return name, value
    return name, parsed


def _fail(error: PluginError) -> None:
    typer.echo(json.dumps({"status": "error", **error.to_error_info().to_dict()}), err=True)
    raise typer.Exit(code=1)


@cli.command("run")
def run(
    sql: str = typer.Option(..., "--sql", help="SQL text; reference parameters as @name."),
    operation: str = typer.Option("query", "--operation", "-o", help="query or execute."),
    param: List[str] = typer.Option(None, "--param", "-p", help="Parameter as name=value, repeatable."),
    data: Optional[Path] = typer.Option(None, "--data", exists=True, dir_okay=False,
                                        help="JSON file with batch rows for execute."),
    connection_string: Optional[str] = typer.Option(None, "--connection-string", "-c",
                                                    help="Overrides PGSQL_PLUGIN_CONNECTION_STRING."),
):
    settings = get_settings()
    connection_string = connection_string or settings.connection_string
    if not connection_string:
        typer.echo("A connection string is required (--connection-string or PGSQL_PLUGIN_CONNECTION_STRING).", err=True)
        raise typer.Exit(code=2)

    parameters = {
        "Operation": operation,
        "Sql": sql,
        "Params": dict(parse_param(p) for p in (param or [])),
    }
    if data is not None:
        try:
            parameters["Data"] = json.loads(data.read_text(encoding="utf-8"))
        except ValueError as e:
            typer.echo(f"Invalid JSON in {data}: {e}", err=True)
            raise typer.Exit(code=2)

    plugin = PostgreSqlPlugin(settings=settings)
    plugin.specifications = {"ConnectionString": connection_string}
    plugin_logger = setup_logger("pgsql_plugin.cli", use_json=settings.log_json, stream=sys.stderr)
    # stdout carries only the JSON result
    set_log_stream(sys.stderr)

    async def _run():
        await plugin.initialize(plugin_logger)
        return await plugin.execute_async(parameters)

    try:
        result = asyncio.run(_run())
    except PluginError as e:
        _fail(e)

    if result is None:
        typer.echo(json.dumps({"status": "success"}))
    else:
        typer.echo(to_json(result))


@cli.command("normalize")
def normalize(
    connection_string: str = typer.Argument(..., help="URI or key-value connection string."),
):
    """Print the libpq connection string the plugin would use, password masked."""
    try:
        typer.echo(redact_conninfo(to_conninfo(connection_string)))
    except PluginError as e:
        _fail(e)


@cli.command("info")
def info():
    typer.echo(to_json(METADATA))


if __name__ == "__main__":
    cli()
