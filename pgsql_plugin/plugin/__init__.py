"""
PostgreSQL plugin for workflow steps.

This package provides:
- Connection string normalization (URI or key-value form)
- Parameter binding with per-value type inference and @name placeholders
- Query execution returning a structured context of rows
- Command execution with optional batch payloads

Usage:
    from pgsql_plugin.plugin import PostgreSqlPlugin

    plugin = PostgreSqlPlugin()
    plugin.specifications = {"ConnectionString": "Host=localhost;Username=app;Password=secret;Database=app"}
    await plugin.initialize()
    context = await plugin.execute_async({"Operation": "query", "Sql": "SELECT 1 AS one"})
"""

from pgsql_plugin.plugin.binding import BoundParameter, ParameterKind, bind_parameters, render_sql
from pgsql_plugin.plugin.connection import normalize_connection_string, to_conninfo
from pgsql_plugin.plugin.guard import DefaultInvocationGuard, InvocationGuard
from pgsql_plugin.plugin.models import InputParameter, PluginContext, PluginMetadata, PluginSpecifications
from pgsql_plugin.plugin.plugin import METADATA, Operation, PostgreSqlPlugin

__all__ = [
    'BoundParameter',
    'DefaultInvocationGuard',
    'InputParameter',
    'InvocationGuard',
    'METADATA',
    'Operation',
    'ParameterKind',
    'PluginContext',
    'PluginMetadata',
    'PluginSpecifications',
    'PostgreSqlPlugin',
    'bind_parameters',
    'normalize_connection_string',
    'render_sql',
    'to_conninfo',
]
