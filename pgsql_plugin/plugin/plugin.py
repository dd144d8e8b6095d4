"""
PostgreSQL plugin entry point for the workflow engine.

Lifecycle:
1. The host assigns `plugin.specifications` (connection string)
2. `await plugin.initialize(logger)`
3. `await plugin.execute_async({"Operation": "query", "Sql": "...", "Params": {...}})`

Example:
    >>> plugin = PostgreSqlPlugin()
    >>> plugin.specifications = {"ConnectionString": "postgres://app:secret@db:5432/app"}
    >>> await plugin.initialize()
    >>> context = await plugin.execute_async({
    ...     "Operation": "query",
    ...     "Sql": "SELECT id, name FROM users WHERE id = @id",
    ...     "Params": {"id": 42},
    ... })
    >>> context.structured_data
    [{'id': 42, 'name': 'Ada'}]
"""

import asyncio
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from pgsql_plugin.core.config import Settings, get_settings
from pgsql_plugin.core.errors import (
    AccessDeniedError,
    NotInitializedError,
    UnsupportedOperationError,
    ValidationError,
)
from pgsql_plugin.core.logger import setup_logger
from pgsql_plugin.core.logging_context import LoggingContext
from pgsql_plugin.plugin.binding import bind_parameters, render_sql
from pgsql_plugin.plugin.connection import to_conninfo
from pgsql_plugin.plugin.execution import raise_if_cancelled, run_non_query, run_query
from pgsql_plugin.plugin.guard import DefaultInvocationGuard, InvocationGuard
from pgsql_plugin.plugin.models import (
    InputParameter,
    PluginContext,
    PluginMetadata,
    PluginSpecifications,
)

logger = setup_logger(__name__, include_location=True)

METADATA = PluginMetadata(
    id=uuid.UUID("e2c349bc-6bfc-4e1e-acce-8dbda585abcf"),
    name="PostgreSql",
    company_name="pgsql-plugin",
    description="Run parameterized PostgreSQL queries and commands from workflow steps.",
    version="1.1.0",
    category="Database",
    authors=("pgsql-plugin contributors",),
    tags=("sql", "database", "data", "postgresql"),
    minimum_host_version="1.1.1",
)

REFLECTION_ACCESS_MESSAGE = "Reflection based access is not allowed."

BATCH_KEYS = ("rows", "structured_data", "structureddata")


class Operation(str, Enum):
    QUERY = "query"
    EXECUTE = "execute"

    @classmethod
    def parse(cls, name: Optional[str]) -> "Operation":
        try:
            return cls((name or "").lower())
        except ValueError:
            raise UnsupportedOperationError(name or "") from None


def extract_batch_rows(data: Any) -> Optional[List[Mapping[str, Any]]]:
    """
    Pull the per-row parameter mappings out of a batch payload.

    Accepts a list of mappings, a mapping holding one under `rows` /
    `structured_data` (any case), or a PluginContext from a previous query
    step. Returns None when no payload was supplied.
    """
    if data is None:
        return None
    if isinstance(data, PluginContext):
        rows = data.structured_data
    elif isinstance(data, Mapping):
        rows = None
        for key, value in data.items():
            if str(key).lower() in BATCH_KEYS:
                rows = value
                break
        if rows is None:
            raise ValidationError("Batch payload must contain a 'rows' sequence of parameter mappings.")
    else:
        rows = data

    if isinstance(rows, (str, bytes)) or not isinstance(rows, (list, tuple)):
        raise ValidationError(
            f"Batch payload rows must be a sequence of parameter mappings, got {type(rows).__name__}."
        )
    for position, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise ValidationError(
                f"Batch payload row {position} must be a mapping, got {type(row).__name__}."
            )
    return list(rows)


class PostgreSqlPlugin:

    specifications_type = PluginSpecifications

    def __init__(self, guard: Optional[InvocationGuard] = None, settings: Optional[Settings] = None):
        self._guard = guard or DefaultInvocationGuard()
        self._settings = settings
        self._logger = None
        self._specifications: Optional[PluginSpecifications] = None
        self._conninfo: Optional[str] = None
        self._initialized = False
        # Assigned by the host before initialize()
        self.specifications: Any = None

    @property
    def metadata(self) -> PluginMetadata:
        return METADATA

    @property
    def supported_operations(self) -> Tuple[str, ...]:
        return tuple(self._operation_map().keys())

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _operation_map(self) -> Dict[str, Callable[[InputParameter, Optional[asyncio.Event]], Awaitable[Any]]]:
        return {
            Operation.QUERY.value: self._execute_query,
            Operation.EXECUTE.value: self._execute_non_query,
        }

    async def initialize(self, plugin_logger=None) -> None:
        """
        Validate the specifications and bind the host logger.

        Raises:
            AccessDeniedError: If the guard reports a disallowed invocation path
            ConfigurationError: If the connection string is missing or malformed
        """
        self._throw_if_reflection()
        specifications = PluginSpecifications.from_specifications(self.specifications)
        conninfo = to_conninfo(specifications.connection_string)

        self._specifications = specifications
        self._conninfo = conninfo
        self._logger = plugin_logger or logger
        if self._settings is None:
            self._settings = get_settings()
        self._initialized = True
        self._logger.debug(f"Plugin '{METADATA.name}' v{METADATA.version} initialized.")

    async def execute_async(
        self,
        parameters: Optional[Mapping[str, Any]],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[PluginContext]:
        """
        Run one operation.

        Returns:
            PluginContext for "query", None for "execute"

        Raises:
            AccessDeniedError, NotInitializedError, ValidationError,
            TypeBindingError, ConfigurationError, DatabaseError
        """
        raise_if_cancelled(cancel_event)
        self._throw_if_reflection()
        self._throw_if_not_initialized()

        input_parameter = InputParameter.from_parameters(parameters)
        operation = Operation.parse(input_parameter.operation)
        handler = self._operation_map()[operation.value]

        with LoggingContext(self._logger, operation=operation.value, invocation_id=str(uuid.uuid4())):
            return await handler(input_parameter, cancel_event)

    def _throw_if_reflection(self) -> None:
        if self._guard.is_called_via_reflection():
            raise AccessDeniedError(REFLECTION_ACCESS_MESSAGE)

    def _throw_if_not_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError(f"Plugin '{METADATA.name}' v{METADATA.version} is not initialized.")

    async def _execute_query(
        self, parameters: InputParameter, cancel_event: Optional[asyncio.Event] = None
    ) -> PluginContext:
        try:
            sql, sql_params = parameters.sql_and_parameters()
            statement, values = render_sql(sql, bind_parameters(sql_params))
            rows = await run_query(self._conninfo, statement, values, self._settings, cancel_event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.error(f"Error executing PostgreSQL sql statement. Error: {e}")
            raise

        self._logger.info(f"Query executed successfully. Rows returned: {len(rows)}.")
        return PluginContext(structured_data=rows)

    async def _execute_non_query(
        self, parameters: InputParameter, cancel_event: Optional[asyncio.Event] = None
    ) -> None:
        try:
            sql, sql_params = parameters.sql_and_parameters()
            batch = extract_batch_rows(parameters.data)
            if batch is None:
                statements = [render_sql(sql, bind_parameters(sql_params))]
            else:
                statements = [render_sql(sql, bind_parameters(row)) for row in batch]
            affected = await run_non_query(self._conninfo, statements, self._settings, cancel_event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.error(f"Error executing PostgreSQL sql statement. Error: {e}")
            raise

        if batch is None:
            self._logger.info(f"Non-query executed successfully. Rows affected: {affected}.")
        else:
            self._logger.info(
                f"Non-query executed successfully for {len(batch)} batch rows. Rows affected: {affected}."
            )
