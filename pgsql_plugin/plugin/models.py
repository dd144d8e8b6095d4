"""
Pydantic models for plugin configuration, invocation input and results.
"""

import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from pgsql_plugin.core.errors import ConfigurationError, ValidationError

ResultRow = Dict[str, Any]


class PluginMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    name: str
    company_name: str
    description: str
    version: str
    category: str
    authors: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    minimum_host_version: Optional[str] = None


class PluginSpecifications(BaseModel):
    """
    Static plugin configuration supplied by the host once, before initialize().

    The connection string is accepted either as key-value pairs
    (Host=...;Port=...;Username=...;Password=...;Database=...) or as a
    postgres:// / postgresql:// URI.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    connection_string: str = Field(..., alias="ConnectionString")

    @classmethod
    def from_specifications(cls, specifications: Any) -> "PluginSpecifications":
        if isinstance(specifications, cls):
            return specifications
        if specifications is None:
            raise ConfigurationError("Plugin specifications are required.")
        if isinstance(specifications, BaseModel):
            specifications = specifications.model_dump(by_alias=True)
        if not isinstance(specifications, Mapping):
            raise ConfigurationError(
                f"Plugin specifications must be a mapping, got {type(specifications).__name__}."
            )
        try:
            return cls.model_validate(_fold_keys(specifications, {"connectionstring": "connection_string",
                                                                  "connection_string": "connection_string"}))
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid plugin specifications: {e}") from e


class InputParameter(BaseModel):
    """
    One invocation request. Built per call from the host's parameter bag and
    discarded after the call completes.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    operation: str = ""
    sql: str = ""
    params: Optional[Dict[str, Any]] = None
    data: Any = None

    @field_validator("operation", "sql", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return "" if v is None else v

    @classmethod
    def from_parameters(cls, parameters: Optional[Mapping[str, Any]]) -> "InputParameter":
        """Build from a host parameter bag; keys are matched case-insensitively."""
        if parameters is None:
            return cls()
        if isinstance(parameters, cls):
            return parameters
        if not isinstance(parameters, Mapping):
            raise ValidationError(
                f"Plugin parameters must be a mapping, got {type(parameters).__name__}."
            )
        folded = _fold_keys(parameters, {"operation": "operation", "sql": "sql",
                                         "params": "params", "data": "data"})
        try:
            return cls.model_validate(folded)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid plugin parameters: {e}") from e

    def sql_and_parameters(self) -> Tuple[str, Dict[str, Any]]:
        if not self.sql or not self.sql.strip():
            raise ValidationError("Missing 'sql' parameter.")
        return self.sql, dict(self.params or {})


class PluginContext(BaseModel):
    """Structured context returned to the workflow engine by the query path."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_type: str = "Data"
    format: str = "Database"
    structured_data: List[ResultRow] = Field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.structured_data)


def _fold_keys(values: Mapping[str, Any], known: Dict[str, str]) -> Dict[str, Any]:
    folded = {}
    for key, value in values.items():
        target = known.get(str(key).lower())
        if target is not None:
            folded[target] = value
    return folded
