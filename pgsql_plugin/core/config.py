import os
import sys
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


_ENV_LOADED = False


def _load_env_file(path: str, allow_override: bool = False) -> None:
    """
    Minimal .env loader: loads KEY=VALUE pairs into os.environ.
    - Ignores empty lines and lines starting with '#'
    - Supports values wrapped in single or double quotes
    - By default, does not override existing environment variables
    """
    if not path or not os.path.exists(path):
        return
    try:
        with open(path, "r", encoding="utf-8") as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export "):].strip()
                if "=" not in line:
                    continue
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()
                if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]
                if allow_override or key not in os.environ:
                    os.environ[key] = value
    except PermissionError as e:
        print(f"FATAL: Permission denied reading environment file {path}: {e}", file=sys.stderr)
        raise


def load_env_if_present(force_reload: bool = False) -> None:
    """
    Load environment variables from .env files in order of precedence:
    1. .env.local (highest priority, not committed)
    2. .env.{ENVIRONMENT} (environment-specific)
    3. .env.common (common variables)
    4. .env (default)
    PGSQL_PLUGIN_ENV_FILE replaces the default list with a single file.
    """
    global _ENV_LOADED
    if _ENV_LOADED and not force_reload:
        return

    custom = os.environ.get("PGSQL_PLUGIN_ENV_FILE")
    if custom:
        _load_env_file(custom)
    else:
        env_files = ['.env.local', '.env.common', '.env']
        environment = os.environ.get('ENVIRONMENT', '').strip()
        if environment:
            env_files.insert(1, f'.env.{environment}')
        for env_file in env_files:
            _load_env_file(env_file)

    _ENV_LOADED = True


class Settings(BaseModel):
    """
    Plugin runtime settings read from environment variables.
    """
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    connection_string: Optional[str] = Field(None, alias="PGSQL_PLUGIN_CONNECTION_STRING")
    connect_timeout: int = Field(10, ge=1, alias="PGSQL_PLUGIN_CONNECT_TIMEOUT")
    application_name: str = Field("pgsql-plugin", alias="PGSQL_PLUGIN_APPLICATION_NAME")
    log_json: bool = Field(False, alias="PGSQL_PLUGIN_LOG_JSON")

    @field_validator('connection_string', mode='before')
    def empty_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @classmethod
    def from_env(cls) -> "Settings":
        fields = {
            field.alias: os.environ[field.alias]
            for field in cls.model_fields.values()
            if field.alias and field.alias in os.environ
        }
        return cls.model_validate(fields)

    def connect_kwargs(self) -> dict:
        """Extra libpq parameters applied to every connection."""
        return {
            "connect_timeout": self.connect_timeout,
            "application_name": self.application_name,
        }


_settings: Optional[Settings] = None


def get_settings(reload: bool = False) -> Settings:
    global _settings
    if _settings is None or reload:
        load_env_if_present(force_reload=reload)
        _settings = Settings.from_env()
    return _settings
