__version__ = "1.1.0"

from pgsql_plugin.plugin import PostgreSqlPlugin

__all__ = ['PostgreSqlPlugin', '__version__']
