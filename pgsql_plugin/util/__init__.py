from pgsql_plugin.util.serialization import make_serializable, to_json

__all__ = ['make_serializable', 'to_json']
