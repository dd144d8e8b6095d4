"""
Invocation guard for the plugin's public entry points.

Hosts that load plugins dynamically can forbid calls coming from particular
modules (their own reflection/introspection helpers, sandboxed script
runners). The guard walks the caller's frames and reports a disallowed path
when any frame belongs to a blocked module.
"""

import sys
from typing import Iterable, Protocol, runtime_checkable


@runtime_checkable
class InvocationGuard(Protocol):
    def is_called_via_reflection(self) -> bool:
        ...


class DefaultInvocationGuard:

    def __init__(self, blocked_modules: Iterable[str] = ()):
        self.blocked_modules = tuple(m for m in blocked_modules if m)

    def _is_blocked(self, module_name: str) -> bool:
        return any(
            module_name == blocked or module_name.startswith(blocked + ".")
            for blocked in self.blocked_modules
        )

    def is_called_via_reflection(self) -> bool:
        if not self.blocked_modules:
            return False
        frame = sys._getframe(1)
        while frame is not None:
            module_name = frame.f_globals.get("__name__", "")
            if module_name and self._is_blocked(module_name):
                return True
            frame = frame.f_back
        return False
