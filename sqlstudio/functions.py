"""
Function registry - in-proc dispatch for function jobs.

A function job names a target function and a parameter mapping:
1. The name is looked up in the registry
2. Names of the form "package.module:attribute" not registered explicitly
   are imported on first use
3. The function is called with the parameters as keyword arguments

Error handling contract:
- An unknown or unimportable name is an InvalidConfigurationError
- Exceptions raised by the function propagate unchanged
"""

import importlib
import logging
from typing import Any, Callable, Optional

from sqlstudio.errors import InvalidConfigurationError

logger = logging.getLogger(__name__)

JobFunction = Callable[..., Any]


class FunctionRegistry:
    """
    Name -> function lookup for function jobs.

    Usage:
        registry = FunctionRegistry()
        registry.register("refresh_cache", refresh_cache)
        registry.invoke("refresh_cache", {"region": "eu"})
    """

    def __init__(self) -> None:
        self._functions: dict[str, JobFunction] = {}

    def register(self, name: str, fn: Optional[JobFunction] = None):
        """
        Register a function by name.

        Can be used directly or as a decorator:

            @registry.register("nightly_cleanup")
            def nightly_cleanup(days=30): ...
        """
        if fn is None:
            def decorator(func: JobFunction) -> JobFunction:
                self._functions[name] = func
                return func
            return decorator
        self._functions[name] = fn
        return fn

    def names(self) -> list[str]:
        return sorted(self._functions)

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def get(self, name: str) -> JobFunction:
        """
        Resolve a function by name.

        Raises:
            InvalidConfigurationError: If the name is neither registered nor
                an importable "module:attribute" path
        """
        fn = self._functions.get(name)
        if fn is not None:
            return fn
        if ":" in name:
            fn = self._import(name)
            self._functions[name] = fn
            return fn
        raise InvalidConfigurationError(f"Unknown function: {name}")

    def _import(self, path: str) -> JobFunction:
        module_name, _, attr = path.partition(":")
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise InvalidConfigurationError(f"Cannot import function module '{module_name}': {e}") from e
        fn = getattr(module, attr, None)
        if fn is None or not callable(fn):
            raise InvalidConfigurationError(f"Unknown function: {path}")
        return fn

    def invoke(self, name: str, parameters: Optional[dict[str, Any]] = None) -> Any:
        """
        Call a function with keyword parameters and return its result.

        Raises:
            InvalidConfigurationError: If the function cannot be resolved
        """
        fn = self.get(name)
        logger.info("Invoking function %s", name)
        return fn(**(parameters or {}))


# Process-wide default registry
_DEFAULT_REGISTRY = FunctionRegistry()


def get_default_registry() -> FunctionRegistry:
    return _DEFAULT_REGISTRY


def register_function(name: str, fn: Optional[JobFunction] = None):
    """Register a function in the default registry (direct call or decorator)."""
    return _DEFAULT_REGISTRY.register(name, fn)
