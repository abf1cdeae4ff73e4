"""
Resolve `package.module:attribute` references from configuration.
"""

import importlib
from typing import Any, Callable


def import_callable(reference: str) -> Callable[..., Any]:
    """
    Import the callable named by `reference`.

    Both `pkg.mod:attr` and `pkg.mod.attr` are accepted; `attr` may be dotted
    (`pkg.mod:Class.method`).

    Raises:
        ImportError: module or attribute missing
        TypeError: the attribute is not callable
    """
    if ":" in reference:
        module_path, _, attr_path = reference.partition(":")
    else:
        module_path, _, attr_path = reference.rpartition(".")
    if not module_path or not attr_path:
        raise ImportError(f"Invalid reference '{reference}', expected 'module:attribute'")

    target: Any = importlib.import_module(module_path)
    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise ImportError(f"'{module_path}' has no attribute '{attr_path}'") from e

    if not callable(target):
        raise TypeError(f"'{reference}' is not callable")
    return target
