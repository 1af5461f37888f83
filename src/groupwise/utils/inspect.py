"""Provide insights about Python objects."""

import functools
import inspect
from typing import Any


def get_qualname(obj: Any) -> str:
    """Get the qualified name of the given object.

    Used to describe in a human readable way the functions
    provided to ``apply`` or ``transform``.

    For functions or methods, this will return
    something like `module.class.method` or
    `module.function`.

    >>> class Scorer:
    ...   def best(self, group):
    ...     pass
    >>> get_qualname(Scorer.best)
    'groupwise.utils.inspect.Scorer.best'
    >>> get_qualname(functools.partial(Scorer.best, None))
    'partial(groupwise.utils.inspect.Scorer.best)'
    >>> get_qualname(max)
    'builtins.max'
    """
    if isinstance(obj, functools.partial):
        return f"partial({get_qualname(obj.func)})"

    module = inspect.getmodule(obj)
    module_name = module.__name__ if module is not None else "__main__"
    if inspect.ismethod(obj) or inspect.isfunction(obj):
        if getattr(obj, "__self__", None) is not None:
            class_name = obj.__self__.__class__.__name__
            return f"{module_name}.{class_name}.{obj.__name__}"
        return f"{module_name}.{obj.__qualname__}"
    elif inspect.isbuiltin(obj) or inspect.isclass(obj):
        return f"{module_name}.{obj.__name__}"
    elif inspect.ismodule(obj):
        return obj.__name__
    return f"{module_name}.{obj.__class__.__name__}"
