"""Capability policy for the isolated executor.

Defines what model code can reach: an explicit allow-list of bindings, the
RestrictedPython guard hooks, and a set of blocked names that are bound to an
inert value instead of being left out. Also provides the deep-freeze applied
to inputs and the plain-data conversion applied to values crossing the
process boundary.
"""

from __future__ import annotations

import datetime as _dt
import json
import math
import operator
import time
from collections.abc import Callable, Mapping
from decimal import (
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
    Decimal,
)
from types import MappingProxyType, SimpleNamespace
from typing import Any

from RestrictedPython import safe_builtins
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector

ENTRYPOINT_NAME = "compute"
PAYLOAD_FILENAME = "<model-logic>"

# Every name below is bound to a BlockedCapability in both the globals and
# the builtins of the restricted namespace.
BLOCKED_NAMES: dict[str, tuple[str, ...]] = {
    "dynamic_code": (
        "__import__",
        "eval",
        "exec",
        "compile",
        "importlib",
        "runpy",
    ),
    "process_environment": (
        "os",
        "sys",
        "subprocess",
        "environ",
        "getenv",
        "open",
        "input",
        "breakpoint",
        "help",
        "exit",
        "quit",
        "shutil",
        "pathlib",
        "io",
    ),
    "ambient_globals": (
        "globals",
        "locals",
        "vars",
        "dir",
        "getattr",
        "setattr",
        "delattr",
        "builtins",
        "inspect",
        "gc",
        "type",
        "object",
        "super",
    ),
    "timers": (
        "threading",
        "multiprocessing",
        "signal",
        "sched",
        "asyncio",
        "sleep",
        "concurrent",
    ),
    "raw_buffers": (
        "bytes",
        "bytearray",
        "memoryview",
        "ctypes",
        "mmap",
        "pickle",
        "marshal",
        "struct",
    ),
    "network": (
        "socket",
        "ssl",
        "http",
        "urllib",
        "requests",
        "httpx",
        "ftplib",
        "smtplib",
    ),
}

_EXTRA_BUILTINS: dict[str, Any] = {
    "dict": dict,
    "list": list,
    "set": set,
    "frozenset": frozenset,
    "min": min,
    "max": max,
    "sum": sum,
    "enumerate": enumerate,
    "any": any,
    "all": all,
    "map": map,
    "filter": filter,
    "reversed": reversed,
}

_INPLACE_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
}

_PLAIN_SCALARS = (str, int, float, bool, type(None), Decimal, _dt.date, _dt.datetime, _dt.timedelta)


class BlockedCapability:
    """Inert stand-in for a host capability.

    Any use (attribute access, call, indexing, iteration, truth testing,
    comparison, formatting or pickling) raises PermissionError.
    """

    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        object.__setattr__(self, "_name", name)

    def _deny(self, *args: Any, **kwargs: Any) -> Any:
        raise PermissionError(f"Access to '{self._name}' is not permitted inside the sandbox")

    __getattr__ = _deny
    __setattr__ = _deny
    __delattr__ = _deny
    __call__ = _deny
    __getitem__ = _deny
    __setitem__ = _deny
    __iter__ = _deny
    __len__ = _deny
    __contains__ = _deny
    __bool__ = _deny
    __eq__ = _deny
    __ne__ = _deny
    __lt__ = _deny
    __le__ = _deny
    __gt__ = _deny
    __ge__ = _deny
    __hash__ = _deny
    __str__ = _deny
    __repr__ = _deny
    __format__ = _deny
    __reduce__ = _deny
    __reduce_ex__ = _deny


class ModelLog:
    """Single-method log sink handed to model code."""

    __slots__ = ("_logger",)

    def __init__(self, logger: Any) -> None:
        self._logger = logger

    def info(self, *args: Any) -> None:
        self._logger.info("model_log", message=" ".join(str(arg) for arg in args))


def _inplace_var(op: str, target: Any, value: Any) -> Any:
    try:
        return _INPLACE_OPERATORS[op](target, value)
    except KeyError:
        raise NotImplementedError(f"Augmented assignment {op} is not supported") from None


def _apply(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    return func(*args, **kwargs)


def blocked_bindings() -> dict[str, BlockedCapability]:
    """Map every blocked name to a fresh BlockedCapability."""
    return {
        name: BlockedCapability(name) for names in BLOCKED_NAMES.values() for name in names
    }


def _allowed_bindings(log: ModelLog, register: Callable[[Any], Any]) -> dict[str, Any]:
    return {
        "math": SimpleNamespace(
            **{name: getattr(math, name) for name in dir(math) if not name.startswith("_")}
        ),
        "Decimal": Decimal,
        "ROUND_HALF_UP": ROUND_HALF_UP,
        "ROUND_HALF_EVEN": ROUND_HALF_EVEN,
        "ROUND_UP": ROUND_UP,
        "ROUND_DOWN": ROUND_DOWN,
        "ROUND_CEILING": ROUND_CEILING,
        "ROUND_FLOOR": ROUND_FLOOR,
        "json": SimpleNamespace(loads=json.loads, dumps=json.dumps),
        "time": SimpleNamespace(time=time.time, monotonic=time.monotonic),
        "datetime": _dt.datetime,
        "date": _dt.date,
        "timedelta": _dt.timedelta,
        "log": log,
        "register": register,
    }


def build_restricted_globals(log: ModelLog, register: Callable[[Any], Any]) -> dict[str, Any]:
    """Build a fresh globals mapping for one payload execution.

    Args:
        log: The log sink exposed as ``log``
        register: Decorator model code uses to register its entry point

    Returns:
        A new dict; nothing in it is shared with any other invocation
    """
    blocked = blocked_bindings()

    builtins = dict(safe_builtins)
    builtins.update(_EXTRA_BUILTINS)
    builtins.update(blocked)

    namespace: dict[str, Any] = {
        "__builtins__": builtins,
        "__name__": "model_logic",
        "__metaclass__": type,
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplace_var,
        "_apply_": _apply,
        "_print_": PrintCollector,
    }
    namespace.update(blocked)
    namespace.update(_allowed_bindings(log, register))
    return namespace


def build_invoke_globals(entrypoint: Callable[..., Any], inputs: Any) -> dict[str, Any]:
    """Build the narrow namespace used to call a registered entry point."""
    return {
        "__builtins__": {},
        "entrypoint": entrypoint,
        "inputs": inputs,
    }


def freeze(value: Any) -> Any:
    """Deep-freeze a value so model code cannot mutate it."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(item) for item in value)
    return value


def to_plain(value: Any, path: str = "value") -> Any:
    """Convert a value to plain, picklable data.

    Mappings become dicts, sequences become lists.

    Raises:
        TypeError: If the value holds anything other than plain data
    """
    if isinstance(value, _PLAIN_SCALARS):
        return value
    if isinstance(value, Mapping):
        plain: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"{path} has a non-string key of type {type(key).__name__}")
            plain[key] = to_plain(item, f"{path}.{key}")
        return plain
    if isinstance(value, (list, tuple)):
        return [to_plain(item, f"{path}[{index}]") for index, item in enumerate(value)]
    raise TypeError(f"{path} has unsupported type {type(value).__name__}")
