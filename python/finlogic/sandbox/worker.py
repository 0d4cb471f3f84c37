"""Worker process entry point for the isolated executor.

Each execution runs in its own process. The worker reports progress over a
one-way pipe so the parent can bound each phase independently:

    (STARTED, None)       interpreter is up, phase 1 begins
    (REGISTERED, None)    payload ran and registered an entry point
    (SUCCEEDED, outputs)  entry point returned a valid mapping
    (FAILED, message)     anything went wrong
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import structlog
from RestrictedPython import compile_restricted

from finlogic.sandbox.policy import (
    ENTRYPOINT_NAME,
    PAYLOAD_FILENAME,
    ModelLog,
    build_invoke_globals,
    build_restricted_globals,
    freeze,
    to_plain,
)

STARTED = "started"
REGISTERED = "registered"
SUCCEEDED = "succeeded"
FAILED = "failed"

_INVOKE_SOURCE = "result = entrypoint(inputs)"


def _describe(error: BaseException) -> str:
    try:
        detail = str(error)
    except Exception:
        detail = "<unprintable error>"
    return f"{type(error).__name__}: {detail}" if detail else type(error).__name__


def register_entrypoint(payload: str, logger: Any) -> Callable[..., Any]:
    """Phase 1: run the payload module and return its entry point.

    The payload registers its entry point with the ``register`` decorator, or
    defines a top-level callable named ``compute``.
    """
    registry: list[Callable[..., Any]] = []

    def register(func: Any) -> Any:
        if not callable(func):
            raise TypeError("register() expects a callable")
        registry.append(func)
        return func

    code = compile_restricted(payload, filename=PAYLOAD_FILENAME, mode="exec")
    namespace = build_restricted_globals(ModelLog(logger), register)
    exec(code, namespace)

    if registry:
        return registry[-1]
    candidate = namespace.get(ENTRYPOINT_NAME)
    if callable(candidate):
        return candidate
    raise LookupError(
        f"Model logic must register an entry point with @register or define {ENTRYPOINT_NAME}(inputs)"
    )


def invoke_entrypoint(entrypoint: Callable[..., Any], inputs: Any) -> Any:
    """Phase 2: call the entry point from a namespace holding only it and the inputs."""
    code = compile_restricted(_INVOKE_SOURCE, filename="<invoke>", mode="exec")
    namespace = build_invoke_globals(entrypoint, inputs)
    exec(code, namespace)
    return namespace["result"]


def run_payload(conn: Any, payload: str, inputs: dict[str, Any]) -> None:
    """Process target: execute a payload and report over ``conn``."""
    logger = structlog.get_logger().bind(component="sandbox_worker")
    try:
        conn.send((STARTED, None))

        try:
            entrypoint = register_entrypoint(payload, logger)
        except Exception as e:
            conn.send((FAILED, f"Model setup error: {_describe(e)}"))
            return
        conn.send((REGISTERED, None))

        try:
            result = invoke_entrypoint(entrypoint, freeze(inputs))
        except Exception as e:
            conn.send((FAILED, f"Model execution error: {_describe(e)}"))
            return

        if not isinstance(result, Mapping):
            conn.send(
                (
                    FAILED,
                    "Model logic must return a mapping containing output values, "
                    f"got {type(result).__name__}",
                )
            )
            return

        try:
            outputs = to_plain(result, "outputs")
        except Exception as e:
            conn.send((FAILED, f"Model logic returned an unsupported value: {_describe(e)}"))
            return

        conn.send((SUCCEEDED, outputs))
    finally:
        conn.close()
