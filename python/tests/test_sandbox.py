"""Tests for the isolated executor.

These tests start real worker processes.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from finlogic.config import SandboxConfig
from finlogic.errors import ContractViolation, SandboxExecutionError, SandboxTimeout
from finlogic.sandbox import BLOCKED_NAMES, BlockedCapability, SandboxExecutor, build_restricted_globals, freeze
from finlogic.sandbox.policy import ModelLog, to_plain


@pytest.fixture
def executor() -> SandboxExecutor:
    return SandboxExecutor(timeout_ms=5000)


# =============================================================================
# Successful Execution
# =============================================================================


class TestSandboxExecution:
    """Tests for payloads that run to completion."""

    def test_registered_entrypoint(self, executor: SandboxExecutor) -> None:
        payload = """
@register
def double(inputs):
    return {"result": inputs["value"] * 2}
"""
        assert executor.execute(payload, {"value": 21}) == {"result": 42}

    def test_top_level_compute(self, executor: SandboxExecutor) -> None:
        """Test a top-level compute() is used when nothing is registered."""
        payload = """
def compute(inputs):
    total = 0
    for amount in inputs["amounts"]:
        total += amount
    return {"total": total, "count": len(inputs["amounts"])}
"""
        assert executor.execute(payload, {"amounts": [1, 2, 3]}) == {"total": 6, "count": 3}

    def test_allowed_bindings(self, executor: SandboxExecutor) -> None:
        """Test math, Decimal and json are reachable."""
        payload = """
def compute(inputs):
    rate = Decimal(inputs["rate"])
    payment = (Decimal("1000") * rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    encoded = json.dumps({"years": inputs["years"]})
    return {
        "payment": payment,
        "root": math.sqrt(inputs["years"]),
        "echo": json.loads(encoded)["years"],
    }
"""
        outputs = executor.execute(payload, {"rate": "0.0525", "years": 16})
        assert outputs == {"payment": Decimal("52.50"), "root": 4.0, "echo": 16}

    def test_nested_outputs_become_plain(self, executor: SandboxExecutor) -> None:
        payload = """
def compute(inputs):
    return {"schedule": [{"year": 1, "balance": 10.5}], "pair": (1, 2)}
"""
        outputs = executor.execute(payload, {})
        assert outputs == {"schedule": [{"year": 1, "balance": 10.5}], "pair": [1, 2]}

    def test_log_sink(self, executor: SandboxExecutor) -> None:
        payload = """
def compute(inputs):
    log.info("computing", inputs["value"])
    return {"ok": True}
"""
        assert executor.execute(payload, {"value": 1}) == {"ok": True}

    def test_no_state_leaks_between_executions(self, executor: SandboxExecutor) -> None:
        """Test module-level state starts fresh on every call."""
        payload = """
calls = []

def compute(inputs):
    calls.append(inputs["value"])
    return {"count": len(calls)}
"""
        assert executor.execute(payload, {"value": 1}) == {"count": 1}
        assert executor.execute(payload, {"value": 2}) == {"count": 1}

    def test_caller_inputs_not_modified(self, executor: SandboxExecutor) -> None:
        inputs = {"values": [3, 1, 2]}
        payload = """
def compute(inputs):
    return {"sorted": sorted(inputs["values"])}
"""
        assert executor.execute(payload, inputs) == {"sorted": [1, 2, 3]}
        assert inputs == {"values": [3, 1, 2]}

    def test_from_config(self) -> None:
        executor = SandboxExecutor.from_config(SandboxConfig(timeout_ms=1234))
        assert executor.timeout_ms == 1234


# =============================================================================
# Failures
# =============================================================================


class TestSandboxFailures:
    """Tests for payloads that fail."""

    def test_payload_exception(self, executor: SandboxExecutor) -> None:
        payload = """
def compute(inputs):
    raise ValueError("rate must be positive")
"""
        with pytest.raises(SandboxExecutionError, match="rate must be positive"):
            executor.execute(payload, {})

    def test_non_mapping_return(self, executor: SandboxExecutor) -> None:
        payload = """
def compute(inputs):
    return 42
"""
        with pytest.raises(SandboxExecutionError, match="must return a mapping"):
            executor.execute(payload, {})

    def test_none_return(self, executor: SandboxExecutor) -> None:
        payload = """
def compute(inputs):
    return None
"""
        with pytest.raises(SandboxExecutionError, match="must return a mapping"):
            executor.execute(payload, {})

    def test_unsupported_output_value(self, executor: SandboxExecutor) -> None:
        payload = """
def compute(inputs):
    return {"fn": compute}
"""
        with pytest.raises(SandboxExecutionError, match="unsupported"):
            executor.execute(payload, {})

    def test_output_mapping_that_raises_on_iteration(self, executor: SandboxExecutor) -> None:
        """Test a returned mapping that breaks during conversion fails cleanly."""
        payload = """
class Weird(dict):
    def items(self):
        raise ValueError("broken items")

def compute(inputs):
    return Weird(a=1)
"""
        with pytest.raises(SandboxExecutionError, match="unsupported value.*broken items"):
            executor.execute(payload, {})

    def test_missing_entrypoint(self, executor: SandboxExecutor) -> None:
        with pytest.raises(SandboxExecutionError, match="Model setup error"):
            executor.execute("x = 1", {})

    def test_syntax_error(self, executor: SandboxExecutor) -> None:
        with pytest.raises(SandboxExecutionError, match="Model setup error"):
            executor.execute("def compute(inputs)\n    return {}", {})

    def test_inputs_are_read_only(self, executor: SandboxExecutor) -> None:
        payload = """
def compute(inputs):
    inputs["value"] = 0
    return {"value": inputs["value"]}
"""
        with pytest.raises(SandboxExecutionError):
            executor.execute(payload, {"value": 1})


# =============================================================================
# Blocked Capabilities
# =============================================================================


class TestBlockedCapabilities:
    """Tests that host capabilities are unreachable."""

    @pytest.mark.parametrize(
        "expression",
        [
            'os.environ["HOME"]',
            "sys.modules",
            'open("/etc/passwd")',
            'subprocess.run(["ls"])',
            "bytes(8)",
            'socket.socket()',
            "globals()",
            "type(inputs)",
            "getattr(inputs, 'keys')",
            "sleep(1)",
        ],
    )
    def test_blocked_name_fails(self, executor: SandboxExecutor, expression: str) -> None:
        """Test using a blocked name fails rather than returning a value."""
        payload = f"""
def compute(inputs):
    return {{"value": {expression}}}
"""
        with pytest.raises(SandboxExecutionError, match="not permitted"):
            executor.execute(payload, {})

    def test_import_statement_blocked(self, executor: SandboxExecutor) -> None:
        with pytest.raises(SandboxExecutionError, match="Model setup error"):
            executor.execute("import os\ndef compute(inputs):\n    return {}", {})

    def test_eval_rejected_at_compile_time(self, executor: SandboxExecutor) -> None:
        payload = """
def compute(inputs):
    return {"value": eval("1 + 1")}
"""
        with pytest.raises(SandboxExecutionError, match="Model setup error"):
            executor.execute(payload, {})

    def test_dunder_access_rejected(self, executor: SandboxExecutor) -> None:
        payload = """
def compute(inputs):
    return {"value": compute.__globals__}
"""
        with pytest.raises(SandboxExecutionError, match="Model setup error"):
            executor.execute(payload, {})

    def test_blocked_value_cannot_be_returned(self, executor: SandboxExecutor) -> None:
        payload = """
def compute(inputs):
    return {"value": os}
"""
        with pytest.raises(SandboxExecutionError):
            executor.execute(payload, {})


# =============================================================================
# Timeouts
# =============================================================================


@pytest.mark.slow
class TestSandboxTimeouts:
    """Tests for wall-clock budgets."""

    def test_invoke_timeout(self) -> None:
        """Test an infinite loop in the entry point is terminated."""
        executor = SandboxExecutor(timeout_ms=500)
        payload = """
def compute(inputs):
    while True:
        pass
"""
        with pytest.raises(SandboxTimeout) as exc_info:
            executor.execute(payload, {})
        assert exc_info.value.phase == "invoke"
        assert exc_info.value.timeout_ms == 500

    def test_setup_timeout(self) -> None:
        """Test an infinite loop at module level is terminated."""
        executor = SandboxExecutor(timeout_ms=500)
        payload = """
while True:
    pass

def compute(inputs):
    return {}
"""
        with pytest.raises(SandboxTimeout) as exc_info:
            executor.execute(payload, {})
        assert exc_info.value.phase == "setup"

    def test_executor_usable_after_timeout(self) -> None:
        executor = SandboxExecutor(timeout_ms=500)
        with pytest.raises(SandboxTimeout):
            executor.execute("def compute(inputs):\n    while True:\n        pass", {})
        assert executor.execute("def compute(inputs):\n    return {'ok': 1}", {}) == {"ok": 1}


# =============================================================================
# Contract Checks
# =============================================================================


class TestContractChecks:
    """Tests for argument checks made before any worker starts."""

    def test_non_string_payload(self, executor: SandboxExecutor) -> None:
        with pytest.raises(ContractViolation):
            executor.execute(b"def compute(inputs): return {}", {})  # type: ignore[arg-type]

    def test_non_mapping_inputs(self, executor: SandboxExecutor) -> None:
        with pytest.raises(ContractViolation):
            executor.execute("def compute(inputs):\n    return {}", [1, 2])  # type: ignore[arg-type]

    def test_unpicklable_inputs(self, executor: SandboxExecutor) -> None:
        with pytest.raises(ContractViolation):
            executor.execute("def compute(inputs):\n    return {}", {"fn": lambda: 1})

    def test_contract_violation_is_type_error(self, executor: SandboxExecutor) -> None:
        with pytest.raises(TypeError):
            executor.execute(None, {})  # type: ignore[arg-type]


# =============================================================================
# Policy Helpers
# =============================================================================


class TestPolicy:
    """Tests for the in-process policy helpers."""

    def test_blocked_capability_denies_everything(self) -> None:
        blocked = BlockedCapability("os")
        with pytest.raises(PermissionError):
            blocked.environ
        with pytest.raises(PermissionError):
            blocked()
        with pytest.raises(PermissionError):
            blocked["x"]
        with pytest.raises(PermissionError):
            bool(blocked)
        with pytest.raises(PermissionError):
            iter(blocked)

    def test_every_blocked_name_is_bound(self) -> None:
        namespace = build_restricted_globals(ModelLog(None), lambda f: f)
        for names in BLOCKED_NAMES.values():
            for name in names:
                assert isinstance(namespace[name], BlockedCapability)
                assert isinstance(namespace["__builtins__"][name], BlockedCapability)

    def test_namespaces_are_fresh(self) -> None:
        first = build_restricted_globals(ModelLog(None), lambda f: f)
        second = build_restricted_globals(ModelLog(None), lambda f: f)
        assert first is not second
        assert first["__builtins__"] is not second["__builtins__"]

    def test_freeze_is_deep(self) -> None:
        frozen = freeze({"a": {"b": [1, 2]}, "s": {1}})
        with pytest.raises(TypeError):
            frozen["a"] = 1  # type: ignore[index]
        with pytest.raises(TypeError):
            frozen["a"]["b"] = 1  # type: ignore[index]
        assert frozen["a"]["b"] == (1, 2)
        assert frozen["s"] == frozenset({1})

    def test_to_plain_rejects_objects(self) -> None:
        with pytest.raises(TypeError, match="outputs.bad"):
            to_plain({"bad": object()}, "outputs")
