"""
Source Manager Tests

Compile-on-edit with an optimistic commit: a failed proposal never replaces
the committed script.
"""

import pytest

from livebridge.errors import CompileError, ScriptRuntimeError
from livebridge.scope import ScopeStore
from livebridge.source import (
    SCRIPT_CHUNK,
    SourceManager,
    SourceState,
)


@pytest.fixture
def scope(runtime):
    return ScopeStore(runtime)


@pytest.fixture
def source(runtime, scope):
    return SourceManager(runtime, scope)


GOOD = "function update() state.x = (state.x or 0) + 1 end"
BAD = "function update("


class TestPropose:
    """Committing and rejecting sources."""

    def test_starts_uncompiled(self, source):
        assert source.state == SourceState.UNCOMPILED
        assert source.committed is None
        assert source.text is None

    def test_valid_source_committed(self, source):
        outcome = source.propose(GOOD)
        assert outcome
        assert outcome.message == "Compiled successfully"
        assert source.state == SourceState.COMMITTED
        assert source.text == GOOD

    def test_invalid_source_rejected_when_uncompiled(self, source):
        outcome = source.propose(BAD)
        assert not outcome
        assert outcome.message.startswith("Compile error:")
        assert source.state == SourceState.UNCOMPILED

    def test_invalid_source_keeps_committed(self, source):
        source.propose(GOOD)
        committed = source.committed
        outcome = source.propose(BAD)
        assert not outcome
        assert source.committed is committed
        assert source.text == GOOD

    def test_unchanged_source_is_noop(self, source):
        source.propose(GOOD)
        committed = source.committed
        outcome = source.propose(GOOD)
        assert outcome.message == "Compiled successfully (unchanged)"
        assert source.committed is committed

    def test_entry_points_cleared_on_commit(self, source, scope, runtime):
        source.propose("function update() end\nfunction init() return {} end")
        runtime.call(source.committed.chunk)
        assert scope.get("update") is not None

        source.propose("x = 1")
        assert scope.get("update") is None
        assert scope.get("init") is None

    def test_failed_proposal_keeps_entry_points(self, source, scope, runtime):
        source.propose("function update() end")
        runtime.call(source.committed.chunk)
        source.propose(BAD)
        assert scope.get("update") is not None

    def test_prelude_helpers_available(self, source, scope, runtime):
        source.propose("v = vec3_add(vec3(1, 2, 3), vec3(1, 1, 1))")
        runtime.call(source.committed.chunk)
        assert scope.get("v")["z"] == 4

    def test_prelude_helpers_not_in_scope(self, source, scope, runtime):
        source.propose("x = 1")
        runtime.call(source.committed.chunk)
        assert scope.get("vec3") is None


class TestLineNumbers:
    """Diagnostics refer to the operator's own lines."""

    def test_compile_error_line(self, source):
        outcome = source.propose("x = 1\nfunction update(")
        assert f"{SCRIPT_CHUNK}:2:" in outcome.message

    def test_first_line_compile_error(self, source):
        outcome = source.propose("function update(")
        assert f"{SCRIPT_CHUNK}:1:" in outcome.message

    def test_runtime_error_line(self, source, runtime):
        source.propose("x = 1\n\nerror('boom')")
        with pytest.raises(ScriptRuntimeError, match=f"{SCRIPT_CHUNK}:3: boom"):
            runtime.call(source.committed.chunk)

    def test_caught_error_line(self, source, scope, runtime):
        source.propose("x = 1\nok, err = pcall(function() return nosuch.field end)")
        runtime.call(source.committed.chunk)
        assert scope.get("err").startswith(f"{SCRIPT_CHUNK}:2:")

    def test_helper_errors_name_prelude(self, source, runtime):
        source.propose("v = vec3_add(nil, vec3())")
        with pytest.raises(ScriptRuntimeError, match="prelude:"):
            runtime.call(source.committed.chunk)


class TestCompileCommand:
    """One-shot commands compile as expressions or statements."""

    def test_expression(self, source, runtime, scope):
        chunk = source.compile_command("1 + 2")
        assert runtime.call(chunk) == 3

    def test_statement(self, source, runtime, scope):
        chunk = source.compile_command("answer = 42")
        assert runtime.call(chunk) is None
        assert scope.get("answer") == 42

    def test_invalid_command(self, source):
        with pytest.raises(CompileError):
            source.compile_command("if then")
