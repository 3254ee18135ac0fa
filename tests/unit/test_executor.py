"""Unit tests for the layered execution engine."""

import asyncio

import pytest

from portfolio_insights.engine import (
    ConflictingPatchError,
    ExecutionEngine,
    Node,
    PipelineGraph,
    error_key,
    node_errors,
    node_failed,
)


def _run(graph, state=None, timeout=None):
    return asyncio.run(ExecutionEngine().run(graph.compile(), state or {}, timeout=timeout))


def _fails(state):
    raise RuntimeError("boom")


class TestExecutionEngine:
    """Tests for ExecutionEngine.run."""

    def test_patches_are_merged(self):
        async def analyze(state):
            return {"analysis": f"{state['ticker']} looks fine"}

        def summarize(state):
            return {"summary": state["analysis"].upper()}

        graph = PipelineGraph()
        graph.register(Node("analyze", analyze, outputs={"analysis"}))
        graph.register(Node("summarize", summarize, depends_on={"analyze"}, outputs={"summary"}))

        final = _run(graph, {"ticker": "AAPL"})

        assert final == {
            "ticker": "AAPL",
            "analysis": "AAPL looks fine",
            "summary": "AAPL LOOKS FINE",
        }

    def test_initial_state_is_not_mutated(self):
        initial = {"a": 1}
        graph = PipelineGraph()
        graph.register(Node("n", lambda state: {"b": 2}))

        final = _run(graph, initial)

        assert initial == {"a": 1}
        assert final == {"a": 1, "b": 2}

    def test_sibling_runs_when_node_fails(self):
        graph = PipelineGraph()
        graph.register(Node("a", _fails, outputs={"a_out"}))
        graph.register(Node("b", lambda state: {"b_out": "ok"}, outputs={"b_out"}))

        final = _run(graph, {"seed": 1})

        assert final["b_out"] == "ok"
        assert "a_out" not in final
        assert final[error_key("a")] == {"error": "a", "message": "boom", "type": "RuntimeError"}
        assert node_failed(final, "a")
        assert not node_failed(final, "b")

    def test_downstream_runs_after_upstream_failure(self):
        seen = {}

        def downstream(state):
            seen["snapshot"] = dict(state)
            return {"result": state.get("upstream", "missing")}

        graph = PipelineGraph()
        graph.register(Node("upstream", _fails, outputs={"upstream"}))
        graph.register(Node("downstream", downstream, depends_on={"upstream"}, outputs={"result"}))

        final = _run(graph)

        assert final["result"] == "missing"
        assert error_key("upstream") in seen["snapshot"]

    @pytest.mark.parametrize("failing", [0, 1, 2, 3])
    def test_final_keys_superset_of_initial(self, failing):
        graph = PipelineGraph()
        for i in range(4):
            run = _fails if i < failing else (lambda state, i=i: {f"out{i}": i})
            graph.register(Node(f"n{i}", run, depends_on={f"n{i - 1}"} if i else ()))

        initial = {"x": 1, "y": [1, 2]}
        final = _run(graph, initial)

        assert set(initial) <= set(final)
        assert len(node_errors(final)) == failing

    def test_snapshot_is_read_only(self):
        def writer(state):
            state["sneaky"] = True
            return {}

        graph = PipelineGraph()
        graph.register(Node("writer", writer))

        final = _run(graph)

        assert "sneaky" not in final
        assert final[error_key("writer")]["type"] == "TypeError"

    def test_layer_runs_concurrently(self):
        async def slow(state, name):
            await asyncio.sleep(0.2)
            return {name: True}

        graph = PipelineGraph()
        for name in ("a", "b", "c"):
            graph.register(Node(name, lambda state, name=name: slow(state, name), outputs={name}))

        async def timed():
            loop = asyncio.get_running_loop()
            start = loop.time()
            await ExecutionEngine().run(graph.compile(), {})
            return loop.time() - start

        assert asyncio.run(timed()) < 0.5

    def test_barrier_between_layers(self):
        order = []

        async def first(state):
            await asyncio.sleep(0.05)
            order.append("first")
            return {}

        async def quick(state):
            order.append("quick")
            return {}

        def second(state):
            order.append("second")
            return {}

        graph = PipelineGraph()
        graph.register(Node("first", first))
        graph.register(Node("quick", quick))
        graph.register(Node("second", second, depends_on={"quick"}))

        _run(graph)

        assert order.index("second") > order.index("first")

    def test_undeclared_output_is_node_failure(self):
        graph = PipelineGraph()
        graph.register(Node("n", lambda state: {"declared": 1, "extra": 2}, outputs={"declared"}))

        final = _run(graph)

        assert "declared" not in final
        assert final[error_key("n")]["type"] == "NodeExecutionError"

    def test_non_mapping_patch_is_node_failure(self):
        graph = PipelineGraph()
        graph.register(Node("n", lambda state: ["not", "a", "mapping"]))

        final = _run(graph)

        assert node_failed(final, "n")

    def test_none_patch_is_empty(self):
        graph = PipelineGraph()
        graph.register(Node("n", lambda state: None))

        assert _run(graph, {"a": 1}) == {"a": 1}

    def test_runtime_overlap_raises(self):
        graph = PipelineGraph()
        graph.register(Node("a", lambda state: {"shared": 1}))
        graph.register(Node("b", lambda state: {"shared": 2}))

        with pytest.raises(ConflictingPatchError) as exc_info:
            _run(graph)
        assert exc_info.value.fields == {"shared"}


class TestRunDeadline:
    """Tests for the per-run timeout."""

    def test_slow_node_times_out(self):
        async def slow(state):
            await asyncio.sleep(5)
            return {"slow": True}

        graph = PipelineGraph()
        graph.register(Node("slow", slow, outputs={"slow"}))
        graph.register(Node("fast", lambda state: {"fast": True}, outputs={"fast"}))

        final = _run(graph, timeout=0.1)

        assert final["fast"] is True
        assert final[error_key("slow")]["type"] == "TimeoutError"

    def test_later_layers_fail_once_deadline_spent(self):
        calls = []

        async def slow(state):
            await asyncio.sleep(5)
            return {}

        def later(state):
            calls.append("later")
            return {"later": True}

        graph = PipelineGraph()
        graph.register(Node("slow", slow))
        graph.register(Node("later", later, depends_on={"slow"}))

        final = _run(graph, timeout=0.1)

        assert calls == []
        assert final[error_key("later")]["type"] == "TimeoutError"
        assert {marker["error"] for marker in node_errors(final)} == {"slow", "later"}

    def test_deadline_timeout_names_the_run_deadline(self):
        async def slow(state):
            await asyncio.sleep(5)
            return {}

        graph = PipelineGraph()
        graph.register(Node("slow", slow))

        final = _run(graph, timeout=0.1)

        assert final[error_key("slow")]["message"] == "node exceeded the run deadline"

    @pytest.mark.parametrize("timeout", [None, 30])
    def test_node_own_timeout_is_not_the_run_deadline(self, timeout):
        async def call_times_out(state):
            await asyncio.wait_for(asyncio.sleep(5), timeout=0.01)
            return {}

        graph = PipelineGraph()
        graph.register(Node("call", call_times_out))

        final = _run(graph, timeout=timeout)

        marker = final[error_key("call")]
        assert marker["type"] == "TimeoutError"
        assert marker["message"] == "node timed out"
