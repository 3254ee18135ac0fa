"""Layered execution of compiled pipeline graphs.

Each layer of a compiled graph runs concurrently on the event loop. The
engine waits for every node of a layer to settle before merging their
patches into the shared state and moving on. A failing node never aborts
the run: its failure is written into the state as an error marker under a
node-scoped key and downstream nodes carry on with whatever is available.
"""

import asyncio
import inspect
import time
from types import MappingProxyType
from typing import Any, Mapping

import structlog

from .errors import ConflictingPatchError, NodeExecutionError
from .graph import CompiledGraph, Node

logger = structlog.get_logger(__name__)

ERROR_KEY_SUFFIX = "__error"
# Timer callbacks may fire up to one clock tick before the deadline
DEADLINE_SLACK_SECONDS = 0.02


def error_key(node_id: str) -> str:
    """State key holding the error marker of ``node_id``."""
    return f"{node_id}{ERROR_KEY_SUFFIX}"


def node_errors(state: Mapping[str, Any]) -> list[dict]:
    """Collect the error markers recorded in a final state."""
    return [
        value
        for key, value in state.items()
        if key.endswith(ERROR_KEY_SUFFIX) and isinstance(value, dict)
    ]


def node_failed(state: Mapping[str, Any], node_id: str) -> bool:
    return error_key(node_id) in state


class ExecutionEngine:
    """Runs compiled graphs layer by layer with a barrier between layers."""

    async def run(
        self,
        graph: CompiledGraph,
        initial_state: Mapping[str, Any],
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Execute a compiled graph.

        Args:
            graph: Compiled graph to execute.
            initial_state: Caller-supplied inputs. Not mutated.
            timeout: Optional deadline for the whole run, in seconds.

        Returns:
            The merged final state. Its keys are a superset of the initial
            state's keys, whatever the number of failed nodes.

        Raises:
            ConflictingPatchError: Two nodes of one layer returned the same key.
        """
        state: dict[str, Any] = dict(initial_state)
        deadline = time.monotonic() + timeout if timeout is not None else None
        run_start = time.monotonic()

        logger.info(
            "engine_run_start",
            graph=graph.name,
            layers=len(graph.layers),
            timeout=timeout,
        )

        for index, layer in enumerate(graph.layers):
            logger.debug("engine_layer_start", graph=graph.name, layer=index, nodes=list(layer))

            snapshot = MappingProxyType(dict(state))
            results = await asyncio.gather(
                *(self._run_node(graph.nodes[node_id], snapshot, deadline) for node_id in layer)
            )

            patches: list[tuple[str, Mapping[str, Any]]] = []
            for node_id, (patch, failure) in zip(layer, results):
                if failure is not None:
                    patches.append((node_id, {error_key(node_id): failure}))
                else:
                    patches.append((node_id, patch))

            self._merge(state, patches)

        failed = [marker["error"] for marker in node_errors(state)]
        logger.info(
            "engine_run_complete",
            graph=graph.name,
            duration_seconds=round(time.monotonic() - run_start, 3),
            failed_nodes=failed,
        )

        return state

    async def _run_node(
        self,
        node: Node,
        snapshot: Mapping[str, Any],
        deadline: float | None,
    ) -> tuple[Mapping[str, Any] | None, dict | None]:
        """Run one node, turning any failure into an error marker."""
        node_start = time.monotonic()
        try:
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise asyncio.TimeoutError("run deadline expired before node started")
                patch = await asyncio.wait_for(_call(node, snapshot), timeout=remaining)
            else:
                patch = await _call(node, snapshot)

            return _validate_patch(node, patch), None

        except asyncio.TimeoutError as e:
            if deadline is not None and time.monotonic() >= deadline - DEADLINE_SLACK_SECONDS:
                message = str(e) or "node exceeded the run deadline"
            else:
                message = str(e) or "node timed out"
            logger.warning("engine_node_timeout", node=node.id, message=message)
            return None, _marker(node.id, message, "TimeoutError")

        except Exception as e:
            logger.warning(
                "engine_node_failed",
                node=node.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None, _marker(node.id, str(e), type(e).__name__)

        finally:
            logger.debug(
                "engine_node_settled",
                node=node.id,
                duration_seconds=round(time.monotonic() - node_start, 3),
            )

    @staticmethod
    def _merge(state: dict[str, Any], patches: list[tuple[str, Mapping[str, Any]]]) -> None:
        owners: dict[str, str] = {}
        for node_id, patch in patches:
            overlap = owners.keys() & patch.keys()
            if overlap:
                nodes = sorted({owners[key] for key in overlap} | {node_id})
                raise ConflictingPatchError(set(overlap), nodes)
            owners.update({key: node_id for key in patch})

        for _, patch in patches:
            state.update(patch)


async def _call(node: Node, snapshot: Mapping[str, Any]) -> Any:
    result = node.run(snapshot)
    if inspect.isawaitable(result):
        result = await result
    return result


def _validate_patch(node: Node, patch: Any) -> Mapping[str, Any]:
    if patch is None:
        return {}
    if not isinstance(patch, Mapping):
        raise NodeExecutionError(node.id, f"returned {type(patch).__name__}, expected a mapping")
    if node.outputs:
        undeclared = set(patch) - node.outputs
        if undeclared:
            raise NodeExecutionError(
                node.id, f"wrote undeclared fields: {', '.join(sorted(undeclared))}"
            )
    return dict(patch)


def _marker(node_id: str, message: str, error_type: str) -> dict:
    return {"error": node_id, "message": message, "type": error_type}
