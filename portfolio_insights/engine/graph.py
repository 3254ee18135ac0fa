"""Node registry and topological layer compiler."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Union

import structlog

from .errors import (
    ConflictingPatchError,
    CyclicGraphError,
    DuplicateNodeId,
    UnknownNodeReference,
)

logger = structlog.get_logger(__name__)

Patch = Mapping[str, Any]
NodeRunner = Callable[[Mapping[str, Any]], Union[Patch, Awaitable[Patch]]]


@dataclass(frozen=True)
class Node:
    """One computation step of a pipeline graph.

    Attributes:
        id: Unique node id within the graph.
        run: Callable receiving a read-only state snapshot and returning a
            patch (or an awaitable resolving to one).
        depends_on: Ids of nodes that must settle before this one starts.
        outputs: State fields this node owns. Empty means undeclared.
    """

    id: str
    run: NodeRunner
    depends_on: frozenset[str] = field(default_factory=frozenset)
    outputs: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "depends_on", frozenset(self.depends_on))
        object.__setattr__(self, "outputs", frozenset(self.outputs))


@dataclass(frozen=True)
class CompiledGraph:
    """A validated graph with its execution layers."""

    name: str
    nodes: Mapping[str, Node]
    layers: tuple[tuple[str, ...], ...]

    @property
    def terminal_nodes(self) -> tuple[str, ...]:
        """Nodes that no other node depends on."""
        depended_on = {dep for node in self.nodes.values() for dep in node.depends_on}
        return tuple(node_id for node_id in self.nodes if node_id not in depended_on)

    def layer_of(self, node_id: str) -> int:
        for index, layer in enumerate(self.layers):
            if node_id in layer:
                return index
        raise KeyError(node_id)


class PipelineGraph:
    """Mutable graph definition. Register nodes, then compile once."""

    def __init__(self, name: str = "pipeline"):
        self.name = name
        self._nodes: dict[str, Node] = {}
        self._edges: list[tuple[str, str]] = []

    @property
    def nodes(self) -> dict[str, Node]:
        return dict(self._nodes)

    def register(self, node: Node) -> "PipelineGraph":
        """Add a node to the graph.

        Raises:
            DuplicateNodeId: If a node with the same id already exists.
        """
        if node.id in self._nodes:
            raise DuplicateNodeId(node.id)
        self._nodes[node.id] = node
        return self

    def add_edge(self, source: str, target: str) -> "PipelineGraph":
        """Make ``target`` depend on ``source``. Both are checked at compile time."""
        self._edges.append((source, target))
        return self

    def _dependencies(self) -> dict[str, set[str]]:
        deps = {node_id: set(node.depends_on) for node_id, node in self._nodes.items()}

        for source, target in self._edges:
            if target not in deps:
                raise UnknownNodeReference(source, target)
            deps[target].add(source)

        for node_id, node_deps in deps.items():
            for dep in sorted(node_deps):
                if dep not in self._nodes:
                    raise UnknownNodeReference(node_id, dep)

        return deps

    def compile(self) -> CompiledGraph:
        """Validate the graph and compute its topological layers.

        Each layer holds the nodes whose dependencies all sit in earlier
        layers, so every node lands in the lowest layer it can.

        Returns:
            CompiledGraph with nodes carrying their merged dependencies.

        Raises:
            UnknownNodeReference: A dependency names an unregistered node.
            CyclicGraphError: Some nodes can never be placed.
            ConflictingPatchError: Nodes of one layer declare overlapping outputs.
        """
        deps = self._dependencies()

        placed: set[str] = set()
        layers: list[tuple[str, ...]] = []
        remaining = list(self._nodes)

        while remaining:
            ready = tuple(node_id for node_id in remaining if deps[node_id] <= placed)
            if not ready:
                raise CyclicGraphError(remaining)
            layers.append(ready)
            placed.update(ready)
            remaining = [node_id for node_id in remaining if node_id not in placed]

        nodes = {
            node_id: Node(
                id=node.id,
                run=node.run,
                depends_on=frozenset(deps[node_id]),
                outputs=node.outputs,
            )
            for node_id, node in self._nodes.items()
        }

        for layer in layers:
            _check_layer_outputs(layer, nodes)

        logger.debug(
            "graph_compiled",
            graph=self.name,
            nodes=len(nodes),
            layers=[list(layer) for layer in layers],
        )

        return CompiledGraph(name=self.name, nodes=nodes, layers=tuple(layers))


def _check_layer_outputs(layer: tuple[str, ...], nodes: Mapping[str, Node]) -> None:
    owners: dict[str, str] = {}
    for node_id in layer:
        for output in nodes[node_id].outputs:
            if output in owners:
                raise ConflictingPatchError({output}, [owners[output], node_id])
            owners[output] = node_id
