"""Error types raised by the graph compiler and execution engine."""


class PipelineError(Exception):
    """Base class for analysis pipeline errors."""

    pass


class GraphDefinitionError(PipelineError):
    """The graph cannot be compiled. Raised before any run starts."""

    pass


class DuplicateNodeId(GraphDefinitionError):
    """A node with the same id is already registered."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node already registered: {node_id}")


class UnknownNodeReference(GraphDefinitionError):
    """A dependency or edge points at a node that was never registered."""

    def __init__(self, node_id: str, reference: str):
        self.node_id = node_id
        self.reference = reference
        super().__init__(f"Node '{node_id}' references unknown node '{reference}'")


class CyclicGraphError(GraphDefinitionError):
    """Some nodes can never be placed because their dependencies form a cycle."""

    def __init__(self, unplaced: list[str]):
        self.unplaced = unplaced
        super().__init__(f"Graph contains a cycle among: {', '.join(unplaced)}")


class ConflictingPatchError(GraphDefinitionError):
    """Two nodes of the same layer write the same state field."""

    def __init__(self, fields: set[str], nodes: list[str]):
        self.fields = fields
        self.nodes = nodes
        super().__init__(
            f"Nodes {', '.join(nodes)} write overlapping fields: {', '.join(sorted(fields))}"
        )


class NodeExecutionError(PipelineError):
    """A single node failed. Recorded as an error marker, never propagated."""

    def __init__(self, node_id: str, message: str):
        self.node_id = node_id
        super().__init__(f"{node_id}: {message}")


class RunFailure(PipelineError):
    """An exception escaped the execution engine itself."""

    pass


class ExtractionFailure(PipelineError):
    """Terminal node text could not be turned into structured data."""

    pass
