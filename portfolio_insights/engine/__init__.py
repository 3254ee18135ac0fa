"""DAG compiler and layered execution engine."""

from .errors import (
    ConflictingPatchError,
    CyclicGraphError,
    DuplicateNodeId,
    ExtractionFailure,
    GraphDefinitionError,
    NodeExecutionError,
    PipelineError,
    RunFailure,
    UnknownNodeReference,
)
from .executor import ExecutionEngine, error_key, node_errors, node_failed
from .graph import CompiledGraph, Node, PipelineGraph

__all__ = [
    "Node",
    "PipelineGraph",
    "CompiledGraph",
    "ExecutionEngine",
    "error_key",
    "node_errors",
    "node_failed",
    "PipelineError",
    "GraphDefinitionError",
    "DuplicateNodeId",
    "UnknownNodeReference",
    "CyclicGraphError",
    "ConflictingPatchError",
    "NodeExecutionError",
    "RunFailure",
    "ExtractionFailure",
]
