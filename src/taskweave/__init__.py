__version__ = "0.1.0"

from .dag import GraphBuilder, classify_command, plan_stages, validate_graph
from .errors import (
    CycleError,
    ManifestError,
    ResolutionError,
    StuckRunError,
    TaskExecutionError,
    TaskweaveError,
    UnsupportedNestingError,
)
from .manifest import Manifest, load_manifest
from .model import ExecutionNode, NodeState, Target, Task
from .parser import parse_args
from .patterns import PatternResolver
from .runner import Executor, run

__all__ = [
    "__version__",
    "GraphBuilder", "classify_command", "plan_stages", "validate_graph",
    "CycleError", "ManifestError", "ResolutionError", "StuckRunError",
    "TaskExecutionError", "TaskweaveError", "UnsupportedNestingError",
    "Manifest", "load_manifest",
    "ExecutionNode", "NodeState", "Target", "Task",
    "parse_args", "PatternResolver", "Executor", "run",
]
