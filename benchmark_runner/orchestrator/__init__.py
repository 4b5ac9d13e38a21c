"""Illustrative task orchestrator: routes file changes to worker processes.

Independent of the benchmark pipeline.
"""

from .messages import Message, ProtocolError, decode, encode
from .orchestrator import AgentSpec, OrchestratorConfig, TaskOrchestrator
from .patterns import glob_to_regex, matches
from .state import OrchestratorState, RetryPolicy, Task, TaskStatus, dispatch

__all__ = [
    "AgentSpec",
    "Message",
    "OrchestratorConfig",
    "OrchestratorState",
    "ProtocolError",
    "RetryPolicy",
    "Task",
    "TaskOrchestrator",
    "TaskStatus",
    "decode",
    "dispatch",
    "encode",
    "glob_to_regex",
    "matches",
]
