"""agenttree: a tool-using LLM agent over branchable conversation trees."""

from agenttree.agent import Agent, AssistantReply, CancellationToken, StopReason
from agenttree.config import Config, load_config
from agenttree.errors import AgentTreeError, ErrorKind
from agenttree.session import Session
from agenttree.tools import AutonomyLevel

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentTreeError",
    "AssistantReply",
    "AutonomyLevel",
    "CancellationToken",
    "Config",
    "ErrorKind",
    "Session",
    "StopReason",
    "load_config",
    "__version__",
]
