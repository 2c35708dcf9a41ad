"""Agents: the streaming execution units of the engine."""

from .base import AgentRun, BaseAgent, collect_run, final_response
from .llm import LlmAgent
from .loop import LoopAgent
from .model import ModelBackend, OpenAIModel
from .parallel import ParallelAgent
from .plugins import Plugin
from .sequential import SequentialAgent

__all__ = [
    "BaseAgent",
    "AgentRun",
    "LlmAgent",
    "SequentialAgent",
    "ParallelAgent",
    "LoopAgent",
    "Plugin",
    "ModelBackend",
    "OpenAIModel",
    "collect_run",
    "final_response",
]
