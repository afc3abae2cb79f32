from agentviz.sources.base import SessionSource, UsageSource
from agentviz.sources.local import LocalSessionSource
from agentviz.sources.remote import AgentTaskSource, CommandResult, run_gh
from agentviz.sources.usage import LogUsageSource

__all__ = [
    "SessionSource",
    "UsageSource",
    "LocalSessionSource",
    "AgentTaskSource",
    "CommandResult",
    "run_gh",
    "LogUsageSource",
]
