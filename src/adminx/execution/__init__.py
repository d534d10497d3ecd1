from .engine import ExecutionEngine
from .host import ACCESS_TOKEN_ENV, HostResult, PowerShellHost, ScriptHost, classify_failure

__all__ = [
    "ACCESS_TOKEN_ENV",
    "ExecutionEngine",
    "HostResult",
    "PowerShellHost",
    "ScriptHost",
    "classify_failure",
]
