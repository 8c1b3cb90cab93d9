from .patterns_cmds import register as register_patterns
from .session_cmds import register as register_sessions

__all__ = [
    "register_patterns",
    "register_sessions",
]
