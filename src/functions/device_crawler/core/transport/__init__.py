"""Remote command transport."""

from .commands import detail_command, listing_command
from .ssh_executor import CommandResult, RemoteExecutionError, RemoteExecutor, SshCommandExecutor

__all__ = [
    "CommandResult",
    "RemoteExecutionError",
    "RemoteExecutor",
    "SshCommandExecutor",
    "detail_command",
    "listing_command",
]
