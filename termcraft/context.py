"""Per-session conversation context.

The backend has no notion of a session, so continuity between turns is
provided by prepending a short block of session state to every user
message: where the user is, what was last suggested, what it printed
and which OS and shell are in use.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from .sysinfo import SystemInfo


PREFIX_TEMPLATE = (
    "Current directory: {working_dir}\n"
    "Last command: {last_command}\n"
    "Last output: {last_output}\n"
    "OS: {os}\n"
    "Shell: {shell}"
)


@dataclass
class ConversationContext:
    """Mutable state of one chat session.

    ``system_identity`` and ``session_start`` are fixed at creation.
    ``command_count`` and ``error_count`` only ever increase.
    """

    system_identity: SystemInfo
    working_dir: str = ""
    last_command: str = ""
    last_output: str = ""
    session_start: float = field(default_factory=time.time)
    last_modified: float = 0.0
    command_count: int = 0
    error_count: int = 0

    def __post_init__(self):
        if not self.working_dir:
            self.working_dir = self.system_identity.working_dir
        if not self.last_modified:
            self.last_modified = self.session_start

    def apply_turn(self, command: str, timestamp: Optional[float] = None) -> None:
        """Record a completed exchange that produced ``command``."""
        self.last_command = command
        self.last_modified = time.time() if timestamp is None else timestamp
        self.command_count += 1

    def record_output(self, output: str, working_dir: Optional[str] = None) -> None:
        """Store what the last executed command printed."""
        self.last_output = output
        if working_dir:
            self.working_dir = working_dir

    def record_error(self) -> None:
        self.error_count += 1

    def render_prefix(self) -> str:
        return PREFIX_TEMPLATE.format(
            working_dir=self.working_dir,
            last_command=self.last_command,
            last_output=self.last_output,
            os=self.system_identity.os,
            shell=self.system_identity.shell,
        )

    def contextualize(self, message: str) -> str:
        """Return ``message`` with the context prefix prepended."""
        return f"{self.render_prefix()}\n\nUser request: {message}"

    def session_minutes(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        return (now - self.session_start) / 60.0


def new_context(system_identity: SystemInfo) -> ConversationContext:
    return ConversationContext(system_identity=system_identity)
