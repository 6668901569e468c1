"""System identity detection.

The conversation context sends the operating system and shell to the
model with every prompt so that generated commands match the user's
environment.  The snapshot is taken once per session.
"""

from __future__ import annotations

import getpass
import os
import platform
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from .errors import SystemInfoError


RELEVANT_ENV_VARS = (
    "PATH", "SHELL", "TERM", "LANG", "LC_ALL",
    "HOME", "USER", "HOSTNAME", "EDITOR",
)
KNOWN_SHELLS = ("bash", "zsh", "fish", "sh")


@dataclass(frozen=True)
class SystemInfo:
    """Snapshot of the host the commands will run on."""

    os: str
    shell: str
    user: str = ""
    home_dir: str = ""
    working_dir: str = ""
    environment: Dict[str, str] = field(default_factory=dict)

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"


def current_platform() -> str:
    """Return the lower-cased OS name (``linux``, ``darwin``, ``windows``)."""
    return platform.system().lower()


def detect_shell(os_name: Optional[str] = None) -> str:
    """Return the name of the user's shell.

    ``$SHELL`` wins when set.  On Windows we prefer PowerShell when it is
    on the ``PATH``; elsewhere we look at the parent process command
    line and default to ``bash``.
    """
    shell = os.environ.get("SHELL")
    if shell:
        return Path(shell).name
    os_name = os_name or current_platform()
    if os_name == "windows":
        if shutil.which("powershell.exe") is not None:
            return "powershell"
        return "cmd"
    cmdline = Path("/proc") / str(os.getppid()) / "cmdline"
    try:
        parent = cmdline.read_bytes().decode("utf-8", errors="replace")
    except OSError:
        parent = ""
    for name in KNOWN_SHELLS:
        if name in parent:
            return name
    return "bash"


def get_system_info() -> SystemInfo:
    """Collect a :class:`SystemInfo` for the current process.

    :raises SystemInfoError: when the user, home or working directory
      cannot be determined.
    """
    os_name = current_platform()
    try:
        user = getpass.getuser()
    except (KeyError, OSError) as exc:
        raise SystemInfoError("failed to get username", exc)
    try:
        home_dir = str(Path.home())
    except RuntimeError as exc:
        raise SystemInfoError("failed to get home directory", exc)
    try:
        working_dir = os.getcwd()
    except OSError as exc:
        raise SystemInfoError("failed to get working directory", exc)
    environment = {
        name: os.environ[name] for name in RELEVANT_ENV_VARS if name in os.environ
    }
    return SystemInfo(
        os=os_name,
        shell=detect_shell(os_name),
        user=user,
        home_dir=home_dir,
        working_dir=working_dir,
        environment=environment,
    )
