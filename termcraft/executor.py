"""Running vetted commands.

The executor is the only place that actually runs anything.  Every
command is re-validated before it is started, so a command the user
edited after extraction is held to the same rules.  Results are kept
in an in-memory, bounded command log; nothing is written to disk.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional

from .sysinfo import current_platform
from .validator import SafetyValidator


logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 1000


@dataclass(frozen=True)
class ExecutionResult:
    command: str
    output: str
    exit_code: int
    started_at: float
    finished_at: float
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and self.error is None


class CommandLog:
    """Most recent execution results, oldest evicted first."""

    def __init__(self, max_entries: int = DEFAULT_HISTORY_SIZE) -> None:
        if max_entries <= 0:
            raise ValueError("history size must be > 0")
        self._entries: Deque[ExecutionResult] = deque(maxlen=max_entries)

    def append(self, result: ExecutionResult) -> None:
        self._entries.append(result)

    def entries(self, limit: Optional[int] = None) -> List[ExecutionResult]:
        entries = list(self._entries)
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class CommandExecutor:
    """Validates and runs shell commands.

    :param validator: The safety validator every command must pass.
    :param working_dir: Default directory commands run in.
    :param history_size: How many results the command log keeps.
    """

    def __init__(
        self,
        validator: Optional[SafetyValidator] = None,
        working_dir: Optional[str] = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        self.validator = validator or SafetyValidator()
        self.working_dir = working_dir or os.getcwd()
        self.log = CommandLog(history_size)

    def execute(
        self,
        command: str,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ExecutionResult:
        """Run ``command`` and return its combined output and exit code.

        :raises ValidationError: for an empty command.
        :raises PermissionDeniedError: when the validator denies it.
        """
        self.validator.check(command)
        started = time.time()
        if current_platform() == "windows":
            args = ["cmd", "/C", command]
            shell = False
        else:
            args = command
            shell = True
        error = None
        try:
            proc = subprocess.run(
                args,
                shell=shell,
                cwd=cwd or self.working_dir,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout,
            )
            output, exit_code = proc.stdout or "", proc.returncode
            if exit_code != 0:
                error = f"exit status {exit_code}"
        except subprocess.TimeoutExpired as exc:
            output = exc.output or ""
            if isinstance(output, bytes):
                output = output.decode("utf-8", errors="replace")
            exit_code, error = -1, f"timed out after {timeout:g}s"
        except OSError as exc:
            output, exit_code, error = "", -1, str(exc)
        result = ExecutionResult(
            command=command,
            output=output,
            exit_code=exit_code,
            started_at=started,
            finished_at=time.time(),
            error=error,
        )
        if error:
            logger.debug("command %r failed: %s", command, error)
        self.log.append(result)
        return result

    def history(self, limit: Optional[int] = None) -> List[ExecutionResult]:
        return self.log.entries(limit)

    def clear_history(self) -> None:
        self.log.clear()
