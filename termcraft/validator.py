"""Command safety validation.

Commands suggested by the model must be vetted before they are handed
to the executor.  This module implements static heuristics that reject
empty commands, commands containing well known destructive patterns
and commands that need elevated privileges without asking for them.

Validation is pure: it looks only at the command string and the target
platform and performs no I/O, so callers can re-validate a command the
user edited by hand.  Matching is done on the literal string without
shell tokenisation, so a protected path inside a quoted string is still
flagged.
"""

from __future__ import annotations

from typing import Iterable, NamedTuple, Optional, Tuple

from .errors import PermissionDeniedError, ValidationError
from .sysinfo import current_platform


DANGEROUS_PATTERNS = (
    "rm -rf",
    "rmdir /s",
    "del /f",
    "format",
    "mkfs",
    ":(){:|:&};:",  # fork bomb
    "dd",
    "> /dev/sda",
    "chmod -R 777",
)

WINDOWS_ADMIN_PREFIXES = (
    "net user",
    "net localgroup",
    "reg add",
    "reg delete",
    "sc ",
    "bcdedit",
)

PROTECTED_PATHS = (
    "/etc/",
    "/usr/",
    "/var/",
    "/bin/",
    "/sbin/",
    "C:\\Windows\\",
    "C:\\Program Files\\",
)

SAFETY_LEVELS = ("low", "medium", "high")

EMPTY_REASON = "empty command"
PRIVILEGE_REASON = "requires elevated privileges"


class SafetyVerdict(NamedTuple):
    """Outcome of validation.  ``reason`` is set when denied."""

    allowed: bool
    reason: Optional[str] = None


def _contains_pattern(command: str, pattern: str) -> bool:
    return pattern.lower() in command.lower()


def find_dangerous_pattern(
    command: str, patterns: Iterable[str] = DANGEROUS_PATTERNS
) -> Optional[str]:
    """Return the first deny-list entry found in ``command``."""
    for pattern in patterns:
        if _contains_pattern(command, pattern):
            return pattern
    return None


def is_privileged(
    command: str,
    platform: Optional[str] = None,
    protected_paths: Iterable[str] = PROTECTED_PATHS,
) -> bool:
    """Return True if ``command`` needs elevated privileges."""
    cmd = command.strip()
    platform = platform or current_platform()
    if cmd.startswith(("sudo ", "su ")):
        return True
    if platform == "windows":
        lowered = cmd.lower()
        if any(lowered.startswith(prefix) for prefix in WINDOWS_ADMIN_PREFIXES):
            return True
    return any(path in cmd for path in protected_paths)


def validate_command(command: str, platform: Optional[str] = None) -> SafetyVerdict:
    """Decide whether ``command`` may be executed.

    :param command: Command string, as extracted or as edited by the user.
    :param platform: Target OS name; defaults to the current platform.
    :returns: A :class:`SafetyVerdict`.

    Rules, in order:

    * Empty or whitespace-only commands are denied.
    * Commands containing a :data:`DANGEROUS_PATTERNS` entry are denied
      and the reason names the pattern.
    * Privileged commands are denied unless they are explicitly
      prefixed with ``sudo`` on a non-Windows platform.
    """
    return SafetyValidator(platform=platform).validate(command)


class SafetyValidator:
    """Configurable validator.

    ``safety_level`` ``medium`` applies the rules of
    :func:`validate_command`.  ``low`` only checks the deny-list and
    ``high`` additionally refuses every ``sudo``/``su`` command.
    ``disallowed_commands`` and ``protected_paths`` extend the built-in
    lists.
    """

    def __init__(
        self,
        platform: Optional[str] = None,
        safety_level: str = "medium",
        disallowed_commands: Iterable[str] = (),
        protected_paths: Iterable[str] = (),
    ) -> None:
        level = safety_level.lower().strip()
        if level not in SAFETY_LEVELS:
            raise ValueError(f"safety_level must be one of: {list(SAFETY_LEVELS)}")
        self.platform = platform or current_platform()
        self.safety_level = level
        self.patterns: Tuple[str, ...] = DANGEROUS_PATTERNS + tuple(disallowed_commands)
        self.protected_paths: Tuple[str, ...] = PROTECTED_PATHS + tuple(protected_paths)

    def validate(self, command: str) -> SafetyVerdict:
        cmd = command.strip()
        if not cmd:
            return SafetyVerdict(False, EMPTY_REASON)
        pattern = find_dangerous_pattern(cmd, self.patterns)
        if pattern is not None:
            return SafetyVerdict(False, f"potentially dangerous command detected: {pattern}")
        if self.safety_level == "low":
            return SafetyVerdict(True)
        if self.safety_level == "high" and cmd.startswith(("sudo ", "su ")):
            return SafetyVerdict(False, "privileged commands are not allowed at safety level high")
        if is_privileged(cmd, self.platform, self.protected_paths):
            explicit_sudo = cmd.startswith("sudo ") and self.platform != "windows"
            if not explicit_sudo:
                return SafetyVerdict(False, PRIVILEGE_REASON)
        return SafetyVerdict(True)

    def check(self, command: str) -> None:
        """Like :meth:`validate` but raises on denial.

        :raises ValidationError: for an empty command.
        :raises PermissionDeniedError: for any other denial.
        """
        verdict = self.validate(command)
        if verdict.allowed:
            return
        if verdict.reason == EMPTY_REASON:
            raise ValidationError(verdict.reason)
        raise PermissionDeniedError(verdict.reason)


def check_command(command: str, platform: Optional[str] = None) -> None:
    """Raise if :func:`validate_command` denies ``command``."""
    SafetyValidator(platform=platform).check(command)
