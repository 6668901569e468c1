"""Command extraction from free-form model replies.

The model is asked to answer with a fenced code block, but replies vary:
sometimes the command is in an inline span, sometimes on a ``$`` prompt
line, sometimes after ``Run:``.  Extraction tries a fixed list of
strategies in priority order.  Each strategy proposes candidates; a
candidate is accepted only when :func:`is_valid_command` agrees, so a
file path or a sentence in backticks does not get mistaken for a
command.

An empty command is a normal outcome: the reply was informational and
there is nothing to run.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple


SHELL_LABELS = frozenset({"", "bash", "shell", "zsh", "cmd", "powershell"})

COMMON_COMMANDS = (
    "ls", "cd", "pwd", "cp", "mv", "rm", "mkdir", "touch", "cat",
    "echo", "grep", "find", "sed", "awk", "curl", "wget", "git",
    "docker", "make", "gcc", "go", "python", "node", "npm",
)

PATH_METACHARACTERS = " |&;<>()$`\\\"'"
CONTROL_OPERATORS = "|&;<>()"
LINE_MARKERS = ("$", "#", ">")

_FENCE_RE = re.compile(r"```([^\n`]*)\n(.*?)\n?```", re.DOTALL)
_INLINE_RE = re.compile(r"`([^`\n]+)`")
_KEYWORD_RE = re.compile(r"(?:run|execute|command):\s*(.+)", re.IGNORECASE)


@dataclass(frozen=True)
class ExtractionResult:
    """The extracted command (possibly empty) and the untouched reply."""

    command: str
    full_output: str

    @property
    def has_command(self) -> bool:
        return bool(self.command)


def is_valid_command(candidate: str) -> bool:
    """Return True when ``candidate`` plausibly is a shell command."""
    cmd = candidate.strip()
    if not cmd:
        return False
    # A bare path mentioned in prose is not a command.
    if cmd.startswith("/") and not any(ch in cmd for ch in PATH_METACHARACTERS):
        return False
    for verb in COMMON_COMMANDS:
        if cmd == verb or cmd.startswith(verb + " "):
            return True
    if any(ch in cmd for ch in CONTROL_OPERATORS):
        return True
    if "$" in cmd or "`" in cmd:
        return True
    return False


def fenced_block(text: str) -> List[str]:
    """First fenced block that is untagged or tagged with a shell label."""
    for match in _FENCE_RE.finditer(text):
        label = match.group(1).strip().lower()
        if label in SHELL_LABELS:
            return [match.group(2).strip()]
    return []


def inline_span(text: str) -> List[str]:
    """First single-backtick inline span."""
    match = _INLINE_RE.search(text)
    if match is None:
        return []
    return [match.group(1).strip()]


def prompt_lines(text: str) -> List[str]:
    """Every line starting with a prompt marker, marker removed."""
    candidates = []
    for line in text.splitlines():
        line = line.strip()
        if line.startswith(LINE_MARKERS):
            candidates.append(line[1:].strip())
    return candidates


def keyword_line(text: str) -> List[str]:
    """Text after the first ``run:``, ``execute:`` or ``command:``."""
    match = _KEYWORD_RE.search(text)
    if match is None:
        return []
    return [match.group(1).strip()]


Strategy = Callable[[str], Sequence[str]]

STRATEGIES: Tuple[Strategy, ...] = (
    fenced_block,
    inline_span,
    prompt_lines,
    keyword_line,
)


def find_command(
    text: str,
    strategies: Sequence[Strategy] = STRATEGIES,
    validator: Callable[[str], bool] = is_valid_command,
) -> Optional[str]:
    """Return the first candidate accepted by ``validator``, or None."""
    for strategy in strategies:
        for candidate in strategy(text):
            if validator(candidate):
                return candidate
    return None


def extract(raw_text: str, strategies: Sequence[Strategy] = STRATEGIES) -> ExtractionResult:
    """Split a model reply into an executable command and the full text."""
    command = find_command(raw_text, strategies)
    return ExtractionResult(command=command or "", full_output=raw_text)
