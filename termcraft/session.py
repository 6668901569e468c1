"""Chat sessions: the request pipeline between user text and a command.

A :class:`ChatSession` ties together the pieces of one conversation.
For every call to :meth:`ChatSession.send` it

1. asks the model's rate limiter to admit the request,
2. prepends the conversation context to the user's message,
3. converts attachments into backend parts, enforcing a total size cap,
4. calls the backend,
5. extracts a command from the reply,
6. updates the conversation context,
7. reports the estimated token usage (prompt, text attachments and
   reply) back to the rate limiter.

The session never executes anything and never validates the command;
that is the caller's job (see :mod:`termcraft.validator` and
:mod:`termcraft.executor`).  The context is only updated after a
complete, successful turn, so a failed or cancelled call leaves
``last_command`` and ``last_output`` untouched.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .attachments import FileReader
from .context import ConversationContext, new_context
from .errors import (
    ExecutionError,
    InputError,
    RateLimitError,
    RequestTimeoutError,
    TermcraftError,
)
from .extractor import extract
from .models import ModelConfig
from .providers import BaseBackend, GenerationParams, Part, TextPart
from .ratelimit import RateLimiter, estimate_tokens
from .sysinfo import SystemInfo, get_system_info


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600.0


def build_system_instruction(info: SystemInfo) -> str:
    """Return the system prompt describing the user's OS and shell."""
    return (
        f"You are a terminal command assistant for {info.os} using {info.shell} shell.\n"
        "Your goal is to help users by:\n"
        "1. Converting natural language requests into terminal commands\n"
        "2. Analyzing files and images when requested\n"
        "3. Providing clear explanations and guidance\n\n"
        "When responding with commands, ALWAYS use this format:\n\n"
        f"```{info.shell}\n"
        "<command here>\n"
        "```\n\n"
        "Guidelines:\n"
        "  - Always use appropriate code blocks for commands\n"
        "  - Be precise and clear in command syntax\n"
        "  - Explain potential risks\n\n"
        "DO NOT:\n"
        "  - Execute destructive commands\n"
        "  - Modify system critical paths\n"
        "  - Use sudo unless explicitly requested\n"
    )


@dataclass
class Response:
    """Result of one successful turn."""

    command: str
    full_output: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_command(self) -> bool:
        return bool(self.command)


class ChatSession:
    """One conversation with one model.

    A session is used by one caller at a time; a new :meth:`send` is
    expected to wait for the previous one to finish.
    """

    def __init__(
        self,
        backend: BaseBackend,
        model_config: ModelConfig,
        rate_limiter: RateLimiter,
        context: Optional[ConversationContext] = None,
        file_reader: Optional[FileReader] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.backend = backend
        self.model_config = model_config
        self.rate_limiter = rate_limiter
        self.context = context if context is not None else new_context(get_system_info())
        self.file_reader = file_reader or FileReader()
        self.timeout = timeout
        self.params = GenerationParams.for_model(model_config)

    def send(
        self,
        message: str,
        attachments: Sequence[Union[str, Path]] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> Response:
        """Send ``message`` (and optional file attachments) to the model.

        :raises RateLimitError: when the model's limiter refuses the request.
        :raises InputError: for unreadable, unsupported or oversized files.
        :raises RequestTimeoutError: when ``cancel_event`` is set or the
          backend times out.
        :raises ExecutionError: when the backend fails or replies with
          nothing.
        """
        if self.context is None:
            raise ExecutionError("chat session is closed")
        self.rate_limiter.admit()

        contextual_message = self.context.contextualize(message)
        parts: List[Part] = [TextPart(contextual_message)]
        files = self._attachment_parts(attachments, parts)

        self._check_cancelled(cancel_event)
        reply = self._generate(parts)
        self._check_cancelled(cancel_event)

        result = extract(reply)
        now = time.time()
        self.context.apply_turn(result.command, timestamp=now)

        sent_text = "\n".join(part.text for part in parts if isinstance(part, TextPart))
        tokens = estimate_tokens(sent_text + result.full_output)
        metadata: Dict[str, Any] = {
            "model": self.model_config.name,
            "timestamp": now,
            "tokens_used": tokens,
            "command_count": self.context.command_count,
            "error_count": self.context.error_count,
            "session_minutes": self.context.session_minutes(now),
            "files": files,
        }
        try:
            self.rate_limiter.track_tokens(tokens)
        except RateLimitError as exc:
            # The turn already happened; the next admit() will refuse.
            logger.warning("%s", exc.message)
            metadata["token_limit_exceeded"] = True
            metadata["retry_after"] = exc.retry_after
        return Response(command=result.command, full_output=result.full_output, metadata=metadata)

    def record_output(self, output: str, working_dir: Optional[str] = None) -> None:
        """Feed the output of an executed command into the next prompt."""
        if self.context is not None:
            self.context.record_output(output, working_dir)

    def usage(self) -> Dict[str, Dict[str, float]]:
        return self.rate_limiter.usage_snapshot()

    def close(self) -> None:
        self.context = None

    def _attachment_parts(
        self, attachments: Sequence[Union[str, Path]], parts: List[Part]
    ) -> List[str]:
        processed = []
        total_size = 0
        for path in attachments:
            content = self.file_reader.read(path)
            total_size += content.size
            if total_size > self.file_reader.max_size:
                raise InputError("total file size exceeds limit")
            parts.append(self.file_reader.to_part(content))
            processed.append(str(path))
        return processed

    def _generate(self, parts: Sequence[Part]) -> str:
        try:
            texts = self.backend.generate(parts, self.params, timeout=self.timeout)
        except TermcraftError as exc:
            logger.warning("%s: backend call failed: %s", self.model_config.name, exc)
            self.context.record_error()
            raise
        except Exception as exc:
            logger.warning("%s: backend call failed: %s", self.model_config.name, exc)
            self.context.record_error()
            raise ExecutionError("failed to generate content", exc)
        if not texts:
            self.context.record_error()
            raise ExecutionError("no response generated")
        reply = texts[0]
        if not isinstance(reply, str) or not reply.strip():
            self.context.record_error()
            raise ExecutionError("empty response content")
        return reply

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise RequestTimeoutError("request cancelled")
