"""
Tests for the chat session request pipeline.
"""
import threading

import pytest

from termcraft.attachments import FileReader
from termcraft.errors import (
    ConfigurationError,
    ExecutionError,
    InputError,
    RateLimitError,
    RequestTimeoutError,
)
from termcraft.models import ModelConfig
from termcraft.providers import BinaryPart, MockBackend, ProviderError, TextPart
from termcraft.ratelimit import RateLimiter, estimate_tokens
from termcraft.session import ChatSession, build_system_instruction


class TestSend:
    """Successful turns."""

    def test_returns_command_and_full_output(self, session, backend):
        backend.queue("Here:\n```bash\nls -la\n```")
        response = session.send("list files")
        assert response.command == "ls -la"
        assert response.full_output == "Here:\n```bash\nls -la\n```"
        assert response.metadata["model"] == "test-model"
        assert response.metadata["command_count"] == 1
        assert response.metadata["files"] == []

    def test_prompt_carries_context(self, session, backend):
        backend.queue("```bash\nls\n```", "```bash\npwd\n```")
        session.send("list files")
        session.record_output("a.txt b.txt")
        session.send("where am i")
        prompt = backend.requests[-1][0].text
        assert "Last command: ls\n" in prompt
        assert "Last output: a.txt b.txt\n" in prompt
        assert prompt.endswith("User request: where am i")

    def test_informational_reply_has_empty_command(self, session, backend):
        backend.queue("A pipe connects stdout of one process to stdin of another.")
        response = session.send("what is a pipe")
        assert response.command == ""
        assert not response.has_command
        assert session.context.command_count == 1

    def test_tokens_tracked(self, session, backend):
        reply = "```bash\ngit status\n```"
        backend.queue(reply)
        response = session.send("status")
        prompt = backend.requests[-1][0].text
        expected = estimate_tokens(prompt + reply)
        assert response.metadata["tokens_used"] == expected
        assert session.rate_limiter.token_count == expected

    def test_uses_model_generation_params(self, small_model, clock, system_info):
        seen = {}

        class RecordingBackend(MockBackend):
            def generate(self, parts, params, timeout=None):
                seen["params"] = params
                seen["timeout"] = timeout
                return ["```bash\nls\n```"]

        limiter = RateLimiter(small_model.limits, clock=clock)
        chat = ChatSession(RecordingBackend(), small_model, limiter, timeout=30.0)
        chat.send("list")
        assert seen["params"].model == "test-model"
        assert seen["params"].top_k == small_model.top_k
        assert seen["timeout"] == 30.0


class TestRateLimiting:
    """Admission happens before anything is sent."""

    def test_refused_when_rpm_reached(self, session, backend):
        for _ in range(3):
            session.send("status")
        with pytest.raises(RateLimitError):
            session.send("status")
        assert len(backend.requests) == 3

    def test_post_hoc_token_breach_is_flagged(self, clock, system_info):
        model = ModelConfig(
            name="tiny", input_token_limit=100, output_token_limit=100,
            rpm=10, tpm=5, rpd=10,
        )
        limiter = RateLimiter(model.limits, clock=clock)
        backend = MockBackend(["```bash\nls -la\n```"])
        chat = ChatSession(backend, model, limiter)
        response = chat.send("list everything in this directory please")
        assert response.command == "ls -la"
        assert response.metadata["token_limit_exceeded"] is True
        assert response.metadata["retry_after"] > 0
        with pytest.raises(RateLimitError):
            chat.send("again")


class TestFailures:
    """Errors leave the context untouched apart from the error count."""

    def test_backend_error(self, session, backend):
        backend.error = ProviderError("boom")
        with pytest.raises(ExecutionError):
            session.send("list files")
        assert session.context.error_count == 1
        assert session.context.last_command == ""
        assert session.context.command_count == 0

    def test_unexpected_backend_exception_is_wrapped(self, session, backend):
        backend.error = RuntimeError("socket closed")
        with pytest.raises(ExecutionError) as excinfo:
            session.send("list files")
        assert isinstance(excinfo.value.cause, RuntimeError)
        assert session.context.error_count == 1

    def test_configuration_error_propagates(self, session, backend):
        backend.error = ConfigurationError("client not initialized")
        with pytest.raises(ConfigurationError):
            session.send("list files")
        assert session.context.error_count == 1

    @pytest.mark.parametrize("replies", [[], ["   "]])
    def test_empty_reply(self, session, replies):
        class EmptyBackend(MockBackend):
            def generate(self, parts, params, timeout=None):
                return list(replies)

        session.backend = EmptyBackend()
        with pytest.raises(ExecutionError):
            session.send("list files")
        assert session.context.error_count == 1

    def test_failure_preserves_previous_turn(self, session, backend):
        backend.queue("```bash\npwd\n```")
        session.send("where am i")
        backend.error = ProviderError("down")
        with pytest.raises(ExecutionError):
            session.send("list files")
        assert session.context.last_command == "pwd"
        assert session.context.command_count == 1

    def test_cancelled_before_call(self, session, backend):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(RequestTimeoutError):
            session.send("list files", cancel_event=cancel)
        assert backend.requests == []
        assert session.context.command_count == 0

    def test_cancelled_during_call(self, session, small_model, clock):
        cancel = threading.Event()

        class SlowBackend(MockBackend):
            def generate(self, parts, params, timeout=None):
                cancel.set()
                return ["```bash\nls\n```"]

        session.backend = SlowBackend()
        with pytest.raises(RequestTimeoutError):
            session.send("list files", cancel_event=cancel)
        assert session.context.last_command == ""
        assert session.context.command_count == 0

    def test_closed_session(self, session):
        session.close()
        with pytest.raises(ExecutionError):
            session.send("list files")


class TestAttachments:
    """Files sent with a prompt."""

    def test_text_and_image_parts(self, session, backend, tmp_path):
        notes = tmp_path / "notes.txt"
        notes.write_text("remember the milk")
        image = tmp_path / "shot.png"
        image.write_bytes(b"\x89PNG\r\n")
        backend.queue("The note says to buy milk.")
        response = session.send("summarise", attachments=[notes, image])
        parts = backend.requests[-1]
        assert parts[1] == TextPart("remember the milk")
        assert parts[2] == BinaryPart(mime_type="image/png", data=b"\x89PNG\r\n")
        assert response.metadata["files"] == [str(notes), str(image)]

    def test_text_attachments_count_towards_tokens(self, session, backend, tmp_path):
        notes = tmp_path / "notes.txt"
        notes.write_text("alpha beta gamma delta " * 50)
        reply = "Those are Greek letters."
        backend.queue(reply)
        response = session.send("what is in this file", attachments=[notes])
        prompt, attachment = backend.requests[-1]
        expected = estimate_tokens(prompt.text + "\n" + attachment.text + reply)
        assert response.metadata["tokens_used"] == expected
        assert expected > estimate_tokens(prompt.text + reply)
        assert session.rate_limiter.token_count == expected

    def test_total_size_limit(self, session, backend, tmp_path):
        session.file_reader = FileReader(max_size=10)
        first = tmp_path / "a.txt"
        first.write_text("123456")
        second = tmp_path / "b.txt"
        second.write_text("123456")
        with pytest.raises(InputError) as excinfo:
            session.send("read these", attachments=[first, second])
        assert "total file size exceeds limit" in str(excinfo.value)
        assert backend.requests == []

    def test_pdf_fails_before_backend_call(self, session, backend, tmp_path):
        pdf = tmp_path / "doc.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        with pytest.raises(InputError) as excinfo:
            session.send("summarise", attachments=[pdf])
        assert "PDF processing not implemented" in str(excinfo.value)
        assert backend.requests == []

    def test_missing_file(self, session, tmp_path):
        with pytest.raises(InputError):
            session.send("read", attachments=[tmp_path / "missing.txt"])


def test_system_instruction_mentions_os_and_shell(system_info):
    instruction = build_system_instruction(system_info)
    assert "for linux using bash shell" in instruction
    assert "```bash\n<command here>\n```" in instruction
