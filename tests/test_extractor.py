"""
Tests for command extraction from model replies.
"""
import pytest

from termcraft.extractor import (
    extract,
    fenced_block,
    find_command,
    inline_span,
    is_valid_command,
    keyword_line,
    prompt_lines,
)


class TestIsValidCommand:
    """The validity heuristic applied to every candidate."""

    @pytest.mark.parametrize("candidate", [
        "ls",
        "ls -la",
        "git status",
        "docker ps -a",
        "du -sh * | sort -h",
        "echo $HOME",
        "tar czf out.tgz dir && mv out.tgz /tmp",
        "/usr/bin/env | head",
    ])
    def test_accepts_commands(self, candidate):
        assert is_valid_command(candidate)

    @pytest.mark.parametrize("candidate", [
        "",
        "   ",
        "/usr/local/bin",
        "/etc/hosts",
        "README.md",
        "the files are listed above",
        "lsblk",  # not a known verb and no operators
    ])
    def test_rejects_non_commands(self, candidate):
        assert not is_valid_command(candidate)

    def test_verb_must_be_whole_word(self):
        assert not is_valid_command("gone")
        assert is_valid_command("go build ./...")


class TestStrategies:
    """Each strategy in isolation."""

    def test_fenced_block_takes_first_shell_block(self):
        text = "```python\nprint(1)\n```\n```bash\nls -la\n```\n```sh\npwd\n```"
        assert fenced_block(text) == ["ls -la"]

    def test_fenced_block_untagged(self):
        assert fenced_block("Try:\n```\n  git log --oneline  \n```") == ["git log --oneline"]

    def test_fenced_block_multiline(self):
        text = "```zsh\nmkdir build\ncd build\n```"
        assert fenced_block(text) == ["mkdir build\ncd build"]

    def test_inline_span(self):
        assert inline_span("Use `cat notes.txt` then `ls`") == ["cat notes.txt"]
        assert inline_span("no code here") == []

    def test_prompt_lines_strip_marker(self):
        text = "Steps:\n  $ pwd\n# heading\n> echo hi"
        assert prompt_lines(text) == ["pwd", "heading", "echo hi"]

    def test_keyword_line_case_insensitive(self):
        assert keyword_line("Please EXECUTE:   git status\nthanks") == ["git status"]
        assert keyword_line("nothing to do") == []


class TestExtract:
    """Priority order and fallback behaviour."""

    def test_fenced_block_wins_over_prompt_line(self):
        text = "Here you go:\n```bash\nls -la\n```\nor\n$ pwd"
        result = extract(text)
        assert result.command == "ls -la"
        assert result.full_output == text

    def test_path_only_reply_yields_no_command(self):
        result = extract("/usr/local/bin")
        assert result.command == ""
        assert not result.has_command
        assert result.full_output == "/usr/local/bin"

    def test_keyword_fallback(self):
        text = "To see what changed.\nExecute: git status"
        assert extract(text).command == "git status"

    def test_invalid_fenced_block_falls_through(self):
        text = "```\n/usr/local/bin\n```\nThen run `ls /usr/local/bin`."
        assert extract(text).command == "ls /usr/local/bin"

    def test_prompt_lines_skip_invalid_candidates(self):
        text = "# Listing files\n$ ls -la"
        assert extract(text).command == "ls -la"

    def test_informational_reply(self):
        text = "A symlink is a file that points to another file."
        result = extract(text)
        assert result.command == ""
        assert result.full_output == text

    def test_custom_strategy_order(self):
        text = "```bash\nls -la\n```\n$ pwd"
        assert find_command(text, strategies=(prompt_lines, fenced_block)) == "pwd"
