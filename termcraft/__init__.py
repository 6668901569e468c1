"""Top-level package for termcraft.

termcraft converts natural language requests into shell commands using
a remote language model (Google Gemini), then checks whether the
suggested command is safe to run before handing it to the executor.
The request pipeline lives in :mod:`termcraft.session`; rate limiting,
conversation context, command extraction and safety validation each
have their own module.

When installed via pip the CLI is available as ``ai``.  Alternatively
run ``python -m termcraft.cli`` from a checkout.
"""

__version__ = "0.1.0"

__all__ = [
    "attachments",
    "cli",
    "config",
    "context",
    "errors",
    "executor",
    "extractor",
    "ledger",
    "models",
    "providers",
    "ratelimit",
    "server",
    "session",
    "sysinfo",
    "validator",
]
