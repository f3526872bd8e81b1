from __future__ import annotations

import re
from collections.abc import Iterable

from .errors import AuthorizationDenied

DEFAULT_ALLOWED_COMMANDS: tuple[str, ...] = (
    "ls", "dir", "pwd", "whoami", "date", "echo",
    "git status", "git log --oneline -10", "git branch",
    "npm --version", "node --version", "python --version",
    "systeminfo", "ps aux", "df -h", "free -h",
)

# Chaining, substitution and redirection. Anything after an allowed prefix
# would otherwise run unchecked.
_METACHAR_RE = re.compile(r"[;&|`<>\n\r]|\$\(")


def has_shell_metacharacters(text: str) -> bool:
    return _METACHAR_RE.search(text) is not None


def _normalize(command: str) -> str:
    return command.strip().lower()


class CommandAuthorizer:
    def __init__(
        self,
        allowed: Iterable[str] = DEFAULT_ALLOWED_COMMANDS,
        *,
        block_metacharacters: bool = True,
    ) -> None:
        self.allowed: tuple[str, ...] = tuple(entry for entry in allowed if entry.strip())
        self._prefixes = tuple(_normalize(entry) for entry in self.allowed)
        self.block_metacharacters = block_metacharacters

    def is_allowed(self, command: str) -> bool:
        """Prefix match of the trimmed, lower-cased command against the allow-list."""
        candidate = _normalize(command)
        return any(candidate.startswith(prefix) for prefix in self._prefixes)

    def authorize(self, command: str) -> None:
        if not self.is_allowed(command):
            raise AuthorizationDenied(command, self.allowed)
        if self.block_metacharacters and has_shell_metacharacters(command):
            raise AuthorizationDenied(
                command, self.allowed, reason="shell control characters are not permitted"
            )
