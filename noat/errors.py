"""Error types raised by the publish engine.

Every failure the engine knows about is a NoatError subclass, so the CLI
can report it as a single line and exit non-zero.
"""

from __future__ import annotations


class NoatError(Exception):
    """Base class for all expected failures."""


class ConfigError(NoatError):
    """A required configuration value could not be resolved."""


class PreconditionError(NoatError):
    """The repository is not in a state that allows publishing."""


class ValidationError(NoatError):
    """A post cannot be turned into a draft."""


class FrontmatterParseError(ValidationError):
    """A metadata line could not be parsed."""

    def __init__(
        self, line: str, reason: str = "Invalid frontmatter line", detail: str | None = None,
    ) -> None:
        self.line = line
        self.detail = detail
        message = f'{reason} "{line}"'
        if detail:
            message += f": {detail}"
        super().__init__(message)


class NetworkError(NoatError):
    """The remote protocol returned an error or an unusable response."""

    def __init__(self, context: str, message: str, status: int = 0) -> None:
        self.context = context
        self.message = message
        self.status = status
        if status:
            super().__init__(f"Bluesky API error ({context}) [{status}]: {message}")
        else:
            super().__init__(f"Bluesky API error ({context}): {message}")


class GitError(NoatError):
    """A git invocation exited non-zero."""

    def __init__(self, args: list[str], stderr: str) -> None:
        self.git_args = list(args)
        self.stderr = stderr
        super().__init__(f"git {' '.join(args)} failed: {stderr or 'unknown git error'}")


class PublishError(NoatError):
    """A publish run ended in an inconsistent state."""
