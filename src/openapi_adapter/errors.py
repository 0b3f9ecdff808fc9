"""Error taxonomy for catalog loading and operation execution."""

from __future__ import annotations

from typing import Iterable, Optional


class AdapterError(Exception):
    pass


class LoadError(AdapterError):
    """The OpenAPI document could not be fetched, parsed or validated."""


class ToolNotFoundError(AdapterError):
    def __init__(self, name: str) -> None:
        super().__init__(f'Tool "{name}" not found')
        self.name = name


class ValidationError(AdapterError):
    """Arguments were rejected before any request was sent.

    ``missing`` holds every required parameter that had no argument, and
    ``path`` names the offending value for schema violations.
    """

    def __init__(
        self,
        message: str,
        *,
        missing: Optional[Iterable[str]] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.missing = set(missing or ())
        self.path = path

    @classmethod
    def missing_parameters(cls, names: Iterable[str]) -> "ValidationError":
        ordered = list(names)
        return cls(
            f"Missing required parameters: {', '.join(ordered)}",
            missing=ordered,
        )


class ExecutionError(AdapterError):
    """The request failed at the transport level after all retries."""


class PathSubstitutionError(AdapterError):
    def __init__(self, path: str, tokens: Iterable[str]) -> None:
        self.tokens = list(tokens)
        super().__init__(
            f"Unreplaced path parameters in {path}: {', '.join(self.tokens)}"
        )


class ResourceNotFoundError(AdapterError):
    def __init__(self, uri: str) -> None:
        super().__init__(f"Resource not found: {uri}")
        self.uri = uri


class PromptNotFoundError(AdapterError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Prompt not found: {name}")
        self.name = name
