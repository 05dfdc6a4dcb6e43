"""Error types raised by the benchmark."""

from __future__ import annotations

from typing import Optional


class UuidBenchError(Exception):
    """Base class for benchmark errors."""


class GenerationError(UuidBenchError):
    """A key generator was called in violation of its contract."""


class BackendError(UuidBenchError):
    """A statement failed or the database could not be reached."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class SetupError(UuidBenchError):
    """Database or schema initialization failed; the run cannot start."""
