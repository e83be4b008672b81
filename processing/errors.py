"""
Error taxonomy for the population maps pipeline.

Load, schema and config errors abort the run. Join mismatches are
diagnostics that only become fatal in strict mode. Write errors are
fatal for one artifact only.
"""

from pathlib import Path
from typing import Iterable, Optional, Sequence, Union


class PipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigError(PipelineError, ValueError):
    """Invalid or incomplete configuration."""


class LoadError(PipelineError):
    """Input file is missing, unreadable or holds unparseable values."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


class SchemaError(PipelineError):
    """Expected column is absent from an input file."""

    def __init__(
        self,
        path: Union[str, Path],
        missing: Iterable[str],
        available: Optional[Iterable[str]] = None,
    ):
        self.path = Path(path)
        self.missing = list(missing)
        self.available = list(available) if available is not None else []
        message = f"{self.path}: missing required columns {self.missing}"
        if self.available:
            message += f" (available: {self.available})"
        super().__init__(message)


class JoinMismatch(PipelineError):
    """Boundary names without a matching population record."""

    def __init__(self, names: Sequence[str]):
        self.names = list(names)
        preview = ", ".join(self.names[:10])
        if len(self.names) > 10:
            preview += f", ... ({len(self.names) - 10} more)"
        super().__init__(f"{len(self.names)} boundaries have no population record: {preview}")


class WriteError(PipelineError):
    """Output artifact could not be written."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")
