"""
Error types for the x64 toy-language compiler.

Every stage raises a subclass of CompilationError so callers can handle
the whole pipeline with a single except clause, while the CLI can still
report which stage failed.
"""

from __future__ import annotations
from typing import Optional


class CompilationError(Exception):
    """A fatal compilation error with an optional source line number."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.message = message
        self.line = line
        super().__init__(message)

    def add_line_num(self, line: int) -> CompilationError:
        """Attach a line number unless one was recorded at the failure site."""
        if self.line is None:
            self.line = line
        return self

    def __str__(self) -> str:
        if self.line is not None:
            return f"Compilation Error: {self.message} on line {self.line}"
        return f"Compilation Error: {self.message}"


class LexerError(CompilationError):
    pass


class ParseError(CompilationError):
    pass


class CodeGenError(CompilationError):
    pass
