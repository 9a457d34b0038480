"""Error kinds raised by the validation engine.

Three families matter to callers:

- ParseError / InvalidDataError: the data item could not be turned into triples.
  Recoverable per item; the validator turns it into a synthetic failure.
- InvalidShapeSchemaError: the shape asset is malformed. Fatal at load time.
- UnknownViolationKindError: the constraint solver produced a violation the
  report normalizer does not understand. An internal defect, never swallowed.
"""

from __future__ import annotations


class SDVError(Exception):
    """Base class for all engine errors."""


class ParseError(SDVError):
    """A data item could not be parsed in a given format."""

    def __init__(
        self,
        message: str,
        *,
        line: int | None = None,
        column: int | None = None,
        format: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column
        self.format = format

    def __str__(self) -> str:
        if self.line is None:
            return self.message
        return f"{self.message} (line {self.line}, column {self.column})"


class InvalidDataError(ParseError):
    """No candidate format produced a non-empty triple store."""


class InvalidShapeSchemaError(SDVError):
    """The shape schema asset is malformed."""

    def __init__(self, message: str, *, line: int | None = None) -> None:
        super().__init__(message if line is None else f"{message} (line {line})")
        self.line = line


class UnknownViolationKindError(SDVError):
    """The normalizer received a violation object of an unrecognised kind."""

    def __init__(self, violation: object) -> None:
        super().__init__(f"Unknown violation kind {type(violation).__name__}")
        self.violation = violation
