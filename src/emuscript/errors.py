from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Iterable, Iterator

class ErrorKind(str, Enum):
    # structural
    MISSING_SECTION = "missingSection"
    UNDEFINED_SECTION = "undefinedSection"
    INVALID_SECTION_NAME = "invalidSectionName"
    UNEXPECTED_TEXT_OUTSIDE_SECTION = "unexpectedTextOutsideSection"
    INVALID_KEY = "invalidKey"
    # semantic
    UNEXPECTED_KEYWORD = "unexpectedKeyword"
    UNSUPPORTED_TIME_SIGNATURE = "unsupportedTimeSignature"
    INVALID_TRANSPOSITION = "invalidTransposition"
    CC_SYNTAX_ERROR = "ccSyntaxError"
    # notation
    SYNTAX_ERROR = "syntaxError"
    INVALID_NOTE = "invalidNote"
    NOTE_TOO_LOW = "noteTooLow"
    NOTE_TOO_HIGH = "noteTooHigh"
    INVALID_DRUM = "invalidDrum"
    INVALID_CHORD = "invalidChord"
    # environment (external collaborators only)
    FILE_NOT_FOUND = "fileNotFound"
    INVALID_ENDPOINT = "invalidEndpoint"
    DEVICE_ERROR = "deviceError"

class Severity(str, Enum):
    ERROR = "error"       # blocks playback
    WARNING = "warning"

BLOCKING = {
    ErrorKind.MISSING_SECTION,
    ErrorKind.UNDEFINED_SECTION,
    ErrorKind.FILE_NOT_FOUND,
    ErrorKind.INVALID_ENDPOINT,
    ErrorKind.DEVICE_ERROR,
}

MESSAGES = {
    ErrorKind.FILE_NOT_FOUND: "Cannot open file: '{info}'",
    ErrorKind.MISSING_SECTION: "The section '{info}' is mandatory and cannot be found",
    ErrorKind.UNDEFINED_SECTION: "The section '{info}' cannot be found",
    ErrorKind.INVALID_ENDPOINT: "Failed to open the MIDI endpoint: '{info}'",
    ErrorKind.DEVICE_ERROR: "MIDI device error: '{info}'",
    ErrorKind.UNEXPECTED_KEYWORD: "Unexpected keyword: '{info}'",
    ErrorKind.UNSUPPORTED_TIME_SIGNATURE: "Unsupported time signature: '{info}'",
    ErrorKind.INVALID_TRANSPOSITION: "Unsupported transposition: '{info}'",
    ErrorKind.INVALID_SECTION_NAME: "The section name '{info}' has an invalid syntax",
    ErrorKind.UNEXPECTED_TEXT_OUTSIDE_SECTION: "Unexpected text outside of a section: '{info}'",
    ErrorKind.INVALID_KEY: "The key name '{info}' has an invalid syntax",
    ErrorKind.INVALID_NOTE: "Invalid note: '{info}'",
    ErrorKind.NOTE_TOO_HIGH: "Note is too high: '{info}'",
    ErrorKind.NOTE_TOO_LOW: "Note is too low: '{info}'",
    ErrorKind.INVALID_DRUM: "Invalid drum note: '{info}'",
    ErrorKind.INVALID_CHORD: "Invalid chord: '{info}'",
    ErrorKind.SYNTAX_ERROR: "Syntax error at: '{info}'",
    ErrorKind.CC_SYNTAX_ERROR: "Expected a CC name=number pair",
}

@dataclass(frozen=True)
class Diagnostic:
    kind: ErrorKind
    info: str = ""
    line_number: int = 0   # 0 = unknown

    @property
    def severity(self) -> Severity:
        return Severity.ERROR if self.kind in BLOCKING else Severity.WARNING

    def is_blocking(self) -> bool:
        return self.severity is Severity.ERROR

    def message(self) -> str:
        return MESSAGES.get(self.kind, "Unexpected error").format(info=self.info)

    def message_and_line(self) -> str:
        msg = self.message()
        if self.line_number > 0:
            msg += f" (Error at line {self.line_number})"
        return msg

@dataclass
class Diagnostics:
    """Accumulates diagnostics across all compile stages (never aborts)."""
    items: List[Diagnostic] = field(default_factory=list)

    def add(self, kind: ErrorKind, info: str = "", line_number: int = 0) -> Diagnostic:
        d = Diagnostic(kind, info, line_number)
        self.items.append(d)
        return d

    def extend(self, other: Iterable[Diagnostic]):
        self.items.extend(other)

    def has_blocking(self) -> bool:
        return any(d.is_blocking() for d in self.items)

    def kinds(self) -> List[ErrorKind]:
        return [d.kind for d in self.items]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

class ScriptLoadError(Exception):
    """Input could not be read as UTF-8 text (outermost load boundary only)."""
    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path
