"""Errors raised by the concept map pipeline. All of them abort the run."""

from typing import Optional


class ConceptMapError(Exception):
    """Base class for every pipeline failure."""


class ConfigError(ConceptMapError):
    """Invalid or unreadable configuration."""


class FileAccessError(ConceptMapError):
    """Input path is missing or unreadable."""

    def __init__(self, path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Cannot read mapping file {self.path}: {reason}")


class CsvFormatError(ConceptMapError):
    """The file is not valid delimited text (bad quoting, bad encoding)."""

    def __init__(self, path, line_number: Optional[int], reason: str):
        self.path = str(path)
        self.line_number = line_number
        self.reason = reason
        where = f" at line {line_number}" if line_number else ""
        super().__init__(f"Malformed CSV in {self.path}{where}: {reason}")


class MalformedRowError(ConceptMapError):
    """A data row has fewer fields than the mapping layout requires."""

    def __init__(self, path, line_number: int, field_count: int, expected: int):
        self.path = str(path)
        self.line_number = line_number
        self.field_count = field_count
        self.expected = expected
        super().__init__(
            f"Line {line_number} of {self.path} has {field_count} field(s), "
            f"expected at least {expected}"
        )


class MissingFieldError(ConceptMapError):
    """A required field is absent on a row record."""

    def __init__(self, field: str, source_code: Optional[str] = None):
        self.field = field
        self.source_code = source_code
        code = f" for source code {source_code}" if source_code is not None else ""
        super().__init__(f"Missing required field '{field}'{code}")


class ConceptMapFormatError(ConceptMapError):
    """A ConceptMap JSON document cannot be parsed back into a MappingDocument."""
