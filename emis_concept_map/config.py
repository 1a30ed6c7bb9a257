"""
Run configuration for the concept map pipeline.

Defaults reproduce the fixed EMIS -> SNOMED map identity. A JSON config file
and command line arguments can override any field.
"""

import json
from dataclasses import dataclass, fields, replace
from typing import Optional

from emis_concept_map.errors import ConfigError

# Positional column layout of the mapping file
MAPPING_COLUMNS = [
    'source_code', 'source_label', 'target_code',
    'target_label', 'equivalence', 'comment'
]


@dataclass(frozen=True)
class ConceptMapConfig:
    # Run options
    input_path: Optional[str] = None
    base_url: str = "https://prototype/"
    version: str = "0.0.1"
    output_dir: str = "."
    delimiter: str = ","
    encoding: str = "utf-8"
    skip_lines: int = 1
    progress_interval: int = 1000
    show_progress: bool = True
    skip_malformed_rows: bool = False
    write_report: bool = True

    # Document identity
    map_id: str = "emis-snomed-experimental-map"
    name: str = "EMIS local code to SNOMED"
    description: str = "A FHIR ConceptMap for emis local codes to SNOMED"
    status: str = "draft"
    experimental: bool = True
    publisher: str = "OL"
    source_value_set: str = "http://prototype/emislocal/vs"
    target_value_set: str = "http://snomed.info/sct?fhir_vs=isa/138875005"

    # Group coding systems
    source_system: str = "http://prototype/emislocal/vs"
    target_system: str = "http://snomed.info/sct"

    @property
    def min_fields(self) -> int:
        return len(MAPPING_COLUMNS)


_FIELD_TYPES = {f.name: f.type for f in fields(ConceptMapConfig)}


def _check_type(name: str, value):
    expected = _FIELD_TYPES[name]
    if expected is bool:
        ok = isinstance(value, bool)
    elif expected is int:
        # bool is an int subclass but never a valid count
        ok = isinstance(value, int) and not isinstance(value, bool)
    elif expected is str:
        ok = isinstance(value, str)
    else:
        # Optional[str]
        ok = value is None or isinstance(value, str)
    if not ok:
        raise ConfigError(f"Config option {name} has invalid value {value!r}")


def load_config(path=None, **overrides) -> ConceptMapConfig:
    """
    Build a configuration from defaults, an optional JSON file and overrides

    Args:
        path: Optional path to a JSON object with config field names as keys
        **overrides: Field values that win over the file; None values are ignored

    Returns:
        ConceptMapConfig
    """
    values = {}
    if path:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                values = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to load config file {path}: {e}") from e
        if not isinstance(values, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object")

    values.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(ConceptMapConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown config option(s): {', '.join(unknown)}")

    for name, value in values.items():
        _check_type(name, value)

    config = replace(ConceptMapConfig(), **values)
    if len(config.delimiter) != 1:
        raise ConfigError(f"Delimiter must be a single character, got {config.delimiter!r}")
    if config.progress_interval < 1:
        raise ConfigError("progress_interval must be at least 1")
    if config.skip_lines < 0:
        raise ConfigError("skip_lines cannot be negative")
    return config
