"""Write the ConceptMap to <id>.json and read it back."""

import os
import json
import logging
import tempfile
from pathlib import Path

from emis_concept_map.errors import ConceptMapFormatError, FileAccessError
from emis_concept_map.map_builder import (
    MappingDocument, concept_map_from_fhir, concept_map_to_fhir
)


def _default_file_mode() -> int:
    # mkstemp creates 0600 files; published output gets the usual 0666 & ~umask
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def write_concept_map(concept_map: MappingDocument, output_dir=".") -> Path:
    """
    Serialize the ConceptMap as pretty-printed JSON

    The JSON is written to a temporary file in the output directory and
    renamed into place, so a failure never leaves a partial <id>.json behind.

    Args:
        concept_map: Document to write
        output_dir: Directory for <id>.json (created if missing)

    Returns:
        Path of the written file
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_file = output_dir / f"{concept_map.id}.json"

    fd, tmp_name = tempfile.mkstemp(prefix=f".{concept_map.id}.", suffix=".tmp", dir=output_dir)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(concept_map_to_fhir(concept_map), f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.chmod(tmp_name, _default_file_mode())
        os.replace(tmp_name, output_file)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logging.info(f"ConceptMap saved to: {output_file}")
    return output_file


def read_concept_map(path) -> MappingDocument:
    """Load a ConceptMap JSON file written by write_concept_map."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise FileAccessError(path, e.strerror or str(e)) from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ConceptMapFormatError(f"Invalid ConceptMap JSON in {path}: {e}") from e
    return concept_map_from_fhir(data)
