import logging

import pytest

from emis_concept_map.config import ConceptMapConfig

HEADER = "source_code,source_label,target_code,target_label,equivalence,comment\n"


@pytest.fixture
def quiet_config():
    return ConceptMapConfig(show_progress=False)


@pytest.fixture
def write_map(tmp_path):
    """Write a mapping CSV (header added) and return its path"""
    def _write(body, name="emis_map.csv", header=HEADER, encoding="utf-8"):
        path = tmp_path / name
        path.write_bytes((header + body).encode(encoding))
        return path
    return _write


@pytest.fixture
def restore_logging():
    """Undo logging.basicConfig(force=True) calls made by the CLI"""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
