"""Load the EMIS local map CSV into row records, deduplicated by source code."""

import csv
import sys
import codecs
import time
import logging
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from tqdm import tqdm

from emis_concept_map.config import ConceptMapConfig
from emis_concept_map.errors import (
    ConfigError, CsvFormatError, FileAccessError, MalformedRowError
)

# Long free-text comments can exceed the default csv field size limit
if platform.system() == 'Windows':
    # Windows: C long is 32-bit even on 64-bit systems
    max_int = 2147483647
    while True:
        try:
            csv.field_size_limit(max_int)
            break
        except OverflowError:
            max_int = int(max_int / 10)
else:
    csv.field_size_limit(sys.maxsize)


@dataclass(frozen=True)
class RowRecord:
    source_code: str
    source_label: str
    target_code: str
    target_label: str
    equivalence_tag: Optional[str]
    comment: str
    line_number: int = 0


class RowLoader:
    """
    Parses a mapping CSV into RowRecords

    Rows are keyed by source code; a later row for the same code replaces
    the earlier one but the code keeps the position of its first appearance.
    """

    def __init__(self, config: Optional[ConceptMapConfig] = None):
        self.config = config or ConceptMapConfig()
        self.stats = {
            'rows_read': 0,
            'distinct_codes': 0,
            'duplicates_overwritten': 0,
            'malformed_skipped': 0,
            'load_time': 0.0
        }
        self.skipped_lines: List[int] = []

    def load(self, path) -> List[RowRecord]:
        """
        Load and deduplicate the mapping rows

        Args:
            path: Path to the mapping CSV

        Returns:
            List of RowRecords, one per distinct source code
        """
        path = Path(path)
        start_time = time.time()
        logging.info(f"Process EMIS file {path}")

        try:
            decoder = codecs.getincrementaldecoder(self.config.encoding)()
        except LookupError as e:
            raise ConfigError(f"Unknown encoding: {self.config.encoding}") from e

        try:
            f = open(path, 'rb')
        except OSError as e:
            raise FileAccessError(path, e.strerror or str(e)) from e

        all_map_entries: Dict[str, RowRecord] = {}
        with f:
            lines = self._decode_lines(f, decoder, path)
            reader = csv.reader(lines, delimiter=self.config.delimiter, strict=True)
            self._skip_header(reader, path)

            with tqdm(desc=f"Loading {path.name}", unit=" rows",
                      disable=not self.config.show_progress) as pbar:
                while True:
                    line_number = reader.line_num + 1
                    record = self._next_record(reader, path)
                    if record is None:
                        break
                    if not record:
                        # Blank line
                        continue

                    entry = self._to_row_record(record, line_number, path)
                    if entry is None:
                        continue

                    if entry.source_code in all_map_entries:
                        self.stats['duplicates_overwritten'] += 1
                        logging.debug(f"Source code {entry.source_code} at line {line_number} "
                                      f"replaces line {all_map_entries[entry.source_code].line_number}")
                    all_map_entries[entry.source_code] = entry

                    self.stats['rows_read'] += 1
                    pbar.update(1)
                    if self.stats['rows_read'] % self.config.progress_interval == 0:
                        logging.info(f"Progress {self.stats['rows_read']:,} rows")

        self.stats['distinct_codes'] = len(all_map_entries)
        self.stats['load_time'] = time.time() - start_time
        logging.info(f"Total mapped codes - {len(all_map_entries):,}")
        if self.stats['duplicates_overwritten']:
            logging.info(f"Duplicate source codes overwritten: {self.stats['duplicates_overwritten']:,}")

        return list(all_map_entries.values())

    def _skip_header(self, reader, path):
        for _ in range(self.config.skip_lines):
            if self._next_record(reader, path) is None:
                break

    def _next_record(self, reader, path) -> Optional[List[str]]:
        try:
            return next(reader)
        except StopIteration:
            return None
        except csv.Error as e:
            raise CsvFormatError(path, reader.line_num, str(e)) from e

    def _decode_lines(self, f, decoder, path):
        """Decode one physical line at a time so bad bytes are reported on their own line"""
        line_number = 0
        for raw in f:
            line_number += 1
            try:
                text = decoder.decode(raw)
            except UnicodeDecodeError as e:
                raise CsvFormatError(path, line_number,
                                     f"invalid {self.config.encoding} data: {e.reason}") from e
            if text:
                yield text
        try:
            tail = decoder.decode(b'', final=True)
        except UnicodeDecodeError as e:
            raise CsvFormatError(path, line_number,
                                 f"truncated {self.config.encoding} data: {e.reason}") from e
        if tail:
            yield tail

    def _to_row_record(self, record: List[str], line_number: int, path) -> Optional[RowRecord]:
        if len(record) < self.config.min_fields:
            if not self.config.skip_malformed_rows:
                raise MalformedRowError(path, line_number, len(record), self.config.min_fields)
            logging.warning(f"Skipping line {line_number}: {len(record)} field(s), "
                            f"expected {self.config.min_fields}")
            self.stats['malformed_skipped'] += 1
            self.skipped_lines.append(line_number)
            return None

        return RowRecord(
            source_code=record[0],
            source_label=record[1],
            target_code=record[2],
            target_label=record[3],
            equivalence_tag=record[4],
            comment=record[5],
            line_number=line_number
        )


def load_rows(path, config: Optional[ConceptMapConfig] = None) -> List[RowRecord]:
    """Load the mapping file at `path` and return one RowRecord per source code."""
    return RowLoader(config).load(path)
