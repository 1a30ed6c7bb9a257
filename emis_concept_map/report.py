"""Markdown summary report for a concept map run."""

import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Any

import pandas as pd

from emis_concept_map.map_builder import Equivalence, MappingDocument
from emis_concept_map.row_loader import RowRecord

ROW_COLUMNS = [
    'source_code', 'source_label', 'target_code', 'target_label',
    'equivalence_tag', 'comment', 'line_number'
]


def summarize_mapping(rows: List[RowRecord], concept_map: MappingDocument,
                      load_stats: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Collect run statistics for the report

    Args:
        rows: Deduplicated row records that were fed to the builder
        concept_map: The built document
        load_stats: RowLoader.stats from the load step

    Returns:
        Dictionary of counts; raw_tags keeps the input's own equivalence
        vocabulary, which the two-valued output discards
    """
    load_stats = load_stats or {}
    df = pd.DataFrame([asdict(r) for r in rows], columns=ROW_COLUMNS)

    targets = [t for g in concept_map.groups for e in g.elements for t in e.targets]
    equivalence_counts = pd.Series(
        [t.equivalence.value for t in targets], dtype='object'
    ).value_counts()

    raw_tags = df['equivalence_tag'].fillna('(missing)').replace('', '(empty)').value_counts()

    return {
        'rows_read': int(load_stats.get('rows_read', len(rows))),
        'distinct_codes': int(load_stats.get('distinct_codes', len(rows))),
        'duplicates_overwritten': int(load_stats.get('duplicates_overwritten', 0)),
        'malformed_skipped': int(load_stats.get('malformed_skipped', 0)),
        'groups': len(concept_map.groups),
        'source_elements': sum(len(g.elements) for g in concept_map.groups),
        'distinct_target_codes': int(df['target_code'].nunique()),
        'rows_without_target': int((df['target_code'].str.strip() == '').sum()),
        'equivalent': int(equivalence_counts.get(Equivalence.EQUIVALENT.value, 0)),
        'related_to': int(equivalence_counts.get(Equivalence.RELATED_TO.value, 0)),
        'raw_tags': {str(tag): int(count) for tag, count in raw_tags.items()},
    }


def generate_mapping_report(rows: List[RowRecord], concept_map: MappingDocument,
                            load_stats: Optional[Dict[str, Any]] = None,
                            output_dir=".") -> Path:
    """Write <id>_report.md next to the ConceptMap and return its path."""
    summary = summarize_mapping(rows, concept_map, load_stats)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    report_path = output_dir / f"{concept_map.id}_report.md"

    with open(report_path, 'w', encoding='utf-8') as f:
        f.write("# EMIS to SNOMED ConceptMap Report\n\n")
        f.write(f"**Date**: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"**ConceptMap**: {concept_map.id} (version {concept_map.version})\n")
        f.write(f"**Canonical URL**: {concept_map.url}\n\n")

        f.write("## Summary\n\n")
        f.write(f"- **Rows read**: {summary['rows_read']:,}\n")
        f.write(f"- **Distinct source codes**: {summary['distinct_codes']:,}\n")
        f.write(f"- **Duplicate rows overwritten**: {summary['duplicates_overwritten']:,}\n")
        if summary['malformed_skipped']:
            f.write(f"- **Malformed rows skipped**: {summary['malformed_skipped']:,}\n")
        f.write(f"- **Source elements written**: {summary['source_elements']:,}\n")
        f.write(f"- **Distinct target codes**: {summary['distinct_target_codes']:,}\n")
        f.write(f"- **Rows without a target code**: {summary['rows_without_target']:,}\n\n")

        f.write("## Equivalence\n\n")
        f.write("| Equivalence | Count |\n")
        f.write("|---|---|\n")
        f.write(f"| {Equivalence.EQUIVALENT.value} | {summary['equivalent']:,} |\n")
        f.write(f"| {Equivalence.RELATED_TO.value} | {summary['related_to']:,} |\n\n")

        f.write("## Input Equivalence Tags\n\n")
        f.write("Only the exact tag `equivalent` is kept as `equivalent`; "
                "every other tag below is written as `relatedto`.\n\n")
        f.write("| Tag | Count |\n")
        f.write("|---|---|\n")
        for tag, count in summary['raw_tags'].items():
            f.write(f"| {tag} | {count:,} |\n")

    logging.info(f"Report saved to: {report_path}")
    return report_path
