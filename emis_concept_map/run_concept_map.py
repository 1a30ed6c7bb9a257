#!/usr/bin/env python
"""
EMIS ConceptMap Runner - convert the EMIS local map CSV into a FHIR ConceptMap

Steps:
1. Load and deduplicate the mapping rows
2. Build the ConceptMap (single EMIS -> SNOMED group)
3. Write the run report, then publish <id>.json
"""

import sys
import time
import logging
import argparse
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from emis_concept_map.config import ConceptMapConfig, load_config
from emis_concept_map.errors import ConceptMapError, ConfigError
from emis_concept_map.map_builder import build_concept_map
from emis_concept_map.report import generate_mapping_report
from emis_concept_map.row_loader import RowLoader
from emis_concept_map.writer import write_concept_map


def setup_logging(log_file: Optional[str] = None, verbose: bool = False):
    """Configure root logging to the console and optionally a log file"""
    handlers = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',  # No milliseconds
        handlers=handlers,
        force=True
    )


def run(config: ConceptMapConfig) -> Path:
    """
    Execute the full pipeline

    Args:
        config: Run configuration; input_path must be set

    Returns:
        Path of the written ConceptMap JSON
    """
    if not config.input_path:
        raise ConfigError("No input file given (use --input or input_path in the config file)")

    start_time = time.time()

    print("\n" + "="*70)
    print("EMIS TO SNOMED CONCEPTMAP")
    print("="*70)
    print(f"Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"\nConfiguration:")
    print(f"  Input file: {config.input_path}")
    print(f"  Output directory: {config.output_dir}")
    print(f"  Base URL: {config.base_url}")
    print(f"  Version: {config.version}")
    print(f"  Skip malformed rows: {'ENABLED' if config.skip_malformed_rows else 'DISABLED'}")
    print("="*70 + "\n")

    # Step 1: Load rows
    loader = RowLoader(config)
    rows = loader.load(config.input_path)

    # Step 2: Build the ConceptMap
    build_start = time.time()
    concept_map = build_concept_map(rows, config.base_url, config.version, config)
    build_time = time.time() - build_start
    logging.info(f"Built ConceptMap {concept_map.id} with "
                 f"{len(concept_map.groups[0].elements):,} source elements")

    # Step 3: Write outputs
    write_start = time.time()
    # Report goes first so a failed report never leaves a published <id>.json
    if config.write_report:
        generate_mapping_report(rows, concept_map, loader.stats, config.output_dir)
    output_file = write_concept_map(concept_map, config.output_dir)
    write_time = time.time() - write_start

    total_time = time.time() - start_time

    print("\n" + "="*70)
    print("PROCESSING COMPLETED SUCCESSFULLY")
    print(f"End time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Total execution time: {total_time:.2f} seconds")
    print(f"\nConceptMap saved to: {output_file}")
    print("="*70)

    print(f"\nPerformance breakdown:")
    print(f"  Loading:   {loader.stats['load_time']:.2f}s")
    print(f"  Building:  {build_time:.2f}s")
    print(f"  Writing:   {write_time:.2f}s")

    return output_file


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Convert the EMIS local code map CSV into a FHIR ConceptMap',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Convert a map file with default URL and version
  python -m emis_concept_map --input data/EMIS_LOCAL_MAP.csv

  # Publish under a different canonical URL and version
  python -m emis_concept_map --input data/EMIS_LOCAL_MAP.csv \\
      --base-url https://terminology.example.org/ --map-version 0.0.2
        """
    )
    parser.add_argument('--input', dest='input_path',
                        help='Path to the EMIS local map CSV')
    parser.add_argument('--base-url',
                        help='Canonical URL prefix (default: https://prototype/)')
    parser.add_argument('--map-version', dest='version',
                        help='ConceptMap version (default: 0.0.1)')
    parser.add_argument('--output-dir',
                        help='Directory for <id>.json and the report (default: current directory)')
    parser.add_argument('--config', type=str,
                        help='Path to configuration JSON file')
    parser.add_argument('--skip-malformed-rows', action='store_true',
                        help='Log and skip rows with too few fields instead of aborting')
    parser.add_argument('--no-progress', action='store_true',
                        help='Disable the progress bar')
    parser.add_argument('--no-report', action='store_true',
                        help='Do not write the Markdown report')
    parser.add_argument('--log-file', type=str,
                        help='Also write log messages to this file')
    parser.add_argument('--verbose', action='store_true',
                        help='Show debug messages (e.g. each overwritten duplicate)')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point; returns the process exit status"""
    args = parse_args(argv)
    setup_logging(args.log_file, args.verbose)

    try:
        config = load_config(
            args.config,
            input_path=args.input_path,
            base_url=args.base_url,
            version=args.version,
            output_dir=args.output_dir,
            # Flags only override the file when set
            skip_malformed_rows=True if args.skip_malformed_rows else None,
            show_progress=False if args.no_progress else None,
            write_report=False if args.no_report else None
        )
        run(config)
    except KeyboardInterrupt:
        logging.info("\nRun interrupted by user")
        return 1
    except ConceptMapError as e:
        logging.error(f"ConceptMap generation failed: {e}")
        return 1
    except OSError as e:
        logging.error(f"Cannot write output: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
