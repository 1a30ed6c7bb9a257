"""
EMIS local code to SNOMED CT ConceptMap pipeline.

Modules:
1. row_loader: parse the mapping CSV into deduplicated row records
2. map_builder: assemble the FHIR ConceptMap document
3. writer: serialize the document to <id>.json
4. report: Markdown run report with mapping statistics
5. run_concept_map: command line entry point
"""

__version__ = "0.1.0"
