"""
Build the FHIR R4 ConceptMap for EMIS local codes to SNOMED CT.

The document holds a single group (EMIS local value set -> SNOMED CT) with one
source element per row record and one target per source element. Equivalence
is collapsed to two values: the literal tag "equivalent" maps to
`equivalent`, anything else maps to `relatedto`.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Any

from emis_concept_map.config import ConceptMapConfig
from emis_concept_map.errors import ConceptMapFormatError, MissingFieldError
from emis_concept_map.row_loader import RowRecord


class Equivalence(Enum):
    EQUIVALENT = "equivalent"
    RELATED_TO = "relatedto"


@dataclass
class TargetElement:
    code: str
    display: str
    equivalence: Equivalence
    comment: str = ""


@dataclass
class SourceElement:
    code: str
    display: str
    targets: List[TargetElement] = field(default_factory=list)


@dataclass
class Group:
    source: str
    source_version: str
    target: str
    elements: List[SourceElement] = field(default_factory=list)


@dataclass
class MappingDocument:
    id: str
    url: str
    version: str
    title: str
    name: str
    description: str
    status: str
    experimental: bool
    publisher: str
    source_uri: str
    target_uri: str
    groups: List[Group] = field(default_factory=list)


def classify_equivalence(tag: Optional[str], source_code: Optional[str] = None) -> Equivalence:
    """Exact, case-sensitive match on "equivalent"; every other tag is related-to."""
    if tag is None:
        raise MissingFieldError('equivalence', source_code)
    if tag == "equivalent":
        return Equivalence.EQUIVALENT
    return Equivalence.RELATED_TO


def build_concept_map(rows: Iterable[RowRecord], base_url: str, version: str,
                      config: Optional[ConceptMapConfig] = None) -> MappingDocument:
    """
    Assemble the ConceptMap from deduplicated row records

    Args:
        rows: Row records in output order
        base_url: Canonical URL prefix; the map id is appended to it
        version: Map version, also used as the group's source version
        config: Identity and coding system settings (defaults if omitted)

    Returns:
        MappingDocument with exactly one group
    """
    config = config or ConceptMapConfig()

    concept_map = MappingDocument(
        id=config.map_id,
        url=base_url + config.map_id,
        version=version,
        title=config.map_id,
        name=config.name,
        description=config.description,
        status=config.status,
        experimental=config.experimental,
        publisher=config.publisher,
        source_uri=config.source_value_set,
        target_uri=config.target_value_set
    )

    group = Group(
        source=config.source_system,
        source_version=version,
        target=config.target_system
    )
    concept_map.groups.append(group)

    for entry in rows:
        target = TargetElement(
            code=entry.target_code,
            display=entry.target_label,
            equivalence=classify_equivalence(entry.equivalence_tag, entry.source_code),
            comment=entry.comment
        )
        group.elements.append(SourceElement(
            code=entry.source_code,
            display=entry.source_label,
            targets=[target]
        ))

    return concept_map


def _prune(obj: Dict[str, Any]) -> Dict[str, Any]:
    # FHIR JSON omits empty primitives and empty arrays
    return {k: v for k, v in obj.items() if v not in (None, "", [])}


def concept_map_to_fhir(concept_map: MappingDocument) -> Dict[str, Any]:
    """Serialize to the FHIR R4 ConceptMap JSON structure."""
    groups = []
    for group in concept_map.groups:
        elements = []
        for element in group.elements:
            targets = [
                _prune({
                    "code": t.code,
                    "display": t.display,
                    "equivalence": t.equivalence.value,
                    "comment": t.comment
                })
                for t in element.targets
            ]
            elements.append(_prune({
                "code": element.code,
                "display": element.display,
                "target": targets
            }))
        groups.append(_prune({
            "source": group.source,
            "sourceVersion": group.source_version,
            "target": group.target,
            "element": elements
        }))

    return _prune({
        "resourceType": "ConceptMap",
        "id": concept_map.id,
        "url": concept_map.url,
        "version": concept_map.version,
        "name": concept_map.name,
        "title": concept_map.title,
        "status": concept_map.status,
        "experimental": concept_map.experimental,
        "publisher": concept_map.publisher,
        "description": concept_map.description,
        "sourceUri": concept_map.source_uri,
        "targetUri": concept_map.target_uri,
        "group": groups
    })


def concept_map_from_fhir(data: Dict[str, Any]) -> MappingDocument:
    """Parse a FHIR R4 ConceptMap JSON structure produced by concept_map_to_fhir."""
    if not isinstance(data, dict) or data.get("resourceType") != "ConceptMap":
        found = data.get("resourceType") if isinstance(data, dict) else type(data).__name__
        raise ConceptMapFormatError(f"Expected resourceType ConceptMap, got {found!r}")

    groups = []
    for g in data.get("group", []):
        elements = []
        for e in g.get("element", []):
            targets = []
            for t in e.get("target", []):
                if "equivalence" not in t:
                    raise MissingFieldError('equivalence', e.get("code"))
                try:
                    equivalence = Equivalence(t["equivalence"])
                except ValueError as exc:
                    raise ConceptMapFormatError(
                        f"Unknown equivalence {t['equivalence']!r} for source code {e.get('code')}"
                    ) from exc
                targets.append(TargetElement(
                    code=t.get("code", ""),
                    display=t.get("display", ""),
                    equivalence=equivalence,
                    comment=t.get("comment", "")
                ))
            elements.append(SourceElement(
                code=e.get("code", ""),
                display=e.get("display", ""),
                targets=targets
            ))
        groups.append(Group(
            source=g.get("source", ""),
            source_version=g.get("sourceVersion", ""),
            target=g.get("target", ""),
            elements=elements
        ))

    return MappingDocument(
        id=data.get("id", ""),
        url=data.get("url", ""),
        version=data.get("version", ""),
        title=data.get("title", ""),
        name=data.get("name", ""),
        description=data.get("description", ""),
        status=data.get("status", ""),
        experimental=bool(data.get("experimental", False)),
        publisher=data.get("publisher", ""),
        source_uri=data.get("sourceUri", ""),
        target_uri=data.get("targetUri", ""),
        groups=groups
    )
