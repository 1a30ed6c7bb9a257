import pytest

from emis_concept_map.config import ConceptMapConfig
from emis_concept_map.errors import ConceptMapFormatError, MissingFieldError
from emis_concept_map.map_builder import (
    Equivalence, build_concept_map, classify_equivalence,
    concept_map_from_fhir, concept_map_to_fhir
)
from emis_concept_map.row_loader import RowRecord


def make_row(source, target, tag="equivalent", comment="", label="Local", target_label="SCT"):
    return RowRecord(source, label, target, target_label, tag, comment)


def test_identity_uses_base_url_and_version():
    cm = build_concept_map([], "https://prototype/", "0.0.1")

    assert cm.id == "emis-snomed-experimental-map"
    assert cm.url == "https://prototype/emis-snomed-experimental-map"
    assert cm.version == "0.0.1"
    assert cm.title == cm.id
    assert cm.name == "EMIS local code to SNOMED"
    assert cm.status == "draft"
    assert cm.experimental is True
    assert cm.publisher == "OL"
    assert cm.source_uri == "http://prototype/emislocal/vs"
    assert cm.target_uri == "http://snomed.info/sct?fhir_vs=isa/138875005"


def test_single_group_with_coding_systems():
    cm = build_concept_map([make_row("E1", "S1")], "https://x/", "2.0")

    assert len(cm.groups) == 1
    group = cm.groups[0]
    assert group.source == "http://prototype/emislocal/vs"
    assert group.source_version == "2.0"
    assert group.target == "http://snomed.info/sct"


def test_equivalent_row():
    row = RowRecord("E001", "Local label", "S100", "SCT label", "equivalent", "")
    cm = build_concept_map([row], "https://prototype/", "0.0.1")

    element = cm.groups[0].elements[0]
    assert (element.code, element.display) == ("E001", "Local label")
    assert len(element.targets) == 1
    target = element.targets[0]
    assert target.code == "S100"
    assert target.display == "SCT label"
    assert target.equivalence is Equivalence.EQUIVALENT


def test_related_row_keeps_comment():
    row = RowRecord("E002", "Local2", "S200", "SCT2", "related", "note")
    cm = build_concept_map([row], "https://prototype/", "0.0.1")

    target = cm.groups[0].elements[0].targets[0]
    assert target.code == "S200"
    assert target.equivalence is Equivalence.RELATED_TO
    assert target.comment == "note"


@pytest.mark.parametrize("tag", ["Equivalent", "", "related-to", "equivalent ", "narrower", "EQUIVALENT"])
def test_anything_but_exact_equivalent_is_related_to(tag):
    assert classify_equivalence(tag) is Equivalence.RELATED_TO


def test_exact_equivalent():
    assert classify_equivalence("equivalent") is Equivalence.EQUIVALENT


def test_missing_equivalence_tag():
    with pytest.raises(MissingFieldError) as exc_info:
        build_concept_map([make_row("E9", "S9", tag=None)], "https://prototype/", "0.0.1")

    assert exc_info.value.field == "equivalence"
    assert exc_info.value.source_code == "E9"


def test_elements_follow_row_order_without_dedup():
    rows = [make_row("B", "1"), make_row("A", "2"), make_row("B", "3")]
    cm = build_concept_map(rows, "https://prototype/", "0.0.1")

    assert [e.code for e in cm.groups[0].elements] == ["B", "A", "B"]


def test_identity_injectable_through_config():
    config = ConceptMapConfig(map_id="test-map", publisher="Test",
                              target_system="http://example.org/sct")
    cm = build_concept_map([make_row("E1", "S1")], "https://t/", "1", config)

    assert cm.id == "test-map"
    assert cm.url == "https://t/test-map"
    assert cm.publisher == "Test"
    assert cm.groups[0].target == "http://example.org/sct"


def test_fhir_json_shape():
    rows = [make_row("E1", "S1", comment="c1"), make_row("E2", "S2", tag="related")]
    data = concept_map_to_fhir(build_concept_map(rows, "https://prototype/", "0.0.1"))

    assert data["resourceType"] == "ConceptMap"
    assert data["sourceUri"] == "http://prototype/emislocal/vs"
    assert data["targetUri"] == "http://snomed.info/sct?fhir_vs=isa/138875005"
    group = data["group"][0]
    assert group["sourceVersion"] == "0.0.1"
    assert group["element"][0] == {
        "code": "E1",
        "display": "Local",
        "target": [{"code": "S1", "display": "SCT", "equivalence": "equivalent", "comment": "c1"}]
    }
    # Empty comment is omitted
    assert group["element"][1]["target"][0] == {
        "code": "S2", "display": "SCT", "equivalence": "relatedto"
    }


def test_fhir_dict_parses_back():
    rows = [make_row("E1", "S1", comment="c"), make_row("E2", "S2", tag="other")]
    cm = build_concept_map(rows, "https://prototype/", "0.0.1")

    assert concept_map_from_fhir(concept_map_to_fhir(cm)) == cm


def test_from_fhir_rejects_other_resources():
    with pytest.raises(ConceptMapFormatError):
        concept_map_from_fhir({"resourceType": "ValueSet"})


def test_from_fhir_rejects_non_object():
    with pytest.raises(ConceptMapFormatError):
        concept_map_from_fhir(["ConceptMap"])


def test_from_fhir_rejects_unknown_equivalence():
    data = concept_map_to_fhir(build_concept_map([make_row("E1", "S1")], "https://prototype/", "0.0.1"))
    data["group"][0]["element"][0]["target"][0]["equivalence"] = "wider-ish"

    with pytest.raises(ConceptMapFormatError, match="wider-ish"):
        concept_map_from_fhir(data)
