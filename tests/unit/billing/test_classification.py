from billsight.modules.billing.domain.classification import (
    ClassificationContext,
    LineClassification,
    classify_line,
    resolve_resource_type,
)
from billsight.modules.billing.domain.resource_classifier import ResourceType
from billsight.modules.billing.domain.service_classifier import ServiceCategory

PROJECT_ID = "0123456789abcdef0123456789abcdef"


def test_known_project_links_line_and_forces_cloud_project():
    context = ClassificationContext.build(project_ids=[PROJECT_ID])

    result = classify_line(PROJECT_ID, "Instance b2-7", context)

    assert result == LineClassification(
        project_id=PROJECT_ID,
        service_type=ServiceCategory.COMPUTE,
        resource_type=ResourceType.CLOUD_PROJECT,
    )


def test_project_membership_beats_inventory_override():
    context = ClassificationContext.build(
        project_ids=[PROJECT_ID],
        inventory_map={PROJECT_ID: "dedicated_server"},
    )

    assert resolve_resource_type(PROJECT_ID, context) == (PROJECT_ID, ResourceType.CLOUD_PROJECT)


def test_inventory_override_beats_domain_pattern():
    # The name looks like a web cloud service, inventory says VPS.
    context = ClassificationContext.build(inventory_map={"shop.ovh": "vps"})

    result = classify_line("shop.ovh", "VPS Comfort", context)

    assert result.project_id is None
    assert result.resource_type == ResourceType.VPS


def test_unknown_domain_falls_back_to_pattern_inference():
    result = classify_line("ns123456.ovh.net", "Advance-1 rental", ClassificationContext())

    assert result.project_id is None
    assert result.service_type == ServiceCategory.COMPUTE
    assert result.resource_type == ResourceType.DEDICATED_SERVER


def test_hex_id_that_is_not_a_known_project_is_not_linked():
    result = classify_line(PROJECT_ID, "Instance b2-7")

    assert result.project_id is None
    assert result.resource_type == ResourceType.CLOUD_PROJECT


def test_missing_domain_and_description_are_total():
    result = classify_line(None, None)

    assert result.project_id is None
    assert result.service_type == ServiceCategory.OTHER
    assert result.resource_type == ResourceType.OTHER


def test_invalid_inventory_types_are_dropped():
    context = ClassificationContext.build(
        inventory_map={"ks1234": "not-a-type", "vps-1": "vps"}
    )

    assert "ks1234" not in context.inventory_types
    assert context.inventory_types["vps-1"] == ResourceType.VPS
    # Falls back to the pattern rule
    assert classify_line("ks1234", "", context).resource_type == ResourceType.DEDICATED_SERVER


def test_context_is_a_read_only_snapshot():
    source = {"vps-1": "vps"}
    context = ClassificationContext.build(inventory_map=source)
    source["vps-1"] = "storage"

    assert context.inventory_types["vps-1"] == ResourceType.VPS
    assert isinstance(context.project_ids, frozenset)


def test_same_line_classifies_identically():
    context = ClassificationContext.build(project_ids=[PROJECT_ID])
    first = classify_line(PROJECT_ID, "Object Storage", context)
    second = classify_line(PROJECT_ID, "Object Storage", context)

    assert first == second
