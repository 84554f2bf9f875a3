"""
Billing line classification.

Combines the service and resource-type classifiers with the account's
project directory and inventory. Resource type precedence:

1. domain is a known cloud project id  -> cloud_project (and project_id = domain)
2. domain is a known inventory resource -> the inventory type
3. otherwise                            -> domain pattern inference

The context is a read-only snapshot taken once per import run, so the same
line always yields the same classification within (and across) runs that
share a snapshot.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

import structlog

from billsight.modules.billing.domain.resource_classifier import (
    ResourceType,
    classify_resource_type,
)
from billsight.modules.billing.domain.service_classifier import (
    ServiceCategory,
    classify_service,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class ClassificationContext:
    project_ids: frozenset[str] = frozenset()
    inventory_types: Mapping[str, ResourceType] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def build(
        cls,
        project_ids: Optional[Iterable[str]] = None,
        inventory_map: Optional[Mapping[str, Any]] = None,
    ) -> "ClassificationContext":
        """Snapshot the project set and inventory map. Invalid inventory types are dropped."""
        inventory: dict[str, ResourceType] = {}
        for domain, raw_type in (inventory_map or {}).items():
            try:
                inventory[domain] = ResourceType(raw_type)
            except ValueError:
                logger.warning(
                    "inventory_resource_type_ignored", domain=domain, resource_type=str(raw_type)
                )
        return cls(
            project_ids=frozenset(project_ids or ()),
            inventory_types=MappingProxyType(inventory),
        )


@dataclass(frozen=True)
class LineClassification:
    project_id: Optional[str]
    service_type: ServiceCategory
    resource_type: ResourceType


def resolve_resource_type(
    domain: Optional[str], context: ClassificationContext
) -> tuple[Optional[str], ResourceType]:
    """Return (project_id, resource_type) for a domain under the given context."""
    if domain and domain in context.project_ids:
        return domain, ResourceType.CLOUD_PROJECT
    if domain and domain in context.inventory_types:
        return None, context.inventory_types[domain]
    return None, classify_resource_type(domain)


def classify_line(
    domain: Optional[str],
    description: Optional[str],
    context: Optional[ClassificationContext] = None,
) -> LineClassification:
    ctx = context or ClassificationContext()
    project_id, resource_type = resolve_resource_type(domain, ctx)
    return LineClassification(
        project_id=project_id,
        service_type=classify_service(description),
        resource_type=resource_type,
    )
