"""
Service category classification for billing lines.

Maps a free-text (often French/English mixed) line description onto a fixed
set of service categories. Rules are evaluated in order and the first match
wins, so the position of each rule in SERVICE_RULES is part of its meaning.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional


class ServiceCategory(str, Enum):
    AI_ML = "AI/ML"
    LICENSES = "Licenses"
    BACKUP = "Backup"
    SUPPORT = "Support"
    DATABASE = "Database"
    STORAGE = "Storage"
    COMPUTE = "Compute"
    NETWORK = "Network"
    OTHER = "Other"


def _contains_any(text: str, tokens: tuple[str, ...]) -> bool:
    return any(token in text for token in tokens)


@dataclass(frozen=True)
class ServiceRule:
    category: ServiceCategory
    tokens: tuple[str, ...]
    # Extra predicate OR-ed with the token check
    also: Optional[Callable[[str], bool]] = None

    def matches(self, text: str) -> bool:
        if _contains_any(text, self.tokens):
            return True
        return self.also is not None and self.also(text)


def _monthly_bare_metal_rental(text: str) -> bool:
    # ("rental for 1 month") AND ("scale" OR "advance")
    return "rental for 1 month" in text and ("scale" in text or "advance" in text)


SERVICE_RULES: tuple[ServiceRule, ...] = (
    # GPU instances would otherwise fall into Compute via "instance".
    ServiceRule(
        ServiceCategory.AI_ML,
        (
            "gpu", "l40s", "l4-", "a100", "v100", "t4", "h100",
            "ai ", " ml", "machine learning", "notebook", "training",
            "ai deploy", "ai training", "ai notebook",
        ),
    ),
    # "Windows Server ... license" must not reach Compute's "server".
    ServiceRule(ServiceCategory.LICENSES, ("license", "licence")),
    ServiceRule(ServiceCategory.BACKUP, ("veeam", "backup")),
    ServiceRule(
        ServiceCategory.SUPPORT,
        ("support", "management fee", "professional service"),
    ),
    # "Logs - Streams - Hot Storage" belongs here, not in Storage.
    ServiceRule(
        ServiceCategory.DATABASE,
        (
            "database", "postgresql", "mysql", "mongodb", "redis", "kafka",
            "opensearch", "cassandra", "mariadb", "m3db", "grafana",
            "logs data platform", "elasticsearch", "timeseries",
            "logs -", "streams -",
        ),
    ),
    # "Swift container" belongs here, not in Compute.
    ServiceRule(
        ServiceCategory.STORAGE,
        (
            "storage", "stockage", "bucket", "swift", "object", "archive",
            "snapshot", "disque", "volume", "disk", "s3", "cold archive",
            "high perf", "classic", "block storage", "additional disk",
            "datastore", "zpool",
        ),
    ),
    ServiceRule(
        ServiceCategory.COMPUTE,
        (
            "instance", "compute", "vm", "forfait mensuel",
            "consommation à l'heure", "kubernetes", "kube", "k8s",
            "managed kubernetes", "container", "registry", "worker node",
            "control plane", "serveur", "server", "vcpu", "ram ", "mémoire",
            # Private Cloud / vSphere hosts
            "host ", "host rental", "esxi", "vsphere", "vmware",
            "premier 384", "premier 768", "premier rental",
            # Bare metal ranges
            "scale-", "advance-", "infra-", "hg-", "eg-", "mg-",
        ),
        also=_monthly_bare_metal_rental,
    ),
    ServiceRule(
        ServiceCategory.NETWORK,
        (
            "network", "loadbalancer", "load balancer", "floating ip",
            "gateway", "bandwidth", "octavia", "private network", "vrack",
            "egress", "ingress", "traffic", "trafic", "ip failover",
            "additional ip", "public ip", "réseau", "outgoing",
            "ip v4 block", "ip block", "/27", "/28", "/29", "/30",
        ),
    ),
)


def _normalize(description: Any) -> str:
    if not description:
        return ""
    return str(description).lower()


def classify_service(description: Any) -> ServiceCategory:
    """Classify a line description. Total: unknown or empty input is Other."""
    text = _normalize(description)
    if not text:
        return ServiceCategory.OTHER
    for rule in SERVICE_RULES:
        if rule.matches(text):
            return rule.category
    return ServiceCategory.OTHER
