"""Resource type inference from a billing line's domain identifier."""

import re
from enum import Enum
from typing import Any, Optional


class ResourceType(str, Enum):
    CLOUD_PROJECT = "cloud_project"
    DEDICATED_SERVER = "dedicated_server"
    VPS = "vps"
    STORAGE = "storage"
    LOAD_BALANCER = "load_balancer"
    DOMAIN = "domain"
    IP_SERVICE = "ip_service"
    PRIVATE_CLOUD = "private_cloud"
    PRIVATE_CLOUD_HOST = "private_cloud_host"
    PRIVATE_CLOUD_DATASTORE = "private_cloud_datastore"
    TELECOM = "telecom"
    WEB_CLOUD = "web_cloud"
    LICENSE = "license"
    BACKUP = "backup"
    TELEPHONY = "telephony"
    SUPPORT = "support"
    OTHER = "other"


# Anchored rules end with \Z so a trailing newline never matches.
_NS_HOST = re.compile(r"^ns\d+")

# Order matters: first match wins, most specific shapes first.
_PATTERNS: list[tuple[re.Pattern[str], ResourceType]] = [
    # Private Cloud sub-resources (pcc-<id>/<path>)
    (re.compile(r"^pcc-[^/]+/managementfee\Z"), ResourceType.PRIVATE_CLOUD),
    (re.compile(r"^pcc-[^/]+/host/\d+\Z"), ResourceType.PRIVATE_CLOUD_HOST),
    (re.compile(r"^pcc-[^/]+/\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\Z"), ResourceType.PRIVATE_CLOUD_HOST),
    (re.compile(r"^pcc-[^/]+/zpool/\d+\Z"), ResourceType.PRIVATE_CLOUD_DATASTORE),
    (re.compile(r"^pcc-[^/]+/ssd-\d+\Z"), ResourceType.PRIVATE_CLOUD_DATASTORE),
    (re.compile(r"^pcc-[^/]+/pcc-\d+\Z"), ResourceType.PRIVATE_CLOUD_DATASTORE),
    (re.compile(r"^pcc-"), ResourceType.PRIVATE_CLOUD),
    (re.compile(r"^\*\d{3,}"), ResourceType.PRIVATE_CLOUD),
    (re.compile(r"@pcc\.pcc-"), ResourceType.PRIVATE_CLOUD),
    # Prefixed service names
    (re.compile(r"^sms-"), ResourceType.TELECOM),
    (re.compile(r"^vm-\d+\Z"), ResourceType.BACKUP),
    (re.compile(r"^ldp-"), ResourceType.STORAGE),
    (re.compile(r"^premium\.support\."), ResourceType.SUPPORT),
    # Windows license tokens are dashed UUIDs; must stay ahead of the 32-hex rule.
    (
        re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\Z", re.IGNORECASE),
        ResourceType.LICENSE,
    ),
    # IP blocks and bare IPv4
    (re.compile(r"^ip-\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}/\d{1,2}\Z"), ResourceType.IP_SERVICE),
    (re.compile(r"^(\d{1,3}\.){3}\d{1,3}\Z"), ResourceType.IP_SERVICE),
    # Dedicated servers
    (re.compile(r"^ns\d+\.ip-[\d-]+\.eu"), ResourceType.DEDICATED_SERVER),
    (re.compile(r"^ns\d+\.ovh\.net"), ResourceType.DEDICATED_SERVER),
    (re.compile(r"^(ks|rt|sd|hg|eg|mg)\d+"), ResourceType.DEDICATED_SERVER),
    (_NS_HOST, ResourceType.DEDICATED_SERVER),
    (re.compile(r"^vps(-|\d)"), ResourceType.VPS),
    (re.compile(r"^lb-"), ResourceType.LOAD_BALANCER),
    (re.compile(r"^loadbalancer-"), ResourceType.LOAD_BALANCER),
    (re.compile(r"^storage-"), ResourceType.STORAGE),
    (re.compile(r"^zpool-"), ResourceType.STORAGE),
    # Suffix rules come after every prefix rule above.
    (re.compile(r"\.ovh\Z"), ResourceType.WEB_CLOUD),
]

_PUBLIC_TLD = re.compile(r"\.(fr|com|org|net|io|eu|cloud|tech|dev|info|pro)\Z")
_TELEPHONY = re.compile(r"^\d{10,}\Z")
_CLOUD_PROJECT = re.compile(r"^[0-9a-f]{32}\Z", re.IGNORECASE)


def _match_tail(domain: str) -> Optional[ResourceType]:
    if _PUBLIC_TLD.search(domain) and not _NS_HOST.search(domain):
        return ResourceType.DOMAIN
    if _TELEPHONY.search(domain):
        return ResourceType.TELEPHONY
    # Only reached for ids that project membership did not already claim.
    if _CLOUD_PROJECT.search(domain):
        return ResourceType.CLOUD_PROJECT
    return None


def classify_resource_type(domain: Any) -> ResourceType:
    """Infer the resource type of a domain identifier. Total: falls back to other."""
    if not domain:
        return ResourceType.OTHER
    text = str(domain)
    for pattern, resource_type in _PATTERNS:
        if pattern.search(text):
            return resource_type
    return _match_tail(text) or ResourceType.OTHER
