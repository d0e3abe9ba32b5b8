from .domain_store import DomainStore
from .models import (
    DOSSIER_TYPES,
    MANDATE_RELATION,
    Dossier,
    GuardianshipRequest,
    Organization,
    Relation,
    StoreSnapshot,
)

__all__ = [
    "DOSSIER_TYPES",
    "MANDATE_RELATION",
    "DomainStore",
    "Dossier",
    "GuardianshipRequest",
    "Organization",
    "Relation",
    "StoreSnapshot",
]
