"""Persistence adapters for OpportunityIQ."""

from opportunity_iq.persistence.base import (
    PersistenceAdapter,
    PersistenceError,
    SaveStatus,
    empty_bundle,
)
from opportunity_iq.persistence.demo import (
    DEMO_USER_ID,
    DemoPersistenceAdapter,
    is_demo_user,
    load_demo_bundle,
)
from opportunity_iq.persistence.factory import create_persistence_adapter
from opportunity_iq.persistence.local import LocalPersistenceAdapter
from opportunity_iq.persistence.remote import RemotePersistenceAdapter

__all__ = [
    "DEMO_USER_ID",
    "DemoPersistenceAdapter",
    "LocalPersistenceAdapter",
    "PersistenceAdapter",
    "PersistenceError",
    "RemotePersistenceAdapter",
    "SaveStatus",
    "create_persistence_adapter",
    "empty_bundle",
    "is_demo_user",
    "load_demo_bundle",
]
