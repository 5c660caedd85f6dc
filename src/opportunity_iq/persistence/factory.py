"""Resolve the persistence adapter once, at startup."""

import httpx
import structlog

from opportunity_iq.config import Settings, get_settings, resolve_supabase_config
from opportunity_iq.persistence.base import PersistenceAdapter
from opportunity_iq.persistence.demo import DemoPersistenceAdapter
from opportunity_iq.persistence.local import LocalPersistenceAdapter
from opportunity_iq.persistence.remote import RemotePersistenceAdapter

logger = structlog.get_logger(__name__)


def create_persistence_adapter(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PersistenceAdapter:
    """Remote when Supabase is configured, local otherwise; demo-aware either way."""
    settings = settings or get_settings()
    supabase = resolve_supabase_config(settings)

    inner: PersistenceAdapter
    if supabase:
        inner = RemotePersistenceAdapter(supabase, transport=transport)
    else:
        inner = LocalPersistenceAdapter(
            path=settings.local_storage_path,
            storage_key=settings.storage_key,
        )

    logger.info("persistence_selected", backend=inner.name)
    return DemoPersistenceAdapter(inner)
