"""Demo mode: a fixed bundle for the demo user, with writes skipped."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import structlog
import yaml  # type: ignore[import-untyped]

from opportunity_iq.models import (
    AssetItem,
    ContextAnalysisResult,
    DelegationItem,
    FinancialProfile,
    LifeContext,
    MonthlyNote,
    UserDataBundle,
    YearlyCompassData,
)
from opportunity_iq.persistence.base import PersistenceAdapter, SaveStatus

logger = structlog.get_logger(__name__)

DEMO_USER_ID = "demo_user"
DEMO_BUNDLE_PATH = Path(__file__).resolve().parent / "data" / "demo_bundle.yaml"


def is_demo_user(user_id: str) -> bool:
    return user_id == DEMO_USER_ID


@lru_cache
def _load_demo_raw() -> dict[str, Any]:
    data = yaml.safe_load(DEMO_BUNDLE_PATH.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{DEMO_BUNDLE_PATH.name}: expected a mapping")
    return data


def load_demo_bundle() -> UserDataBundle:
    """A fresh copy of the demonstration bundle."""
    return UserDataBundle.model_validate(_load_demo_raw())


class DemoPersistenceAdapter(PersistenceAdapter):
    """Wraps the real adapter; the demo user never reaches it."""

    def __init__(self, inner: PersistenceAdapter):
        self.inner = inner
        self.name = f"demo+{inner.name}"

    async def load_full_data(self, user_id: str) -> UserDataBundle:
        if is_demo_user(user_id):
            logger.info("demo_data_served")
            return load_demo_bundle()
        return await self.inner.load_full_data(user_id)

    async def save_profile(self, user_id: str, profile: FinancialProfile) -> SaveStatus:
        if is_demo_user(user_id):
            return SaveStatus.SKIPPED
        return await self.inner.save_profile(user_id, profile)

    async def save_compass(self, user_id: str, compass: YearlyCompassData) -> SaveStatus:
        if is_demo_user(user_id):
            return SaveStatus.SKIPPED
        return await self.inner.save_compass(user_id, compass)

    async def save_context(
        self,
        user_id: str,
        context: LifeContext,
        analysis: ContextAnalysisResult | None = None,
    ) -> SaveStatus:
        if is_demo_user(user_id):
            return SaveStatus.SKIPPED
        return await self.inner.save_context(user_id, context, analysis)

    async def save_note(self, user_id: str, note: MonthlyNote) -> SaveStatus:
        if is_demo_user(user_id):
            return SaveStatus.SKIPPED
        return await self.inner.save_note(user_id, note)

    async def add_delegation(self, user_id: str, item: DelegationItem) -> SaveStatus:
        if is_demo_user(user_id):
            return SaveStatus.SKIPPED
        return await self.inner.add_delegation(user_id, item)

    async def remove_delegation(self, user_id: str, item_id: str) -> SaveStatus:
        if is_demo_user(user_id):
            return SaveStatus.SKIPPED
        return await self.inner.remove_delegation(user_id, item_id)

    async def add_asset(self, user_id: str, item: AssetItem) -> SaveStatus:
        if is_demo_user(user_id):
            return SaveStatus.SKIPPED
        return await self.inner.add_asset(user_id, item)

    async def remove_asset(self, user_id: str, item_id: str) -> SaveStatus:
        if is_demo_user(user_id):
            return SaveStatus.SKIPPED
        return await self.inner.remove_asset(user_id, item_id)

    def set_access_token(self, token: str | None) -> None:
        self.inner.set_access_token(token)

    async def aclose(self) -> None:
        await self.inner.aclose()
