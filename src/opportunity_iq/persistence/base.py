"""Persistence adapter interface shared by every storage backend."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from opportunity_iq.models import (
    AnalysisCoordinates,
    AssetItem,
    ContextAnalysisResult,
    DelegationItem,
    FinancialProfile,
    LifeContext,
    MonthlyNote,
    UserDataBundle,
    YearlyCompassData,
)

HISTORY_SUMMARY = "Análise carregada do histórico."


class PersistenceError(Exception):
    """A backend read or write failed."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class SaveStatus(str, Enum):
    """Outcome of a write that did not fail."""

    SAVED = "saved"
    SKIPPED = "skipped"  # demo user or nothing to write


def empty_bundle() -> UserDataBundle:
    """Defaults for a user with no stored data."""
    return UserDataBundle(
        profile=FinancialProfile(),
        delegations=[],
        assets=[],
        life_context=None,
        analysis_result=None,
        year_compass=YearlyCompassData(),
        monthly_notes=[],
    )


def analysis_from_snapshot(
    x: float | None,
    y: float | None,
    label: str | None,
    eternal_return_score: float | None = None,
    eternal_return_analysis: str | None = None,
) -> ContextAnalysisResult | None:
    """Rebuild an analysis from its persisted snapshot.

    Only the matrix position and the eternal-return verdict are stored, so the
    suggestion lists come back empty.
    """
    if x is None:
        return None
    return ContextAnalysisResult(
        delegation_suggestions=[],
        sunk_cost_suspects=[],
        lifestyle_risks=[],
        summary=HISTORY_SUMMARY,
        eternal_return_score=eternal_return_score,
        eternal_return_analysis=eternal_return_analysis,
        matrix_coordinates=AnalysisCoordinates(
            x=x,
            y=y if y is not None else 50.0,
            quadrant_label=label or "",
        ),
    )


class PersistenceAdapter(ABC):
    """Capability set every backend implements.

    Adapters are stateless between calls apart from their transport. List
    entities are written one item at a time; callers diff collections
    themselves. Writes return a SaveStatus or raise PersistenceError.
    """

    name: str = "base"

    @abstractmethod
    async def load_full_data(self, user_id: str) -> UserDataBundle:
        """Load everything stored for a user. A user with no data gets defaults."""
        pass

    @abstractmethod
    async def save_profile(self, user_id: str, profile: FinancialProfile) -> SaveStatus:
        pass

    @abstractmethod
    async def save_compass(self, user_id: str, compass: YearlyCompassData) -> SaveStatus:
        pass

    @abstractmethod
    async def save_context(
        self,
        user_id: str,
        context: LifeContext,
        analysis: ContextAnalysisResult | None = None,
    ) -> SaveStatus:
        """Overwrite the life context and, when given, the analysis snapshot."""
        pass

    @abstractmethod
    async def save_note(self, user_id: str, note: MonthlyNote) -> SaveStatus:
        """Upsert a note by (month, year)."""
        pass

    @abstractmethod
    async def add_delegation(self, user_id: str, item: DelegationItem) -> SaveStatus:
        pass

    @abstractmethod
    async def remove_delegation(self, user_id: str, item_id: str) -> SaveStatus:
        pass

    @abstractmethod
    async def add_asset(self, user_id: str, item: AssetItem) -> SaveStatus:
        pass

    @abstractmethod
    async def remove_asset(self, user_id: str, item_id: str) -> SaveStatus:
        pass

    def set_access_token(self, token: str | None) -> None:
        """Act on behalf of a signed-in user. Backends without auth ignore it."""
        return None

    async def aclose(self) -> None:
        """Release transport resources."""
        return None

    async def __aenter__(self) -> "PersistenceAdapter":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
