"""Supabase persistence over its PostgREST interface."""

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from opportunity_iq.config import SupabaseConfig
from opportunity_iq.models import (
    AssetAnalysis,
    AssetItem,
    CompassGoal,
    ContextAnalysisResult,
    DelegationItem,
    FinancialGoal,
    FinancialProfile,
    LifeContext,
    MonthlyNote,
    UserDataBundle,
    YearlyCompassData,
    utc_now_iso,
)
from opportunity_iq.persistence.base import (
    PersistenceAdapter,
    PersistenceError,
    SaveStatus,
    analysis_from_snapshot,
    empty_bundle,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

REST_PREFIX = "/rest/v1"


class RemotePersistenceAdapter(PersistenceAdapter):
    """Reads and writes the per-user tables of a Supabase project.

    Row-level security isolates users on the server, but every query also
    filters by user id so a misconfigured policy never leaks another user's rows.
    """

    name = "remote"

    def __init__(
        self,
        config: SupabaseConfig,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = config.url.rstrip("/")
        self._anon_key = config.anon_key
        self._timeout = config.timeout
        self._max_retries = config.max_retries
        self._access_token = access_token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def set_access_token(self, token: str | None) -> None:
        """Use the signed-in user's JWT instead of the anon key."""
        self._access_token = token

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {self._access_token or self._anon_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make a PostgREST request.

        Reads are retried on connection errors with exponential backoff. Writes
        are not: a write that timed out may have been committed, and repeating
        it could report a failure for data that was stored.
        """
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=f"{REST_PREFIX}/{table}",
                params=params,
                json=json,
                headers=self._get_headers(prefer),
            )

            if response.status_code >= 400:
                try:
                    error_detail = response.json() if response.content else {}
                except ValueError:
                    error_detail = {"raw": response.text[:500] if response.text else "empty response"}
                raise PersistenceError(
                    f"{method} {table} failed: {response.status_code}",
                    status_code=response.status_code,
                    details=error_detail,
                )

            return response.json() if response.content else None

        except httpx.RequestError as e:
            if method == "GET" and retry_count < self._max_retries:
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(method, table, params, json, prefer, retry_count + 1)
            raise PersistenceError(f"Request failed: {e}") from e

    async def _select(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        params = {"select": "*"}
        params.update({column: f"eq.{value}" for column, value in filters.items()})
        rows = await self._request("GET", table, params=params)
        return [row for row in rows if isinstance(row, dict)] if isinstance(rows, list) else []

    async def _select_one(self, table: str, **filters: Any) -> dict[str, Any] | None:
        rows = await self._select(table, **filters)
        return rows[0] if rows else None

    async def _upsert(self, table: str, row: dict[str, Any], on_conflict: str) -> SaveStatus:
        await self._request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json=row,
            prefer="resolution=merge-duplicates,return=minimal",
        )
        return SaveStatus.SAVED

    async def _insert(self, table: str, row: dict[str, Any]) -> SaveStatus:
        await self._request("POST", table, json=row, prefer="return=minimal")
        return SaveStatus.SAVED

    async def _delete(self, table: str, **filters: Any) -> SaveStatus:
        params = {column: f"eq.{value}" for column, value in filters.items()}
        await self._request("DELETE", table, params=params, prefer="return=minimal")
        return SaveStatus.SAVED

    # === Reads ===

    async def load_full_data(self, user_id: str) -> UserDataBundle:
        profile_row, delegation_rows, asset_rows, context_row, compass_row, note_rows = (
            await asyncio.gather(
                self._select_one("profiles", id=user_id),
                self._select("delegations", user_id=user_id),
                self._select("assets", user_id=user_id),
                self._select_one("life_contexts", user_id=user_id),
                self._select_one("year_compass", user_id=user_id),
                self._select("monthly_notes", user_id=user_id),
            )
        )

        bundle = empty_bundle()
        try:
            if profile_row:
                bundle.profile = _profile_from_row(profile_row)
            bundle.delegations = _map_rows("delegations", delegation_rows, _delegation_from_row)
            bundle.assets = _map_rows("assets", asset_rows, _asset_from_row)
            if context_row:
                bundle.life_context = _context_from_row(context_row)
                bundle.analysis_result = analysis_from_snapshot(
                    _number_or_none(context_row.get("matrix_x")),
                    _number_or_none(context_row.get("matrix_y")),
                    context_row.get("matrix_label"),
                    bundle.life_context.eternal_return_score,
                    bundle.life_context.eternal_return_text,
                )
            if compass_row:
                bundle.year_compass = _compass_from_row(compass_row)
            bundle.monthly_notes = _map_rows("monthly_notes", note_rows, _note_from_row)
        except ValidationError as e:
            raise PersistenceError("Stored rows are invalid", details=e.errors()) from e

        logger.debug(
            "remote_data_loaded",
            user_id=user_id,
            delegations=len(bundle.delegations),
            assets=len(bundle.assets),
            notes=len(bundle.monthly_notes),
        )
        return bundle

    # === Writes ===

    async def save_profile(self, user_id: str, profile: FinancialProfile) -> SaveStatus:
        row = {
            "id": user_id,
            "net_income": profile.net_income,
            "contract_hours_weekly": profile.contract_hours_weekly,
            "commute_minutes_daily": profile.commute_minutes_daily,
            "aspirational_income": profile.aspirational_income,
            "updated_at": utc_now_iso(),
        }
        return await self._upsert("profiles", row, on_conflict="id")

    async def save_compass(self, user_id: str, compass: YearlyCompassData) -> SaveStatus:
        row: dict[str, Any] = {"user_id": user_id}
        for n, goal in enumerate(compass.goals, start=1):
            row[f"goal{n}_text"] = goal.text
            row[f"goal{n}_indicator"] = goal.indicator
            row[f"goal{n}_completed"] = goal.completed
            row[f"goal{n}_status"] = goal.status.value
        row["financial_target_income"] = compass.financial_goal.target_monthly_income
        row["financial_target_thl"] = compass.financial_goal.target_thl
        row["financial_deadline"] = compass.financial_goal.deadline_month
        row["updated_at"] = utc_now_iso()
        return await self._upsert("year_compass", row, on_conflict="user_id")

    async def save_context(
        self,
        user_id: str,
        context: LifeContext,
        analysis: ContextAnalysisResult | None = None,
    ) -> SaveStatus:
        row: dict[str, Any] = {
            "user_id": user_id,
            "routine_description": context.routine_description,
            "assets_description": context.assets_description,
            "sleep_hours": context.sleep_hours,
            "physical_activity_minutes": context.physical_activity_minutes,
            "study_minutes": context.study_minutes,
            "eternal_return_score": context.eternal_return_score,
            "eternal_return_text": context.eternal_return_text,
            "last_updated": utc_now_iso(),
        }
        # Without an analysis the stored matrix snapshot is left untouched
        if analysis and analysis.matrix_coordinates:
            row["matrix_x"] = analysis.matrix_coordinates.x
            row["matrix_y"] = analysis.matrix_coordinates.y
            row["matrix_label"] = analysis.matrix_coordinates.quadrant_label
        return await self._upsert("life_contexts", row, on_conflict="user_id")

    async def save_note(self, user_id: str, note: MonthlyNote) -> SaveStatus:
        existing = await self._select_one(
            "monthly_notes", user_id=user_id, month=note.month, year=note.year
        )
        now = utc_now_iso()
        if existing:
            await self._request(
                "PATCH",
                "monthly_notes",
                params={"id": f"eq.{existing['id']}", "user_id": f"eq.{user_id}"},
                json={"content": note.content, "updated_at": now},
                prefer="return=minimal",
            )
            return SaveStatus.SAVED
        return await self._insert(
            "monthly_notes",
            {
                "user_id": user_id,
                "month": note.month,
                "year": note.year,
                "content": note.content,
                "updated_at": now,
            },
        )

    async def add_delegation(self, user_id: str, item: DelegationItem) -> SaveStatus:
        row = {
            "id": item.id,
            "user_id": user_id,
            "name": item.name,
            "cost": item.cost,
            "hours_saved": item.hours_saved,
            "frequency": item.frequency.value,
            "category": item.category.value,
            "archetype": item.archetype.value if item.archetype else None,
        }
        return await self._insert("delegations", row)

    async def remove_delegation(self, user_id: str, item_id: str) -> SaveStatus:
        return await self._delete("delegations", id=item_id, user_id=user_id)

    async def add_asset(self, user_id: str, item: AssetItem) -> SaveStatus:
        analysis = item.ai_analysis
        row = {
            "id": item.id,
            "user_id": user_id,
            "name": item.name,
            "description": item.description,
            "purchase_year": item.purchase_year,
            "purchase_value": item.purchase_value,
            "category": item.category.value,
            "current_value_est": analysis.current_value_estimated if analysis else None,
            "appreciation_rate": analysis.depreciation_trend.value if analysis else None,
            "liquidity_score": analysis.liquidity_score if analysis else None,
            "maintenance_cost_monthly": (
                analysis.maintenance_cost_monthly_estimate if analysis else None
            ),
            "liabilities_text": analysis.commentary if analysis else None,
        }
        return await self._insert("assets", row)

    async def remove_asset(self, user_id: str, item_id: str) -> SaveStatus:
        return await self._delete("assets", id=item_id, user_id=user_id)


# === Row mapping ===


def _map_rows(
    table: str, rows: list[dict[str, Any]], mapper: Callable[[dict[str, Any]], T]
) -> list[T]:
    """Map list rows, skipping ones that no longer fit the model."""
    items = []
    for row in rows:
        try:
            items.append(mapper(row))
        except ValidationError as e:
            logger.warning("remote_row_skipped", table=table, row_id=row.get("id"), error=str(e))
    return items



def _number_or_none(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _profile_from_row(row: dict[str, Any]) -> FinancialProfile:
    return FinancialProfile(
        net_income=_number_or_none(row.get("net_income")) or 0.0,
        contract_hours_weekly=_number_or_none(row.get("contract_hours_weekly")) or 0.0,
        commute_minutes_daily=_number_or_none(row.get("commute_minutes_daily")) or 0.0,
        aspirational_income=_number_or_none(row.get("aspirational_income")) or 0.0,
    )


def _delegation_from_row(row: dict[str, Any]) -> DelegationItem:
    return DelegationItem(
        id=row.get("id"),
        name=row.get("name"),
        cost=row.get("cost"),
        hours_saved=row.get("hours_saved"),
        frequency=row.get("frequency"),
        category=row.get("category"),
        archetype=row.get("archetype"),
    )


def _asset_from_row(row: dict[str, Any]) -> AssetItem:
    analysis = None
    if row.get("current_value_est") is not None:
        analysis = AssetAnalysis(
            current_value_estimated=row.get("current_value_est"),
            depreciation_trend=row.get("appreciation_rate"),
            liquidity_score=row.get("liquidity_score") or 0,
            maintenance_cost_monthly_estimate=row.get("maintenance_cost_monthly"),
            commentary=row.get("liabilities_text"),
        )
    return AssetItem(
        id=row.get("id"),
        name=row.get("name"),
        description=row.get("description"),
        purchase_year=row.get("purchase_year") or 0,
        purchase_value=row.get("purchase_value"),
        category=row.get("category"),
        ai_analysis=analysis,
    )


def _context_from_row(row: dict[str, Any]) -> LifeContext:
    return LifeContext(
        routine_description=row.get("routine_description"),
        assets_description=row.get("assets_description"),
        sleep_hours=_number_or_none(row.get("sleep_hours")) or 7.0,
        physical_activity_minutes=_number_or_none(row.get("physical_activity_minutes")),
        study_minutes=_number_or_none(row.get("study_minutes")),
        last_updated=row.get("last_updated") or utc_now_iso(),
        eternal_return_score=_number_or_none(row.get("eternal_return_score")),
        eternal_return_text=row.get("eternal_return_text"),
    )


def _compass_from_row(row: dict[str, Any]) -> YearlyCompassData:
    goals = {
        f"goal{n}": CompassGoal(
            text=row.get(f"goal{n}_text") or "",
            indicator=row.get(f"goal{n}_indicator") or "",
            completed=bool(row.get(f"goal{n}_completed")),
            status=row.get(f"goal{n}_status"),
        )
        for n in (1, 2, 3)
    }
    return YearlyCompassData(
        **goals,
        financial_goal=FinancialGoal(
            target_monthly_income=row.get("financial_target_income"),
            target_thl=row.get("financial_target_thl"),
            deadline_month=row.get("financial_deadline") or "",
        ),
    )


def _note_from_row(row: dict[str, Any]) -> MonthlyNote:
    return MonthlyNote(
        id=str(row["id"]) if row.get("id") is not None else None,
        month=row.get("month"),
        year=row.get("year"),
        content=row.get("content"),
        updated_at=row.get("updated_at") or utc_now_iso(),
    )
