"""In-memory user session: the state a UI binds to, kept in sync with storage.

Mutations update memory first and persist in the background. List entities
are diffed by id and persisted one add/remove call per changed item; writes
for the same item run in the order they were issued. A failed write is
logged and not rolled back: memory stays correct for the session and the
next successful write catches storage up.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from functools import partial
from typing import TypeVar

import structlog

from opportunity_iq.advisor import AdvisorService
from opportunity_iq.config import Settings, bind_user
from opportunity_iq.metrics import compute_thl
from opportunity_iq.models import (
    AssetCategory,
    AssetItem,
    CalculatedTHL,
    ContextAnalysisResult,
    DelegationItem,
    FinancialProfile,
    LifeContext,
    MonthlyNote,
    UserDataBundle,
    YearlyCompassData,
)
from opportunity_iq.persistence import (
    PersistenceAdapter,
    PersistenceError,
    SaveStatus,
    empty_bundle,
)
from opportunity_iq.sync.autosave import AutoSaveController

logger = structlog.get_logger(__name__)

T = TypeVar("T")
Item = TypeVar("Item", DelegationItem, AssetItem)


def diff_by_id(old: Sequence[Item], new: Sequence[Item]) -> tuple[list[Item], list[Item]]:
    """Items added to and removed from a list, compared by id."""
    old_ids = {item.id for item in old}
    new_ids = {item.id for item in new}
    added = [item for item in new if item.id not in old_ids]
    removed = [item for item in old if item.id not in new_ids]
    return added, removed


def _dedupe(items: Sequence[Item]) -> list[Item]:
    seen: set[str] = set()
    unique = []
    for item in items:
        if item.id not in seen:
            seen.add(item.id)
            unique.append(item)
    return unique


class UserSession:
    """State of one signed-in user."""

    def __init__(
        self,
        adapter: PersistenceAdapter,
        advisor: AdvisorService,
        settings: Settings | None = None,
        autosave: AutoSaveController | None = None,
    ):
        self.adapter = adapter
        self.advisor = advisor
        self.autosave = autosave or AutoSaveController(adapter, settings)

        self.user_id: str | None = None
        self.loading = False
        self._apply_bundle(empty_bundle())

        self._generation = 0
        self._background: set[asyncio.Task[None]] = set()
        self._item_writes: dict[tuple[str, str], asyncio.Task[None]] = {}
        self._pending_operations: set[str] = set()
        self._logger = logger.bind(component="session")

    def _apply_bundle(self, bundle: UserDataBundle) -> None:
        self.profile: FinancialProfile = bundle.profile
        self.delegations: list[DelegationItem] = _dedupe(bundle.delegations)
        self.assets: list[AssetItem] = _dedupe(bundle.assets)
        self.life_context: LifeContext | None = bundle.life_context
        self.analysis_result: ContextAnalysisResult | None = bundle.analysis_result
        self.year_compass: YearlyCompassData = bundle.year_compass
        self.monthly_notes: list[MonthlyNote] = list(bundle.monthly_notes)

    @property
    def thl(self) -> CalculatedTHL:
        return compute_thl(self.profile)

    @property
    def is_signed_in(self) -> bool:
        return self.user_id is not None

    def snapshot(self) -> UserDataBundle:
        """Current state as a bundle."""
        return UserDataBundle(
            profile=self.profile,
            delegations=list(self.delegations),
            assets=list(self.assets),
            life_context=self.life_context,
            analysis_result=self.analysis_result,
            year_compass=self.year_compass,
            monthly_notes=list(self.monthly_notes),
        )

    # === Authentication ===

    async def sign_in(self, user_id: str, access_token: str | None = None) -> UserDataBundle:
        """Load the user's data. Auto-save stays off until the load completes.

        Raises:
            PersistenceError: If the data could not be loaded. On this or any
                other load failure the session is left signed out, so
                defaults never overwrite stored data.
        """
        if self.user_id is not None and self.user_id != user_id:
            await self.sign_out()

        self._generation += 1
        self.loading = True
        self.autosave.set_loading(True)
        self.autosave.set_user(user_id)
        self.adapter.set_access_token(access_token)
        self._logger = logger.bind(component="session", user_id=user_id)

        try:
            bundle = await self.adapter.load_full_data(user_id)
        except Exception as e:
            self._logger.error(
                "load_failed",
                error_type=type(e).__name__,
                error=str(e),
                status_code=getattr(e, "status_code", None),
            )
            self.autosave.set_user(None)
            self.autosave.set_loading(False)
            self.adapter.set_access_token(None)
            self.loading = False
            raise

        self.user_id = user_id
        self._apply_bundle(bundle)
        bind_user(user_id)
        self.loading = False
        self.autosave.set_loading(False)
        self._logger.info(
            "signed_in",
            delegations=len(self.delegations),
            assets=len(self.assets),
            notes=len(self.monthly_notes),
        )
        return bundle

    async def sign_out(self) -> None:
        """Write pending edits, then clear all user state."""
        await self.autosave.flush()
        await self.drain()
        self._generation += 1
        self.autosave.set_user(None)
        self.adapter.set_access_token(None)
        self.user_id = None
        self._apply_bundle(empty_bundle())
        bind_user(None)
        self._logger.info("signed_out")
        self._logger = logger.bind(component="session")

    # === Debounced slices ===

    def update_profile(self, profile: FinancialProfile) -> CalculatedTHL:
        self.profile = profile
        self.autosave.profile_changed(profile)
        return self.thl

    def update_compass(self, compass: YearlyCompassData) -> None:
        self.year_compass = compass
        self.autosave.compass_changed(compass)

    def update_life_context(self, context: LifeContext) -> None:
        self.life_context = context
        self.autosave.context_changed(context)

    # === Lists ===

    def set_delegations(self, delegations: Sequence[DelegationItem]) -> None:
        new_list = _dedupe(delegations)
        added, removed = diff_by_id(self.delegations, new_list)
        self.delegations = new_list
        self._persist_list_changes(
            "delegation",
            added,
            removed,
            self.adapter.add_delegation,
            self.adapter.remove_delegation,
        )

    def add_delegation(self, item: DelegationItem) -> None:
        self.set_delegations([*self.delegations, item])

    def remove_delegation(self, item_id: str) -> None:
        self.set_delegations([d for d in self.delegations if d.id != item_id])

    def set_assets(self, assets: Sequence[AssetItem]) -> None:
        new_list = _dedupe(assets)
        added, removed = diff_by_id(self.assets, new_list)
        self.assets = new_list
        self._persist_list_changes(
            "asset",
            added,
            removed,
            self.adapter.add_asset,
            self.adapter.remove_asset,
        )

    def add_asset(self, item: AssetItem) -> None:
        self.set_assets([*self.assets, item])

    def remove_asset(self, item_id: str) -> None:
        self.set_assets([a for a in self.assets if a.id != item_id])

    def _persist_list_changes(
        self,
        kind: str,
        added: Sequence[Item],
        removed: Sequence[Item],
        add: Callable[[str, Item], Awaitable[SaveStatus]],
        remove: Callable[[str, str], Awaitable[SaveStatus]],
    ) -> None:
        if self.user_id is None:
            return
        user_id = self.user_id
        for item in added:
            self._spawn(kind, item.id, "add", partial(add, user_id, item))
        for item in removed:
            self._spawn(kind, item.id, "remove", partial(remove, user_id, item.id))

    def _spawn(
        self,
        kind: str,
        item_id: str,
        action: str,
        write: Callable[[], Awaitable[SaveStatus]],
    ) -> None:
        """Persist in the background, after any earlier write for the same item."""
        key = (kind, item_id)
        operation = f"{action}_{kind}"
        previous = self._item_writes.get(key)

        async def run() -> None:
            if previous is not None:
                await asyncio.wait({previous})
            try:
                status = await write()
                self._logger.debug("item_persisted", operation=operation, item_id=item_id, status=status.value)
            except Exception as e:
                self._logger.error("persistence_failed", operation=operation, item_id=item_id, error=str(e))
            finally:
                if self._item_writes.get(key) is task:
                    del self._item_writes[key]

        task = asyncio.get_running_loop().create_task(run())
        self._item_writes[key] = task
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # === AI-backed actions ===

    async def _single_flight(self, key: str, action: Callable[[], Awaitable[T]]) -> T | None:
        """Run ``action`` unless the same operation is already pending."""
        if key in self._pending_operations:
            self._logger.info("operation_ignored_pending", operation=key)
            return None
        self._pending_operations.add(key)
        try:
            return await action()
        finally:
            self._pending_operations.discard(key)

    def is_pending(self, operation: str) -> bool:
        return operation in self._pending_operations

    async def analyze_and_add_asset(
        self,
        name: str,
        purchase_value: float,
        description: str = "",
        purchase_year: int | None = None,
        category: AssetCategory = AssetCategory.OTHER,
    ) -> AssetItem | None:
        """Analyze a new asset, then add it with its estimate attached.

        Returns None when input is incomplete, the operation is already
        pending, or the user changed while the analysis ran.
        """
        if not name.strip() or purchase_value <= 0:
            return None

        async def run() -> AssetItem | None:
            generation = self._generation
            item = AssetItem(
                name=name,
                description=description,
                purchase_value=purchase_value,
                category=category,
                **({"purchase_year": purchase_year} if purchase_year else {}),
            )
            analysis = await self.advisor.analyze_asset(
                item.name, item.description, item.purchase_value, item.purchase_year
            )
            if generation != self._generation:
                self._logger.info("enrichment_dropped", operation="analyze_asset")
                return None
            item = item.model_copy(update={"ai_analysis": analysis})
            self.add_asset(item)
            return item

        return await self._single_flight("analyze_asset", run)

    async def run_context_analysis(
        self,
        routine: str,
        sleep_hours: float = 7.0,
        physical_activity_minutes: float | None = None,
        study_minutes: float | None = None,
    ) -> ContextAnalysisResult | None:
        """Audit the routine, store context plus analysis snapshot, return the analysis."""
        if not routine.strip():
            return None

        async def run() -> ContextAnalysisResult | None:
            generation = self._generation
            result = await self.advisor.analyze_life_context(
                routine, self.assets, self.thl.real_thl, self.profile, sleep_hours
            )
            if generation != self._generation:
                self._logger.info("enrichment_dropped", operation="context_analysis")
                return None

            context = LifeContext(
                routine_description=routine,
                assets_description=f"Inventário Atualizado: {len(self.assets)} itens.",
                sleep_hours=sleep_hours,
                physical_activity_minutes=physical_activity_minutes,
                study_minutes=study_minutes,
                eternal_return_score=result.eternal_return_score,
                eternal_return_text=result.eternal_return_analysis,
            )
            self.life_context = context
            self.analysis_result = result
            # A queued context write would overwrite the analysis snapshot
            self.autosave.context.cancel()

            if self.user_id is not None:
                try:
                    await self.adapter.save_context(self.user_id, context, result)
                except PersistenceError as e:
                    self._logger.error("context_save_failed", error=str(e))
            return result

        return await self._single_flight("context_analysis", run)

    def apply_diagnosis(self) -> list[DelegationItem]:
        """Adopt suggested delegations whose names are not already listed (case-insensitive)."""
        if not self.analysis_result or not self.analysis_result.delegation_suggestions:
            return []
        existing = {d.name.lower() for d in self.delegations}
        new_items = []
        for suggestion in self.analysis_result.delegation_suggestions:
            if suggestion.name.lower() not in existing:
                existing.add(suggestion.name.lower())
                new_items.append(suggestion)
        if new_items:
            self.set_delegations([*self.delegations, *new_items])
        self._logger.info("diagnosis_applied", added=len(new_items))
        return new_items

    # === Notes ===

    async def save_monthly_note(self, month: int, year: int, content: str) -> SaveStatus | None:
        """Upsert the note for (month, year) in memory and storage.

        Returns None when the write failed; the in-memory note is kept.
        """
        existing = next((n for n in self.monthly_notes if n.key == (month, year)), None)
        note = MonthlyNote(
            id=existing.id if existing else None,
            month=month,
            year=year,
            content=content,
        )
        self.monthly_notes = [n for n in self.monthly_notes if n.key != note.key] + [note]

        if self.user_id is None:
            return None
        try:
            return await self.adapter.save_note(self.user_id, note)
        except PersistenceError as e:
            self._logger.error("note_save_failed", month=month, year=year, error=str(e))
            return None

    def note_for(self, month: int, year: int) -> MonthlyNote | None:
        return next((n for n in self.monthly_notes if n.key == (month, year)), None)

    # === Lifecycle ===

    async def drain(self) -> None:
        """Wait for background list writes and in-flight auto-saves."""
        while self._background:
            pending = list(self._background)
            await asyncio.gather(*pending, return_exceptions=True)
            self._background.difference_update(pending)
        await self.autosave.wait_idle()

    async def close(self) -> None:
        """Cancel pending auto-saves and wait for writes already started."""
        await self.autosave.close()
        await self.drain()
