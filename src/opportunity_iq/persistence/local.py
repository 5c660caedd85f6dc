"""Local key/value persistence backed by a JSON file.

The file holds one namespaced key whose value maps each user id to a blob with
the same logical fields as the remote tables.
"""

import asyncio
import json
import time
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from opportunity_iq.config import get_settings
from opportunity_iq.models import (
    AssetItem,
    ContextAnalysisResult,
    DelegationItem,
    FinancialProfile,
    LifeContext,
    MonthlyNote,
    UserDataBundle,
    YearlyCompassData,
    new_id,
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


class LocalPersistenceAdapter(PersistenceAdapter):
    """Stores every user's data under a single namespaced key in a JSON file."""

    name = "local"

    def __init__(self, path: Path | str | None = None, storage_key: str | None = None):
        settings = get_settings()
        self.path = Path(path or settings.local_storage_path).expanduser()
        self.storage_key = storage_key or settings.storage_key
        self._lock = asyncio.Lock()

    # === File access ===

    def _read_store(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as e:
            # Undecodable bytes or invalid JSON: keep the file for recovery
            self._quarantine(e)
            return {}
        except OSError as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(raw, dict):
            self._quarantine(ValueError(f"expected an object, got {type(raw).__name__}"))
            return {}
        return raw

    def _quarantine(self, error: Exception) -> None:
        """Move an unreadable store aside so the next write cannot overwrite it."""
        backup = self.path.with_name(f"{self.path.name}.corrupt-{time.time_ns()}")
        try:
            self.path.replace(backup)
        except OSError as e:
            raise PersistenceError(f"Cannot move unreadable store {self.path}: {e}") from e
        logger.warning(
            "local_store_quarantined",
            path=str(self.path),
            backup=str(backup),
            error=str(error),
        )

    def _write_store(self, store: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(store, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e

    def _user_blob(self, store: dict[str, Any], user_id: str) -> dict[str, Any]:
        namespace = store.get(self.storage_key)
        if not isinstance(namespace, dict):
            namespace = {}
            store[self.storage_key] = namespace
        blob = namespace.get(user_id)
        if not isinstance(blob, dict):
            blob = {}
            namespace[user_id] = blob
        return blob

    async def _merge(self, user_id: str, **fields: Any) -> SaveStatus:
        """Merge top-level fields into the user's blob."""
        async with self._lock:
            store = await asyncio.to_thread(self._read_store)
            self._user_blob(store, user_id).update(fields)
            await asyncio.to_thread(self._write_store, store)
        return SaveStatus.SAVED

    async def _update_list(self, user_id: str, field: str, update: Any) -> SaveStatus:
        """Apply ``update`` to the list stored under ``field``."""
        async with self._lock:
            store = await asyncio.to_thread(self._read_store)
            blob = self._user_blob(store, user_id)
            current = blob.get(field)
            blob[field] = update(current if isinstance(current, list) else [])
            await asyncio.to_thread(self._write_store, store)
        return SaveStatus.SAVED

    # === Reads ===

    async def load_full_data(self, user_id: str) -> UserDataBundle:
        store = await asyncio.to_thread(self._read_store)
        namespace = store.get(self.storage_key)
        blob = namespace.get(user_id) if isinstance(namespace, dict) else None
        if not isinstance(blob, dict):
            logger.info("local_user_empty", user_id=user_id)
            return empty_bundle()

        bundle = empty_bundle()
        try:
            if isinstance(blob.get("profile"), dict):
                bundle.profile = FinancialProfile.model_validate(blob["profile"])
            if isinstance(blob.get("yearCompass"), dict):
                bundle.year_compass = YearlyCompassData.model_validate(blob["yearCompass"])
            if isinstance(blob.get("lifeContext"), dict):
                bundle.life_context = LifeContext.model_validate(blob["lifeContext"])
        except ValidationError as e:
            raise PersistenceError("Stored data is invalid", details=e.errors()) from e

        bundle.delegations = _validate_items(DelegationItem, blob.get("delegations"))
        bundle.assets = _validate_items(AssetItem, blob.get("assets"))
        bundle.monthly_notes = _validate_items(MonthlyNote, blob.get("monthlyNotes"))

        snapshot = blob.get("analysisSnapshot")
        if bundle.life_context and isinstance(snapshot, dict):
            bundle.analysis_result = analysis_from_snapshot(
                snapshot.get("x"),
                snapshot.get("y"),
                snapshot.get("quadrantLabel"),
                bundle.life_context.eternal_return_score,
                bundle.life_context.eternal_return_text,
            )

        logger.debug(
            "local_data_loaded",
            user_id=user_id,
            delegations=len(bundle.delegations),
            assets=len(bundle.assets),
        )
        return bundle

    # === Writes ===

    async def save_profile(self, user_id: str, profile: FinancialProfile) -> SaveStatus:
        return await self._merge(user_id, profile=profile.to_wire())

    async def save_compass(self, user_id: str, compass: YearlyCompassData) -> SaveStatus:
        return await self._merge(user_id, yearCompass=compass.to_wire())

    async def save_context(
        self,
        user_id: str,
        context: LifeContext,
        analysis: ContextAnalysisResult | None = None,
    ) -> SaveStatus:
        saved = context.model_copy(update={"last_updated": utc_now_iso()})
        fields: dict[str, Any] = {"lifeContext": saved.to_wire()}
        if analysis and analysis.matrix_coordinates:
            fields["analysisSnapshot"] = analysis.matrix_coordinates.to_wire()
        return await self._merge(user_id, **fields)

    async def save_note(self, user_id: str, note: MonthlyNote) -> SaveStatus:
        stored = note.model_copy(
            update={"id": note.id or new_id(), "updated_at": utc_now_iso()}
        ).to_wire()

        def upsert(notes: list[Any]) -> list[Any]:
            kept = [
                n
                for n in notes
                if not (
                    isinstance(n, dict)
                    and n.get("month") == note.month
                    and n.get("year") == note.year
                )
            ]
            return kept + [stored]

        return await self._update_list(user_id, "monthlyNotes", upsert)

    async def add_delegation(self, user_id: str, item: DelegationItem) -> SaveStatus:
        return await self._update_list(user_id, "delegations", _append_unique(item.to_wire()))

    async def remove_delegation(self, user_id: str, item_id: str) -> SaveStatus:
        return await self._update_list(user_id, "delegations", _without(item_id))

    async def add_asset(self, user_id: str, item: AssetItem) -> SaveStatus:
        return await self._update_list(user_id, "assets", _append_unique(item.to_wire()))

    async def remove_asset(self, user_id: str, item_id: str) -> SaveStatus:
        return await self._update_list(user_id, "assets", _without(item_id))


def _validate_items(model: Any, raw: Any) -> list[Any]:
    """Validate stored list entries, skipping ones that no longer fit the model."""
    if not isinstance(raw, list):
        return []
    items = []
    for entry in raw:
        try:
            items.append(model.model_validate(entry))
        except ValidationError as e:
            logger.warning("local_entry_skipped", model=model.__name__, error=str(e))
    return items


def _append_unique(entry: dict[str, Any]):
    def update(items: list[Any]) -> list[Any]:
        if any(isinstance(i, dict) and i.get("id") == entry["id"] for i in items):
            return items
        return items + [entry]

    return update


def _without(item_id: str):
    def update(items: list[Any]) -> list[Any]:
        return [i for i in items if not (isinstance(i, dict) and i.get("id") == item_id)]

    return update
