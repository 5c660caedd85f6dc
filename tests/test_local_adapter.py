"""Tests for the local JSON persistence adapter."""

import json

import pytest

from opportunity_iq.models import (
    AnalysisCoordinates,
    AssetAnalysis,
    AssetItem,
    ContextAnalysisResult,
    DelegationItem,
    FinancialProfile,
    LifeContext,
    MonthlyNote,
    YearlyCompassData,
)
from opportunity_iq.persistence import LocalPersistenceAdapter, PersistenceError, SaveStatus
from opportunity_iq.persistence.base import HISTORY_SUMMARY


class TestLoad:
    """Tests for load_full_data."""

    @pytest.mark.asyncio
    async def test_missing_file_yields_defaults(self, local_adapter):
        """Test a user with nothing stored gets the default bundle."""
        bundle = await local_adapter.load_full_data("user-1")

        assert bundle.profile == FinancialProfile()
        assert bundle.delegations == []
        assert bundle.life_context is None
        assert bundle.analysis_result is None
        assert bundle.monthly_notes == []

    @pytest.mark.asyncio
    async def test_corrupt_file_yields_defaults(self, local_adapter):
        """Test unreadable JSON is treated as an empty store."""
        local_adapter.path.write_text("{not json", encoding="utf-8")

        bundle = await local_adapter.load_full_data("user-1")

        assert bundle.delegations == []

    @pytest.mark.asyncio
    async def test_undecodable_bytes_yield_defaults(self, local_adapter):
        """Test a file that is not UTF-8 reads as an empty store instead of raising."""
        local_adapter.path.write_bytes(b"\xff\xfe{not utf8")

        bundle = await local_adapter.load_full_data("user-1")

        assert bundle.profile == FinancialProfile()

    @pytest.mark.asyncio
    async def test_corrupt_file_is_kept_aside(self, local_adapter):
        """Test the next write does not overwrite the unreadable file."""
        local_adapter.path.write_text("{not json", encoding="utf-8")

        await local_adapter.save_profile("user-1", FinancialProfile(net_income=5000))

        backups = list(local_adapter.path.parent.glob(f"{local_adapter.path.name}.corrupt-*"))
        assert len(backups) == 1
        assert backups[0].read_text(encoding="utf-8") == "{not json"
        stored = await local_adapter.load_full_data("user-1")
        assert stored.profile.net_income == 5000

    @pytest.mark.asyncio
    async def test_invalid_entries_are_skipped(self, local_adapter):
        """Test list entries that no longer validate are dropped."""
        local_adapter.path.write_text(
            json.dumps(
                {
                    "oiq_test": {
                        "user-1": {
                            "delegations": [{"id": "d1", "name": "Faxina"}, "junk"],
                            "monthlyNotes": [{"month": 14, "year": 2025}],
                        }
                    }
                }
            ),
            encoding="utf-8",
        )

        bundle = await local_adapter.load_full_data("user-1")

        assert [d.id for d in bundle.delegations] == ["d1"]
        assert bundle.monthly_notes == []

    @pytest.mark.asyncio
    async def test_invalid_profile_raises(self, local_adapter):
        """Test a structurally invalid profile is reported."""
        local_adapter.path.write_text(
            json.dumps({"oiq_test": {"user-1": {"profile": {"netIncome": "lots"}}}}),
            encoding="utf-8",
        )

        with pytest.raises(PersistenceError):
            await local_adapter.load_full_data("user-1")


class TestWrites:
    """Tests for the write operations."""

    @pytest.mark.asyncio
    async def test_profile_and_compass(self, local_adapter):
        """Test profile and compass overwrite their slot."""
        await local_adapter.save_profile("user-1", FinancialProfile(net_income=5000))
        status = await local_adapter.save_profile("user-1", FinancialProfile(net_income=6000))
        await local_adapter.save_compass(
            "user-1", YearlyCompassData().with_goal(0, text="Ler 12 livros")
        )

        bundle = await local_adapter.load_full_data("user-1")

        assert status == SaveStatus.SAVED
        assert bundle.profile.net_income == 6000
        assert bundle.year_compass.goal1.text == "Ler 12 livros"

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, local_adapter):
        """Test one user's writes never show up for another."""
        await local_adapter.save_profile("user-1", FinancialProfile(net_income=5000))
        await local_adapter.add_delegation("user-1", DelegationItem(name="Faxina"))

        other = await local_adapter.load_full_data("user-2")

        assert other.profile.net_income == 0
        assert other.delegations == []

    @pytest.mark.asyncio
    async def test_data_lives_under_storage_key(self, local_adapter):
        """Test the file holds a single namespaced key."""
        await local_adapter.save_profile("user-1", FinancialProfile(net_income=5000))

        stored = json.loads(local_adapter.path.read_text(encoding="utf-8"))

        assert list(stored) == ["oiq_test"]
        assert stored["oiq_test"]["user-1"]["profile"]["netIncome"] == 5000

    @pytest.mark.asyncio
    async def test_add_and_remove_items(self, local_adapter):
        """Test list items are added once and removed by id."""
        faxina = DelegationItem(id="d1", name="Faxina", cost=200, hours_saved=8)
        car = AssetItem(
            id="a1",
            name="Carro",
            purchase_value=90000,
            ai_analysis=AssetAnalysis(current_value_estimated=70000),
        )

        await local_adapter.add_delegation("user-1", faxina)
        await local_adapter.add_delegation("user-1", faxina)
        await local_adapter.add_asset("user-1", car)

        bundle = await local_adapter.load_full_data("user-1")
        assert [d.id for d in bundle.delegations] == ["d1"]
        assert bundle.delegations[0].hours_saved == 8
        assert bundle.assets[0].ai_analysis.current_value_estimated == 70000

        await local_adapter.remove_delegation("user-1", "d1")
        await local_adapter.remove_asset("user-1", "a1")

        bundle = await local_adapter.load_full_data("user-1")
        assert bundle.delegations == []
        assert bundle.assets == []

    @pytest.mark.asyncio
    async def test_context_with_analysis_snapshot(self, local_adapter):
        """Test the analysis comes back as a snapshot with the eternal-return verdict."""
        context = LifeContext(
            routine_description="Acordo 6h, trânsito 2h",
            eternal_return_score=35,
            eternal_return_text="Você não repetiria esta vida.",
        )
        analysis = ContextAnalysisResult(
            delegation_suggestions=[DelegationItem(name="Faxina")],
            summary="Resumo completo",
            matrix_coordinates=AnalysisCoordinates(x=30, y=70, quadrant_label="O Camelo"),
        )

        await local_adapter.save_context("user-1", context, analysis)
        bundle = await local_adapter.load_full_data("user-1")

        assert bundle.life_context.routine_description == "Acordo 6h, trânsito 2h"
        result = bundle.analysis_result
        assert result.summary == HISTORY_SUMMARY
        assert result.delegation_suggestions == []
        assert result.matrix_coordinates.x == 30
        assert result.matrix_coordinates.quadrant_label == "O Camelo"
        assert result.eternal_return_score == 35
        assert result.eternal_return_analysis == "Você não repetiria esta vida."

    @pytest.mark.asyncio
    async def test_context_without_analysis_keeps_snapshot(self, local_adapter):
        """Test saving only the context leaves the stored snapshot untouched."""
        analysis = ContextAnalysisResult(
            matrix_coordinates=AnalysisCoordinates(x=10, y=20, quadrant_label="Q")
        )
        await local_adapter.save_context("user-1", LifeContext(routine_description="a"), analysis)
        await local_adapter.save_context("user-1", LifeContext(routine_description="b"))

        bundle = await local_adapter.load_full_data("user-1")

        assert bundle.life_context.routine_description == "b"
        assert bundle.analysis_result.matrix_coordinates.x == 10

    @pytest.mark.asyncio
    async def test_note_upsert_by_month(self, local_adapter):
        """Test at most one note is kept per (month, year)."""
        await local_adapter.save_note("user-1", MonthlyNote(month=1, year=2025, content="v1"))
        await local_adapter.save_note("user-1", MonthlyNote(month=1, year=2025, content="v2"))
        await local_adapter.save_note("user-1", MonthlyNote(month=2, year=2025, content="fev"))

        bundle = await local_adapter.load_full_data("user-1")
        notes = {note.key: note for note in bundle.monthly_notes}

        assert len(bundle.monthly_notes) == 2
        assert notes[(1, 2025)].content == "v2"
        assert notes[(1, 2025)].id

    @pytest.mark.asyncio
    async def test_unwritable_path_raises(self, tmp_path):
        """Test write failures surface as PersistenceError."""
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        adapter = LocalPersistenceAdapter(path=blocker / "nested" / "store.json")

        with pytest.raises(PersistenceError):
            await adapter.save_profile("user-1", FinancialProfile())
