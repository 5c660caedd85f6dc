"""Tests for domain models."""

import pytest
from pydantic import ValidationError

from opportunity_iq.models import (
    Archetype,
    AssetCategory,
    AssetItem,
    CompassGoal,
    ContextAnalysisResult,
    DelegationItem,
    DepreciationTrend,
    FinancialProfile,
    Frequency,
    GoalStatus,
    LifeContext,
    MonthlyNote,
    UserDataBundle,
    YearlyCompassData,
)


class TestWireFormat:
    """Tests for camelCase serialization."""

    def test_profile_round_trip(self):
        """Test profile accepts and emits camelCase keys."""
        profile = FinancialProfile.model_validate(
            {
                "netIncome": 8000,
                "contractHoursWeekly": 40,
                "commuteMinutesDaily": 60,
                "aspirationalIncome": 12000,
            }
        )

        assert profile.net_income == 8000
        assert profile.to_wire()["commuteMinutesDaily"] == 60

    def test_snake_case_construction(self):
        """Test models can be built with attribute names."""
        item = DelegationItem(name="Faxina", cost=200, hours_saved=4)

        assert item.to_wire()["hoursSaved"] == 4

    def test_compass_target_thl_alias(self):
        """Test the financial goal keeps the targetTHL key."""
        compass = YearlyCompassData.model_validate(
            {"financialGoal": {"targetMonthlyIncome": 20000, "targetTHL": 115}}
        )

        assert compass.financial_goal.target_thl == 115
        assert compass.to_wire()["financialGoal"]["targetTHL"] == 115


class TestLenientParsing:
    """Tests for tolerant reading of external payloads."""

    def test_delegation_gets_id(self):
        """Test a missing or empty id is generated."""
        assert DelegationItem(name="x").id
        assert DelegationItem.model_validate({"id": "", "name": "x"}).id

    def test_unknown_enum_values_fall_back(self):
        """Test unknown enumeration values use their defaults."""
        item = DelegationItem.model_validate(
            {"name": "x", "frequency": "daily", "category": "Garden", "archetype": "dragon"}
        )

        assert item.frequency == Frequency.MONTHLY
        assert item.category.value == "other"
        assert item.archetype is None

    def test_enum_values_are_case_insensitive(self):
        """Test enum matching ignores case."""
        item = DelegationItem.model_validate({"name": "x", "frequency": "WEEKLY", "archetype": "lion"})

        assert item.frequency == Frequency.WEEKLY
        assert item.archetype == Archetype.LION

    def test_negative_amounts_are_clamped(self):
        """Test costs and hours are never negative."""
        item = DelegationItem(name="x", cost=-10, hours_saved=None)

        assert item.cost == 0
        assert item.hours_saved == 0

    def test_non_list_fields_become_empty(self):
        """Test list fields tolerate non-list values."""
        result = ContextAnalysisResult.model_validate(
            {"delegationSuggestions": "none", "lifestyleRisks": None, "summary": "ok"}
        )

        assert result.delegation_suggestions == []
        assert result.lifestyle_risks == []

    def test_invalid_suggestions_are_dropped(self):
        """Test malformed suggestions are skipped, valid ones kept."""
        result = ContextAnalysisResult.model_validate(
            {"delegationSuggestions": [{"name": "Faxina", "cost": 200}, "garbage", 42]}
        )

        assert [s.name for s in result.delegation_suggestions] == ["Faxina"]

    def test_scores_are_clamped(self):
        """Test matrix coordinates stay within 0-100."""
        result = ContextAnalysisResult.model_validate(
            {"matrixCoordinates": {"x": 140, "y": -5, "quadrantLabel": "?"}}
        )

        assert result.matrix_coordinates.x == 100
        assert result.matrix_coordinates.y == 0

    def test_optional_numbers_stay_none(self):
        """Test absent optional values are not coerced to zero."""
        context = LifeContext.model_validate({"routineDescription": "r", "studyMinutes": None})

        assert context.study_minutes is None
        assert context.physical_activity_minutes is None
        assert context.eternal_return_score is None

    def test_asset_defaults(self):
        """Test asset category and year defaults."""
        asset = AssetItem.model_validate({"name": "Carro", "category": "vehicle"})

        assert asset.category == AssetCategory.VEHICLE
        assert asset.purchase_year > 2000
        assert asset.ai_analysis is None

    def test_asset_analysis_trend(self):
        """Test nested analysis is validated."""
        asset = AssetItem.model_validate(
            {
                "name": "Carro",
                "aiAnalysis": {"currentValueEstimated": 100, "depreciationTrend": "weird"},
            }
        )

        assert asset.ai_analysis.depreciation_trend == DepreciationTrend.STABLE


class TestCompass:
    """Tests for the yearly compass."""

    def test_defaults_have_three_goals(self):
        """Test a default compass holds three empty goals."""
        compass = YearlyCompassData()

        assert len(compass.goals) == 3
        assert all(goal.status == GoalStatus.PENDING for goal in compass.goals)

    def test_completed_flag_drives_status(self):
        """Test status follows the completed flag."""
        assert CompassGoal(completed=True).status == GoalStatus.COMPLETED
        assert CompassGoal(completed=False, status="COMPLETED").status == GoalStatus.PENDING
        assert CompassGoal(status="IN_PROGRESS").status == GoalStatus.IN_PROGRESS

    def test_with_goal_returns_copy(self):
        """Test with_goal updates one goal without mutating the original."""
        compass = YearlyCompassData()

        updated = compass.with_goal(1, text="Correr maratona", completed=True)

        assert updated.goal2.text == "Correr maratona"
        assert updated.goal2.status == GoalStatus.COMPLETED
        assert compass.goal2.text == ""

    def test_with_goal_rejects_bad_index(self):
        """Test only indexes 0-2 are valid."""
        with pytest.raises(IndexError):
            YearlyCompassData().with_goal(3, text="x")


class TestNotesAndBundle:
    """Tests for notes and the aggregate bundle."""

    def test_note_month_is_validated(self):
        """Test months outside 1-12 are rejected."""
        with pytest.raises(ValidationError):
            MonthlyNote(month=13, year=2025)

    def test_note_key(self):
        """Test notes are keyed by (month, year)."""
        assert MonthlyNote(month=3, year=2025).key == (3, 2025)

    def test_empty_bundle_defaults(self):
        """Test an empty payload validates to defaults."""
        bundle = UserDataBundle.model_validate({})

        assert bundle.profile == FinancialProfile()
        assert bundle.delegations == []
        assert bundle.life_context is None
        assert bundle.analysis_result is None
