"""THL-derived calculators (delegation ROI, skill leverage, inaction, lifestyle, assets).

Every function here is a pure function of a CalculatedTHL plus a few inputs and
follows the same zero-guard policy as the THL engine: never divide by zero,
return 0 instead.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from opportunity_iq.models import (
    AssetItem,
    CalculatedTHL,
    ContextAnalysisResult,
    DelegationItem,
    YearlyCompassData,
)

FALLBACK_MONTHLY_HOURS = 160.0
WORK_DAY_HOURS = 8.0
MIN_DEEP_WORK_SECONDS = 60


# === Delegation ===


@dataclass(frozen=True)
class DelegationROI:
    """Return of paying for a task instead of doing it."""

    service_hourly_cost: float
    delta: float  # THL minus the service's hourly cost
    total_profit: float
    is_positive: bool


def delegation_roi(item: DelegationItem, thl: CalculatedTHL) -> DelegationROI:
    if item.hours_saved <= 0:
        # Paying for no time back is a pure loss
        return DelegationROI(
            service_hourly_cost=0.0,
            delta=0.0,
            total_profit=-item.cost,
            is_positive=False,
        )
    service_hourly_cost = item.cost / item.hours_saved
    delta = thl.real_thl - service_hourly_cost
    return DelegationROI(
        service_hourly_cost=service_hourly_cost,
        delta=delta,
        total_profit=delta * item.hours_saved,
        is_positive=delta > 0,
    )


def rank_delegations(
    items: Iterable[DelegationItem], thl: CalculatedTHL
) -> list[DelegationItem]:
    """Display order: highest total profit first; ties keep insertion order."""
    return sorted(items, key=lambda item: delegation_roi(item, thl).total_profit, reverse=True)


@dataclass(frozen=True)
class DelegationPortfolio:
    hours_bought: float
    total_cost: float
    value_generated: float
    net_profit: float
    roi_percent: float


def delegation_portfolio(
    items: Iterable[DelegationItem], thl: CalculatedTHL
) -> DelegationPortfolio:
    items = list(items)
    hours_bought = sum(item.hours_saved for item in items)
    total_cost = sum(item.cost for item in items)
    value_generated = hours_bought * thl.real_thl
    net_profit = value_generated - total_cost
    roi_percent = net_profit / total_cost * 100 if total_cost > 0 else 0.0
    return DelegationPortfolio(
        hours_bought=hours_bought,
        total_cost=total_cost,
        value_generated=value_generated,
        net_profit=net_profit,
        roi_percent=roi_percent,
    )


@dataclass(frozen=True)
class DiagnosisGain:
    hours_reclaimed: float
    estimated_cost: float
    value_generated: float
    net_gain: float


def diagnosis_gain(analysis: ContextAnalysisResult, thl: CalculatedTHL) -> DiagnosisGain:
    """Potential gain if every suggested delegation were adopted."""
    hours = sum(item.hours_saved for item in analysis.delegation_suggestions)
    cost = sum(item.cost for item in analysis.delegation_suggestions)
    value = hours * thl.real_thl
    return DiagnosisGain(
        hours_reclaimed=hours,
        estimated_cost=cost,
        value_generated=value,
        net_gain=value - cost,
    )


# === Prices expressed in time ===


@dataclass(frozen=True)
class WorkTimeCost:
    hours: float
    work_days: float


def price_in_work_time(price: float, thl: CalculatedTHL) -> WorkTimeCost:
    """How many working hours (and 8-hour days) a price costs."""
    hours = price / thl.real_thl if thl.real_thl > 0 else 0.0
    return WorkTimeCost(hours=hours, work_days=hours / WORK_DAY_HOURS)


def hours_of_life(price: float, thl: CalculatedTHL) -> float:
    """Hours of life a purchase consumes at the current THL."""
    return price_in_work_time(price, thl).hours


# === Goals ===


@dataclass(frozen=True)
class GoalProgress:
    current_income: float
    target_income: float
    percent: float

    @property
    def capped_percent(self) -> float:
        return min(self.percent, 100.0)


def income_goal_progress(thl: CalculatedTHL, compass: YearlyCompassData) -> GoalProgress:
    """Income implied by the current THL against the compass income target."""
    target = compass.financial_goal.target_monthly_income
    current_income = thl.real_thl * thl.monthly_total_hours
    percent = current_income / target * 100 if target > 0 else 0.0
    return GoalProgress(
        current_income=current_income,
        target_income=target,
        percent=percent,
    )


def target_thl_for_income(target_monthly_income: float, thl: CalculatedTHL) -> float:
    """THL needed to reach an income target with the current hour structure."""
    hours = thl.monthly_total_hours if thl.monthly_total_hours > 0 else FALLBACK_MONTHLY_HOURS
    return max(0.0, target_monthly_income) / hours


# === Skill leverage ===


@dataclass(frozen=True)
class ProjectionYear:
    year: int
    linear: float
    leveraged: float


@dataclass(frozen=True)
class SkillROI:
    opportunity_cost: float
    total_investment: float
    current_annual_earnings: float
    new_thl: float
    annual_delta: float
    months_to_break_even: float
    projection: list[ProjectionYear] = field(default_factory=list)


def skill_roi(
    course_cost: float,
    study_hours: float,
    increase_percent: float,
    thl: CalculatedTHL,
    years: int = 5,
) -> SkillROI:
    """Return on learning a skill expected to raise THL by ``increase_percent``.

    Study hours are priced at the current THL as opportunity cost. Earnings are
    annualized from the monthly invested hours.
    """
    opportunity_cost = study_hours * thl.real_thl
    total_investment = course_cost + opportunity_cost

    current_annual = thl.real_thl * thl.monthly_total_hours * 12
    new_thl = thl.real_thl * (1 + increase_percent / 100)
    new_annual = new_thl * thl.monthly_total_hours * 12
    annual_delta = new_annual - current_annual

    months_to_break_even = total_investment / (annual_delta / 12) if annual_delta > 0 else 0.0

    projection = [
        ProjectionYear(
            year=i,
            linear=current_annual * i,
            leveraged=new_annual * i - total_investment,
        )
        for i in range(1, years + 1)
    ]

    return SkillROI(
        opportunity_cost=opportunity_cost,
        total_investment=total_investment,
        current_annual_earnings=current_annual,
        new_thl=new_thl,
        annual_delta=annual_delta,
        months_to_break_even=months_to_break_even,
        projection=projection,
    )


# === Inaction ===


def inaction_monthly_cost(
    financial_cost: float, emotional_score: float, thl: CalculatedTHL
) -> float:
    """Monthly cost of postponing a decision.

    Each point of the 1-10 stress score consumes one hour of mental bandwidth
    per month, priced at the current THL.
    """
    return max(0.0, financial_cost) + max(0.0, emotional_score) * thl.real_thl


# === Deep work ===


def deep_work_value(seconds: float, thl: CalculatedTHL) -> float:
    """Value produced by a focused session at the current THL."""
    return max(0.0, seconds) / 3600 * thl.real_thl


@dataclass(frozen=True)
class DeepWorkSession:
    duration_seconds: int
    value: float


class DeepWorkLog:
    """Focused sessions, most recent first. Sessions of a minute or less are discarded."""

    def __init__(self, thl: CalculatedTHL):
        self._thl = thl
        self._sessions: list[DeepWorkSession] = []

    @property
    def sessions(self) -> list[DeepWorkSession]:
        return self._sessions.copy()

    @property
    def total_value(self) -> float:
        return sum(session.value for session in self._sessions)

    def record(self, seconds: int) -> DeepWorkSession | None:
        if seconds <= MIN_DEEP_WORK_SECONDS:
            return None
        session = DeepWorkSession(duration_seconds=seconds, value=deep_work_value(seconds, self._thl))
        self._sessions.insert(0, session)
        return session


# === Assets ===


def current_asset_value(asset: AssetItem) -> float:
    """Estimated value when an analysis provides one, otherwise the purchase value."""
    if asset.ai_analysis and asset.ai_analysis.current_value_estimated > 0:
        return asset.ai_analysis.current_value_estimated
    return asset.purchase_value


@dataclass(frozen=True)
class AssetPortfolio:
    total_invested: float
    net_worth: float
    monthly_liability: float
    ranked: list[AssetItem]


def asset_portfolio(assets: Sequence[AssetItem] | None) -> AssetPortfolio:
    assets = list(assets or [])
    return AssetPortfolio(
        total_invested=sum(asset.purchase_value for asset in assets),
        net_worth=sum(current_asset_value(asset) for asset in assets),
        monthly_liability=sum(
            asset.ai_analysis.maintenance_cost_monthly_estimate
            for asset in assets
            if asset.ai_analysis
        ),
        ranked=sorted(assets, key=current_asset_value, reverse=True),
    )
