"""Hourly value (THL) engine.

THL, Taxa Horária Líquida, is the real net hourly value: net income divided
by every hour the job actually consumes, unpaid commute included. The 4.33
weeks per month and 5 commuting days per week are user-visible constants;
changing them changes every number shown to users.
"""

from __future__ import annotations

from dataclasses import dataclass

from opportunity_iq.models import CalculatedTHL, FinancialProfile

WEEKS_PER_MONTH = 4.33
COMMUTE_DAYS_PER_WEEK = 5
DAYS_PER_MONTH = 30
HOURS_PER_DAY = 24


def compute_thl(profile: FinancialProfile) -> CalculatedTHL:
    """Derive hourly values from a financial profile.

    Pure and total: a profile with no invested hours yields zero rates
    instead of dividing by zero.
    """
    work_hours_monthly = profile.contract_hours_weekly * WEEKS_PER_MONTH
    commute_hours_monthly = (
        (profile.commute_minutes_daily / 60) * COMMUTE_DAYS_PER_WEEK * WEEKS_PER_MONTH
    )
    total_invested_hours = work_hours_monthly + commute_hours_monthly

    if total_invested_hours > 0:
        real_thl = profile.net_income / total_invested_hours
        aspirational_thl = profile.aspirational_income / total_invested_hours
    else:
        real_thl = 0.0
        aspirational_thl = 0.0

    return CalculatedTHL(
        real_thl=real_thl,
        aspirational_thl=aspirational_thl,
        monthly_total_hours=total_invested_hours,
        monthly_commute_hours=commute_hours_monthly,
    )


def thl_progress(thl: CalculatedTHL) -> float:
    """Real THL as a percentage of the aspirational THL, capped at 100."""
    if thl.aspirational_thl <= 0:
        return 0.0
    return min(thl.real_thl / thl.aspirational_thl * 100, 100.0)


@dataclass(frozen=True)
class DailyTimeBudget:
    """How a day is spent once work, commute and routines are accounted for."""

    sleep_hours: float
    work_hours: float
    commute_hours: float
    physical_hours: float
    study_hours: float
    free_hours: float

    @property
    def committed_hours(self) -> float:
        return (
            self.sleep_hours
            + self.work_hours
            + self.commute_hours
            + self.physical_hours
            + self.study_hours
        )


def daily_time_budget(
    thl: CalculatedTHL,
    sleep_hours: float = 7.0,
    physical_minutes: float = 0.0,
    study_minutes: float = 0.0,
) -> DailyTimeBudget:
    """Spread monthly work and commute over 30 days and compute the free remainder."""
    work_hours = (thl.monthly_total_hours - thl.monthly_commute_hours) / DAYS_PER_MONTH
    commute_hours = thl.monthly_commute_hours / DAYS_PER_MONTH
    physical_hours = physical_minutes / 60
    study_hours = study_minutes / 60
    committed = sleep_hours + work_hours + commute_hours + physical_hours + study_hours

    return DailyTimeBudget(
        sleep_hours=sleep_hours,
        work_hours=work_hours,
        commute_hours=commute_hours,
        physical_hours=physical_hours,
        study_hours=study_hours,
        free_hours=max(0.0, HOURS_PER_DAY - committed),
    )


@dataclass(frozen=True)
class IncomeBracket:
    percentile: int
    label: str


# Approximation of the IBGE (PNAD 2023/24) monthly income distribution
INCOME_BRACKETS: tuple[tuple[float, IncomeBracket], ...] = (
    (28000, IncomeBracket(99, "Top 1% (Elite Econômica)")),
    (15000, IncomeBracket(95, "Top 5% (Classe A)")),
    (7500, IncomeBracket(90, "Top 10% (Classe B)")),
    (3500, IncomeBracket(70, "Classe C+ (Média Alta)")),
    (2000, IncomeBracket(50, "Classe C (Média)")),
)
LOWEST_BRACKET = IncomeBracket(30, "Classe D/E")


def income_percentile(net_income: float) -> IncomeBracket:
    """Map a monthly net income to its national income bracket."""
    for threshold, bracket in INCOME_BRACKETS:
        if net_income >= threshold:
            return bracket
    return LOWEST_BRACKET
