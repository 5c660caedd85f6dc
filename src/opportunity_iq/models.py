"""Domain models for OpportunityIQ.

Models use snake_case attributes and camelCase aliases, which is the shape the
local store and the AI layer exchange. Everything that arrives from outside
(persisted JSON, AI responses) passes through these models, so list fields are
guarded and enumerations are read leniently.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, TypeVar
from uuid import uuid4

import structlog
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _list_or_empty(value: Any) -> Any:
    return value if isinstance(value, list) else []


def _non_negative(value: Any) -> Any:
    if value is None:
        return 0.0
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return 0.0


def _clamp_0_100(value: Any) -> Any:
    try:
        return min(100.0, max(0.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


def _clamp_0_10(value: Any) -> Any:
    try:
        return min(10.0, max(0.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


def _text(value: Any) -> Any:
    return "" if value is None else str(value)


def _or_none(coerce: Any) -> Any:
    def validate(value: Any) -> Any:
        return None if value is None or value == "" else coerce(value)

    return validate


GuardedList = Annotated[list[T], BeforeValidator(_list_or_empty)]
NonNegative = Annotated[float, BeforeValidator(_non_negative)]
Score100 = Annotated[float, BeforeValidator(_clamp_0_100)]
Score10 = Annotated[float, BeforeValidator(_clamp_0_10)]
Text = Annotated[str, BeforeValidator(_text)]
OptionalNonNegative = Annotated[float | None, BeforeValidator(_or_none(_non_negative))]
OptionalScore100 = Annotated[float | None, BeforeValidator(_or_none(_clamp_0_100))]


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid4())


class CamelModel(BaseModel):
    """Base model with camelCase wire aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON-compatible form."""
        return self.model_dump(mode="json", by_alias=True)


def _lenient_enum(enum_cls: type[Enum], value: Any, default: Any) -> Any:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        for member in enum_cls:
            if member.value.lower() == value.strip().lower():
                return member
    return default


# === Enumerations ===


class Frequency(str, Enum):
    """How often a delegated task recurs."""

    ONCE = "once"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class DelegationCategory(str, Enum):
    CLEANING = "cleaning"
    TRANSPORT = "transport"
    ADMIN = "admin"
    SOFTWARE = "software"
    OTHER = "other"


class Archetype(str, Enum):
    """Nietzsche's three metamorphoses, used to classify tasks."""

    CAMEL = "CAMEL"  # carries weight, should be delegated
    LION = "LION"  # conquers freedom
    CHILD = "CHILD"  # pure creation


class AssetCategory(str, Enum):
    VEHICLE = "VEHICLE"
    REAL_ESTATE = "REAL_ESTATE"
    ELECTRONICS = "ELECTRONICS"
    INVESTMENT = "INVESTMENT"
    OTHER = "OTHER"


class DepreciationTrend(str, Enum):
    APPRECIATING = "APPRECIATING"
    DEPRECIATING = "DEPRECIATING"
    STABLE = "STABLE"


class GoalStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


# === Financial profile & THL ===


class FinancialProfile(CamelModel):
    """Income and time inputs the hourly value is derived from."""

    net_income: float = Field(default=0.0, ge=0)
    contract_hours_weekly: float = Field(default=0.0, ge=0)
    commute_minutes_daily: float = Field(default=0.0, ge=0)
    aspirational_income: float = Field(default=0.0, ge=0)


class CalculatedTHL(CamelModel):
    """Derived hourly values. Never persisted."""

    model_config = ConfigDict(frozen=True)

    real_thl: float = Field(default=0.0, alias="realTHL")
    aspirational_thl: float = Field(default=0.0, alias="aspirationalTHL")
    monthly_total_hours: float = 0.0
    monthly_commute_hours: float = 0.0


# === Delegations & assets ===


class DelegationItem(CamelModel):
    """A task the user could pay someone else to perform."""

    id: str = Field(default_factory=new_id)
    name: Text
    cost: NonNegative = 0.0
    hours_saved: NonNegative = 0.0
    frequency: Frequency = Frequency.MONTHLY
    category: DelegationCategory = DelegationCategory.OTHER
    archetype: Archetype | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _ensure_id(cls, value: Any) -> Any:
        return value if value else new_id()

    @field_validator("frequency", mode="before")
    @classmethod
    def _read_frequency(cls, value: Any) -> Any:
        return _lenient_enum(Frequency, value, Frequency.MONTHLY)

    @field_validator("category", mode="before")
    @classmethod
    def _read_category(cls, value: Any) -> Any:
        return _lenient_enum(DelegationCategory, value, DelegationCategory.OTHER)

    @field_validator("archetype", mode="before")
    @classmethod
    def _read_archetype(cls, value: Any) -> Any:
        return _lenient_enum(Archetype, value, None)


class AssetAnalysis(CamelModel):
    """AI estimate attached to an asset after enrichment."""

    current_value_estimated: NonNegative = 0.0
    depreciation_trend: DepreciationTrend = DepreciationTrend.STABLE
    liquidity_score: Score100 = 0.0
    maintenance_cost_monthly_estimate: NonNegative = 0.0
    commentary: Text = ""

    @field_validator("depreciation_trend", mode="before")
    @classmethod
    def _read_trend(cls, value: Any) -> Any:
        return _lenient_enum(DepreciationTrend, value, DepreciationTrend.STABLE)


class AssetItem(CamelModel):
    id: str = Field(default_factory=new_id)
    name: Text
    description: Text = ""
    purchase_year: int = Field(default_factory=lambda: datetime.now(timezone.utc).year)
    purchase_value: NonNegative = 0.0
    category: AssetCategory = AssetCategory.OTHER
    ai_analysis: AssetAnalysis | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _ensure_id(cls, value: Any) -> Any:
        return value if value else new_id()

    @field_validator("category", mode="before")
    @classmethod
    def _read_category(cls, value: Any) -> Any:
        return _lenient_enum(AssetCategory, value, AssetCategory.OTHER)


# === Life context & analysis ===


class LifeContext(CamelModel):
    """Per-user routine description. Overwritten wholesale on save."""

    routine_description: Text = ""
    assets_description: Text = ""
    sleep_hours: NonNegative = 7.0
    physical_activity_minutes: OptionalNonNegative = None
    study_minutes: OptionalNonNegative = None
    last_updated: str = Field(default_factory=utc_now_iso)
    eternal_return_score: OptionalScore100 = None
    eternal_return_text: str | None = None


class AnalysisCoordinates(CamelModel):
    x: Score100 = 50.0  # autonomy
    y: Score100 = 50.0  # efficiency
    quadrant_label: Text = ""


class SunkCostSuspect(CamelModel):
    title: Text = ""
    description: Text = ""


class ContextAnalysisResult(CamelModel):
    """Outcome of the life-context audit."""

    delegation_suggestions: GuardedList[DelegationItem] = Field(default_factory=list)
    sunk_cost_suspects: GuardedList[SunkCostSuspect] = Field(default_factory=list)
    lifestyle_risks: GuardedList[Text] = Field(default_factory=list)
    summary: Text = ""
    eternal_return_score: OptionalScore100 = None
    eternal_return_analysis: str | None = None
    matrix_coordinates: AnalysisCoordinates | None = None

    @field_validator("delegation_suggestions", mode="before")
    @classmethod
    def _drop_invalid_suggestions(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        valid: list[DelegationItem] = []
        for raw in value:
            try:
                valid.append(DelegationItem.model_validate(raw))
            except ValidationError as e:
                logger.warning("delegation_suggestion_dropped", error=str(e))
        return valid

    @field_validator("sunk_cost_suspects", mode="before")
    @classmethod
    def _drop_invalid_suspects(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, (dict, BaseModel))]


# === Yearly compass ===


class CompassGoal(CamelModel):
    text: Text = ""
    indicator: Text = ""
    completed: bool = False
    status: GoalStatus = GoalStatus.PENDING

    @model_validator(mode="after")
    def _sync_status(self) -> "CompassGoal":
        # completed is authoritative
        if self.completed and self.status is not GoalStatus.COMPLETED:
            self.status = GoalStatus.COMPLETED
        elif not self.completed and self.status is GoalStatus.COMPLETED:
            self.status = GoalStatus.PENDING
        return self

    @field_validator("status", mode="before")
    @classmethod
    def _read_status(cls, value: Any) -> Any:
        return _lenient_enum(GoalStatus, value, GoalStatus.PENDING)


class FinancialGoal(CamelModel):
    target_monthly_income: NonNegative = 0.0
    target_thl: NonNegative = Field(default=0.0, alias="targetTHL")
    deadline_month: Text = ""


class YearlyCompassData(CamelModel):
    """Exactly three goals plus a financial target."""

    goal1: CompassGoal = Field(default_factory=CompassGoal)
    goal2: CompassGoal = Field(default_factory=CompassGoal)
    goal3: CompassGoal = Field(default_factory=CompassGoal)
    financial_goal: FinancialGoal = Field(default_factory=FinancialGoal)

    @property
    def goals(self) -> tuple[CompassGoal, CompassGoal, CompassGoal]:
        return (self.goal1, self.goal2, self.goal3)

    def with_goal(self, index: int, **changes: Any) -> "YearlyCompassData":
        """Return a copy with goal ``index`` (0-2) updated."""
        if index not in (0, 1, 2):
            raise IndexError(f"goal index must be 0, 1 or 2, got {index}")
        key = f"goal{index + 1}"
        goal = getattr(self, key).model_copy(update=changes)
        return self.model_copy(update={key: CompassGoal.model_validate(goal.model_dump())})


# === Monthly notes ===


class MonthlyNote(CamelModel):
    """Journal entry; at most one per (month, year) per user."""

    id: str | None = None
    month: int = Field(ge=1, le=12)
    year: int
    content: Text = ""
    updated_at: str = Field(default_factory=utc_now_iso)

    @property
    def key(self) -> tuple[int, int]:
        return (self.month, self.year)


# === Aggregate ===


class UserDataBundle(CamelModel):
    """Everything loaded for one user. Identical shape for every backend."""

    profile: FinancialProfile = Field(default_factory=FinancialProfile)
    delegations: GuardedList[DelegationItem] = Field(default_factory=list)
    assets: GuardedList[AssetItem] = Field(default_factory=list)
    life_context: LifeContext | None = None
    analysis_result: ContextAnalysisResult | None = None
    year_compass: YearlyCompassData = Field(default_factory=YearlyCompassData)
    monthly_notes: GuardedList[MonthlyNote] = Field(default_factory=list)


# === AI result types ===


class VitalTask(CamelModel):
    task: Text = ""
    impact: Text = ""


class TrivialAction(str, Enum):
    ELIMINATE = "ELIMINATE"
    DELEGATE = "DELEGATE"
    AUTOMATE = "AUTOMATE"


class TrivialTask(CamelModel):
    task: Text = ""
    action: TrivialAction = TrivialAction.ELIMINATE
    reasoning: Text = ""

    @field_validator("action", mode="before")
    @classmethod
    def _read_action(cls, value: Any) -> Any:
        return _lenient_enum(TrivialAction, value, TrivialAction.ELIMINATE)


class ParetoResult(CamelModel):
    vital_few: GuardedList[VitalTask] = Field(default_factory=list)
    trivial_many: GuardedList[TrivialTask] = Field(default_factory=list)


class RazorAnalysis(CamelModel):
    occam: Text = ""
    inversion: Text = ""
    regret: Text = ""
    synthesis: Text = ""


class AutopsyEntry(CamelModel):
    cause: Text = ""
    prevention: Text = ""


class PreMortemResult(CamelModel):
    death_date: Text = ""
    cause_of_death: Text = ""
    autopsy_report: GuardedList[AutopsyEntry] = Field(default_factory=list)


class FuturePath(CamelModel):
    title: Text = ""
    memoir: Text = ""
    regret_level: Score10 = 0.0


class TimeTravelResult(CamelModel):
    path_a: FuturePath = Field(default_factory=FuturePath)
    path_b: FuturePath = Field(default_factory=FuturePath)
    synthesis: Text = ""


class EnergyLevel(str, Enum):
    GAIN = "GAIN"
    DRAIN = "DRAIN"


class ValueLevel(str, Enum):
    HIGH = "HIGH"
    LOW = "LOW"


class EnergyQuadrant(str, Enum):
    GENIUS = "GENIUS"
    TRAP = "TRAP"
    GRIND = "GRIND"
    DUMP = "DUMP"


class EnergyAuditItem(CamelModel):
    task: Text = ""
    energy: EnergyLevel
    value: ValueLevel
    quadrant: EnergyQuadrant
    advice: Text = ""


class ParetoAlternative(CamelModel):
    name: Text = ""
    price_estimate: NonNegative = 0.0
    reasoning: Text = ""


class Verdict(str, Enum):
    BUY = "BUY"
    WAIT = "WAIT"
    DOWNGRADE = "DOWNGRADE"


class LifestyleAudit(CamelModel):
    hours_of_life_lost: NonNegative = 0.0
    future_value_lost: NonNegative = 0.0
    pareto_alternative: ParetoAlternative = Field(default_factory=ParetoAlternative)
    verdict: Verdict = Verdict.WAIT

    @field_validator("verdict", mode="before")
    @classmethod
    def _read_verdict(cls, value: Any) -> Any:
        return _lenient_enum(Verdict, value, Verdict.WAIT)


class SunkCostScenario(CamelModel):
    title: Text
    description: Text = ""
    invested_money: float | None = None
    invested_time_months: float | None = None
    projected_future_cost_money: float | None = None
    projected_future_cost_time: float | None = None


class SkillAnalysis(CamelModel):
    is_realistic: bool = True
    market_reality_check: Text = ""
    commentary: Text = ""


class InactionAnalysis(CamelModel):
    cumulative_cost_6_months: NonNegative = Field(default=0.0, alias="cumulativeCost6Months")
    cumulative_cost_1year: NonNegative = Field(default=0.0, alias="cumulativeCost1year")
    cumulative_cost_3years: NonNegative = Field(default=0.0, alias="cumulativeCost3years")
    intangible_costs: GuardedList[Text] = Field(default_factory=list)
    call_to_action: Text = ""


class RefusalScripts(CamelModel):
    diplomatic: Text = ""
    direct: Text = ""
    alternative: Text = ""


class DelegationAdvice(CamelModel):
    text: Text = ""
    archetype: Archetype = Archetype.CAMEL

    @field_validator("archetype", mode="before")
    @classmethod
    def _read_archetype(cls, value: Any) -> Any:
        return _lenient_enum(Archetype, value, Archetype.CAMEL)
