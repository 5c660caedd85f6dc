"""Advisor service: every AI-backed operation behind a total contract.

Each public method builds its prompt, runs it through the model cascade and
validates the reply. Any failure (missing configuration, provider errors,
malformed JSON) is logged and replaced by a fixed fallback of the same shape,
so callers never handle exceptions from this layer. Cancellation is the only
thing that propagates.
"""

from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel

from opportunity_iq.advisor.parsing import parse_list, parse_model
from opportunity_iq.advisor.prompts import PromptCatalog, load_prompts
from opportunity_iq.advisor.runner import ModelCascadeRunner
from opportunity_iq.clients import FatalCompletionError
from opportunity_iq.models import (
    AnalysisCoordinates,
    Archetype,
    AssetAnalysis,
    AssetItem,
    CalculatedTHL,
    ContextAnalysisResult,
    DelegationAdvice,
    DepreciationTrend,
    EnergyAuditItem,
    FinancialProfile,
    FuturePath,
    InactionAnalysis,
    LifestyleAudit,
    ParetoAlternative,
    ParetoResult,
    PreMortemResult,
    RazorAnalysis,
    RefusalScripts,
    SkillAnalysis,
    SunkCostScenario,
    TimeTravelResult,
    Verdict,
    YearlyCompassData,
)

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class AdvisorUnavailableError(Exception):
    """The advisor has no completion client (no API key configured)."""


# === Fallbacks ===
# security=True when the provider rejected the key or request outright.


def asset_fallback(value: float, security: bool = False) -> AssetAnalysis:
    return AssetAnalysis(
        current_value_estimated=value,
        depreciation_trend=DepreciationTrend.STABLE,
        liquidity_score=0,
        maintenance_cost_monthly_estimate=0,
        commentary=(
            "ERRO CRÍTICO: Chave de API Inválida/Bloqueada."
            if security
            else "Sistema Offline: Não foi possível conectar à IA."
        ),
    )


def razors_fallback(security: bool = False) -> RazorAnalysis:
    if security:
        return RazorAnalysis(
            occam="Erro 403",
            inversion="Chave API Bloqueada",
            regret="Verifique Configurações",
            synthesis="Sistema pausado por segurança.",
        )
    return RazorAnalysis(
        occam="Simplifique o problema.",
        inversion="O que evitar?",
        regret="Pense no longo prazo.",
        synthesis="IA em repouso. Use sua intuição.",
    )


def life_context_fallback(security: bool = False) -> ContextAnalysisResult:
    return ContextAnalysisResult(
        delegation_suggestions=[],
        sunk_cost_suspects=[],
        lifestyle_risks=["Erro de conexão com Inteligência Central"],
        summary=(
            "ACESSO NEGADO: Chave de API revogada ou inválida."
            if security
            else "Não foi possível conectar à IA. Tente novamente."
        ),
        eternal_return_score=50,
        matrix_coordinates=AnalysisCoordinates(x=50, y=50, quadrant_label="Desconhecido"),
    )


SUNK_COST_FALLBACK = "O passado é imutável. Foque apenas no custo futuro. (IA Offline)"
DASHBOARD_FALLBACK = "Mantenha o foco. (IA Offline)"
TIME_WISDOM_FALLBACK = "Memento Mori."


def refusal_fallback(security: bool = False) -> RefusalScripts:
    return RefusalScripts(
        diplomatic="Não posso agora.", direct="Não.", alternative="Tente outra pessoa."
    )


def skill_fallback(security: bool = False) -> SkillAnalysis:
    return SkillAnalysis(
        is_realistic=True,
        market_reality_check="Dados indisponíveis.",
        commentary="Aprender sempre vale a pena.",
    )


def inaction_fallback(security: bool = False) -> InactionAnalysis:
    return InactionAnalysis(
        cumulative_cost_6_months=0,
        cumulative_cost_1year=0,
        cumulative_cost_3years=0,
        intangible_costs=["Erro IA"],
        call_to_action="Decida logo.",
    )


def delegation_advice_fallback(security: bool = False) -> DelegationAdvice:
    return DelegationAdvice(text="Calcule o ROI manualmente.", archetype=Archetype.CAMEL)


def pareto_fallback(security: bool = False) -> ParetoResult:
    return ParetoResult(vital_few=[], trivial_many=[])


def lifestyle_fallback(security: bool = False) -> LifestyleAudit:
    return LifestyleAudit(
        hours_of_life_lost=0,
        future_value_lost=0,
        pareto_alternative=ParetoAlternative(name="N/A", price_estimate=0, reasoning="Offline"),
        verdict=Verdict.WAIT,
    )


def pre_mortem_fallback(security: bool = False) -> PreMortemResult:
    return PreMortemResult(death_date="N/A", cause_of_death="Erro IA", autopsy_report=[])


def future_fallback(security: bool = False) -> TimeTravelResult:
    return TimeTravelResult(
        path_a=FuturePath(title="A", memoir="", regret_level=0),
        path_b=FuturePath(title="B", memoir="", regret_level=0),
        synthesis="Erro na simulação.",
    )


def _money(value: float | None) -> str:
    return "0" if value is None else f"{value:g}"


class AdvisorService:
    """AI-backed advice operations.

    Built with ``runner=None`` the service runs in degraded mode and every
    operation returns its fallback.
    """

    def __init__(
        self,
        runner: ModelCascadeRunner | None,
        prompts: PromptCatalog | None = None,
    ):
        self.runner = runner
        self.prompts = prompts or load_prompts()
        self._logger = logger.bind(
            component="advisor",
            provider=runner.client.provider if runner else None,
        )

    @property
    def is_available(self) -> bool:
        return self.runner is not None

    async def _complete(self, operation: str, **values: Any) -> str:
        if self.runner is None:
            raise AdvisorUnavailableError("No AI API key configured")
        prompt = self.prompts[operation]
        return await self.runner.run(
            prompt=prompt.render(**values),
            system_instruction=self.prompts.system_for(prompt),
            response_schema=prompt.schema,
            json_mode=prompt.json_mode,
        )

    def _fallback(self, operation: str, error: Exception) -> bool:
        """Log a recovered failure; returns whether it was a security block."""
        security = isinstance(error, FatalCompletionError)
        self._logger.warning(
            "advisor_fallback",
            operation=operation,
            error_type=type(error).__name__,
            error=str(error),
            security_block=security,
        )
        return security

    async def _structured(
        self,
        operation: str,
        model: type[M],
        fallback: Callable[[bool], M],
        **values: Any,
    ) -> M:
        try:
            text = await self._complete(operation, **values)
            return parse_model(text, model)
        except Exception as e:
            return fallback(self._fallback(operation, e))

    async def _text(self, operation: str, fallback: str, **values: Any) -> str:
        try:
            return await self._complete(operation, **values)
        except Exception as e:
            self._fallback(operation, e)
            return fallback

    # === Operations ===

    async def analyze_asset(
        self, name: str, description: str, value: float, year: int
    ) -> AssetAnalysis:
        """Estimate current value, liquidity and hidden monthly cost of an asset."""
        return await self._structured(
            "analyze_asset",
            AssetAnalysis,
            lambda security: asset_fallback(value, security),
            name=name,
            description=description,
            value=_money(value),
            year=year,
        )

    async def philosophical_analysis(self, dilemma: str) -> RazorAnalysis:
        return await self._structured(
            "philosophical_analysis", RazorAnalysis, razors_fallback, dilemma=dilemma
        )

    async def analyze_life_context(
        self,
        routine: str,
        assets: Sequence[AssetItem] | None,
        thl: float,
        profile: FinancialProfile,
        sleep_hours: float = 7.0,
    ) -> ContextAnalysisResult:
        """Forensic audit of a routine: delegation suggestions, risks, matrix position."""
        return await self._structured(
            "analyze_life_context",
            ContextAnalysisResult,
            life_context_fallback,
            routine=routine,
            assets=", ".join(asset.name for asset in assets or []),
            thl=thl,
            net_income=_money(profile.net_income),
            sleep_hours=f"{sleep_hours:g}",
        )

    async def sunk_cost_analysis(self, scenario: SunkCostScenario, thl: CalculatedTHL) -> str:
        return await self._text(
            "sunk_cost_analysis",
            SUNK_COST_FALLBACK,
            title=scenario.title,
            description=scenario.description,
            thl=thl.real_thl,
            future_cost=_money(scenario.projected_future_cost_money),
            future_time=_money(scenario.projected_future_cost_time),
        )

    async def refusal_scripts(self, request: str) -> RefusalScripts:
        return await self._structured(
            "refusal_scripts", RefusalScripts, refusal_fallback, request=request
        )

    async def skill_analysis(self, skill: str, current_thl: float, increase: float) -> SkillAnalysis:
        return await self._structured(
            "skill_analysis",
            SkillAnalysis,
            skill_fallback,
            skill=skill,
            thl=current_thl,
            increase=f"{increase:g}",
        )

    async def inaction_analysis(self, decision: str, monthly_cost: float) -> InactionAnalysis:
        return await self._structured(
            "inaction_analysis",
            InactionAnalysis,
            inaction_fallback,
            decision=decision,
            monthly_cost=monthly_cost,
        )

    async def delegation_advice(
        self, item: str, cost: float, hours_saved: float, thl: float
    ) -> DelegationAdvice:
        return await self._structured(
            "delegation_advice",
            DelegationAdvice,
            delegation_advice_fallback,
            item=item,
            cost=_money(cost),
            hours_saved=f"{hours_saved:g}",
            thl=thl,
        )

    async def pareto_analysis(self, tasks: str) -> ParetoResult:
        return await self._structured("pareto_analysis", ParetoResult, pareto_fallback, tasks=tasks)

    async def lifestyle_audit(self, item: str, price: float, thl: float) -> LifestyleAudit:
        return await self._structured(
            "lifestyle_audit",
            LifestyleAudit,
            lifestyle_fallback,
            item=item,
            price=_money(price),
            thl=thl,
        )

    async def dashboard_alignment(
        self, time_data: Sequence[Mapping[str, Any]], goals: YearlyCompassData
    ) -> str:
        """Short comment on how time use lines up with the year's goals."""
        usage = ", ".join(
            f"{entry.get('name', '?')}: {entry.get('value', 0)}h" for entry in time_data or []
        )
        goal_texts = "; ".join(goal.text for goal in goals.goals if goal.text)
        return await self._text(
            "dashboard_alignment",
            DASHBOARD_FALLBACK,
            time_data=usage or "sem dados",
            goals=goal_texts or "nenhuma meta definida",
        )

    async def time_wisdom(self) -> str:
        return await self._text("time_wisdom", TIME_WISDOM_FALLBACK)

    async def pre_mortem(self, goal: str) -> PreMortemResult:
        return await self._structured("pre_mortem", PreMortemResult, pre_mortem_fallback, goal=goal)

    async def future_simulations(self, path_a: str, path_b: str) -> TimeTravelResult:
        return await self._structured(
            "future_simulations",
            TimeTravelResult,
            future_fallback,
            path_a=path_a,
            path_b=path_b,
        )

    async def energy_audit(self, tasks: str) -> list[EnergyAuditItem]:
        try:
            text = await self._complete("energy_audit", tasks=tasks)
            return parse_list(text, EnergyAuditItem)
        except Exception as e:
            self._fallback("energy_audit", e)
            return []
