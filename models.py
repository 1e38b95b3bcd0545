from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

UNDETERMINED = "nao_determinado"


class SuggestionCategory(str, Enum):
    STRATEGY = "strategy"
    INVESTMENT = "investment"
    MARKET = "market"
    GROWTH = "growth"
    FINANCIAL = "financial"
    POSITIONING = "positioning"
    INVENTORY = "inventory"
    PRICING = "pricing"
    PRODUCT = "product"
    CUSTOMER = "customer"
    CONVERSION = "conversion"
    MARKETING = "marketing"
    COUPON = "coupon"
    OPERATIONAL = "operational"


STRATEGIC_CATEGORIES = frozenset(
    {
        SuggestionCategory.STRATEGY,
        SuggestionCategory.INVESTMENT,
        SuggestionCategory.MARKET,
        SuggestionCategory.GROWTH,
        SuggestionCategory.FINANCIAL,
        SuggestionCategory.POSITIONING,
    }
)


class ImpactTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DataSource(str, Enum):
    DIRECT = "dado_direto"
    INFERENCE = "inferencia"
    BEST_PRACTICE = "boa_pratica_geral"


class ImplementationType(str, Enum):
    NATIVE = "nativo"
    APP = "app"
    THIRD_PARTY = "terceiro"


class Complexity(str, Enum):
    LOW = "baixa"
    MEDIUM = "media"
    HIGH = "alta"


class ConfidenceLevel(str, Enum):
    HIGH = "alta"
    MEDIUM = "media"
    LOW = "baixa"


class ResultKind(str, Enum):
    CURRENCY = "currency"
    PERCENTAGE = "percentage"


class FinalState(str, Enum):
    APPROVED = "approved"
    IMPROVED = "improved"
    REPLACED = "replaced"


class HealthBand(str, Enum):
    CRITICAL = "critical"
    ATTENTION = "attention"
    HEALTHY = "healthy"
    EXCELLENT = "excellent"


class SalesTrend(str, Enum):
    GROWTH = "crescimento"
    STABLE = "estavel"
    MILD_DECLINE = "queda_leve"
    STRONG_DECLINE = "queda_forte"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SaturationLevel(str, Enum):
    BLOCKED = "blocked"
    FREQUENT = "frequent"
    USED = "used"
    PREFERRED = "preferred"


class AnalysisType(str, Enum):
    GENERAL = "general"
    FINANCIAL = "financial"
    CONVERSION = "conversion"
    COMPETITORS = "competitors"
    CAMPAIGNS = "campaigns"
    TRACKING = "tracking"


class Porte(str, Enum):
    MICRO = "micro"
    PEQUENO = "pequeno"
    MEDIO = "medio"
    GRANDE = "grande"
    UNDETERMINED = UNDETERMINED


class MaturidadeDigital(str, Enum):
    INICIANTE = "iniciante"
    INTERMEDIARIO = "intermediario"
    AVANCADO = "avancado"
    UNDETERMINED = UNDETERMINED


class ProblemCategory(str, Enum):
    ESTOQUE = "estoque"
    TICKET = "ticket"
    CONVERSAO = "conversao"
    RETENCAO = "retencao"
    CUPONS = "cupons"
    MARKETING = "marketing"
    OPERACIONAL = "operacional"
    PRODUTO = "produto"


class SolutionType(str, Enum):
    REPOSICAO = "reposicao"
    DESCONTO = "desconto"
    EMAIL = "email"
    FIDELIDADE = "fidelidade"
    UPSELL = "upsell"
    CROSSSELL = "crosssell"
    BUNDLE = "bundle"
    SOCIAL = "social"
    CONTEUDO = "conteudo"
    UX = "ux"


class VerificationCheck(str, Enum):
    NUMERIC = "numeric_cross_check"
    ORIGINALITY = "originality"
    SPECIFICITY = "specificity"
    FEASIBILITY = "feasibility"
    IMPACT_CALCULATION = "impact_calculation"
    ALIGNMENT = "alignment"
    ACTION_QUALITY = "action_quality"


VERIFICATION_ORDER: List[VerificationCheck] = list(VerificationCheck)


# ---------------------------------------------------------------------------
# Input bundle
# ---------------------------------------------------------------------------


class StoreInfo(BaseModel):
    name: str
    platform: str = "nuvemshop"
    niche: Optional[str] = None
    subcategory: Optional[str] = None
    url: Optional[str] = None
    tenure_months: Optional[int] = Field(default=None, ge=0)


class StoreGoals(BaseModel):
    monthly_revenue: Optional[float] = Field(default=None, ge=0)
    annual_revenue: Optional[float] = Field(default=None, ge=0)
    target_ticket: Optional[float] = Field(default=None, ge=0)
    monthly_visits: Optional[int] = Field(default=None, ge=0)


class TopProduct(BaseModel):
    name: str
    revenue: float = Field(ge=0)


class OrdersSummary(BaseModel):
    total_orders: Optional[int] = Field(default=None, ge=0)
    total_revenue: Optional[float] = Field(default=None, ge=0)
    average_ticket: Optional[float] = Field(default=None, ge=0)
    cancelled_orders: Optional[int] = Field(default=None, ge=0)
    cancellation_rate: Optional[float] = Field(default=None, ge=0, le=100)
    previous_period_revenue: Optional[float] = Field(default=None, ge=0)
    daily_revenue: List[float] = Field(default_factory=list)


class ProductsSummary(BaseModel):
    active_products: Optional[int] = Field(default=None, ge=0)
    out_of_stock: Optional[int] = Field(default=None, ge=0)
    low_stock: Optional[int] = Field(default=None, ge=0)
    top_products: List[TopProduct] = Field(default_factory=list)


class CouponsSummary(BaseModel):
    orders_with_coupon: Optional[int] = Field(default=None, ge=0)
    usage_rate: Optional[float] = Field(default=None, ge=0, le=100)
    ticket_impact: Optional[float] = Field(default=None, ge=0, le=100)


class NicheBenchmarks(BaseModel):
    average_ticket: Optional[float] = Field(default=None, gt=0)
    conversion_rate: Optional[float] = Field(default=None, ge=0)
    source: str = "informado"
    extra: Dict[str, Any] = Field(default_factory=dict)


class HistoricalSuggestion(BaseModel):
    id: str
    title: str
    description: str = ""
    category: Optional[str] = None
    status: Optional[str] = None

    @field_validator("id", mode="before")
    def coerce_id(cls, v: Any) -> str:
        return str(v)


class StoreAnalysisRequest(BaseModel):
    analysis_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    store: StoreInfo
    analysis_type: AnalysisType = AnalysisType.GENERAL
    goals: StoreGoals = Field(default_factory=StoreGoals)
    period_days: int = Field(default=30, ge=1)
    orders: OrdersSummary = Field(default_factory=OrdersSummary)
    products: ProductsSummary = Field(default_factory=ProductsSummary)
    coupons: CouponsSummary = Field(default_factory=CouponsSummary)
    benchmarks: Optional[NicheBenchmarks] = None
    previous_analyses: List[Dict[str, Any]] = Field(default_factory=list)
    previous_suggestions: List[HistoricalSuggestion] = Field(default_factory=list)
    competitors: List[Dict[str, Any]] = Field(default_factory=list)
    strategy_snippets: List[str] = Field(default_factory=list)
    today: Optional[date] = None

    def reference_date(self) -> date:
        return self.today or date.today()

    def monthly_revenue(self) -> Optional[float]:
        """Period revenue normalized to a 30-day month."""
        if self.orders.total_revenue is None:
            return None
        return round(self.orders.total_revenue * 30.0 / self.period_days, 2)


# ---------------------------------------------------------------------------
# Stage outputs
# ---------------------------------------------------------------------------


class StoreProfile(BaseModel):
    nicho: str = UNDETERMINED
    subnicho: str = UNDETERMINED
    porte: Porte = Porte.UNDETERMINED
    maturidade_digital: MaturidadeDigital = MaturidadeDigital.UNDETERMINED
    publico_alvo: str = UNDETERMINED
    diferenciais: List[str] = Field(default_factory=list)
    sazonalidade: str = UNDETERMINED


class AnalysisContext(BaseModel):
    data: str
    upcoming_seasonal_events: List[str] = Field(default_factory=list)
    initial_observations: List[str] = Field(default_factory=list)


class ProfileResult(BaseModel):
    profile: StoreProfile
    context: AnalysisContext


class CollectorDigest(BaseModel):
    historical_summary: List[str] = Field(default_factory=list)
    success_patterns: List[str] = Field(default_factory=list)
    suggestions_to_avoid: List[str] = Field(default_factory=list)
    relevant_benchmarks: Dict[str, Any] = Field(default_factory=dict)
    identified_gaps: List[str] = Field(default_factory=list)
    special_context: str = ""


class HealthBreakdown(BaseModel):
    ticket: Optional[int] = Field(default=None, ge=0, le=25)
    stock: Optional[int] = Field(default=None, ge=0, le=25)
    cancellation: Optional[int] = Field(default=None, ge=0, le=15)
    coupons: Optional[int] = Field(default=None, ge=0, le=15)
    trend: Optional[int] = Field(default=None, ge=0, le=20)

    def known(self) -> Dict[str, int]:
        return {key: value for key, value in self.model_dump().items() if value is not None}


class HealthScore(BaseModel):
    total: Optional[int] = Field(default=None, ge=0, le=100)
    band: Optional[HealthBand] = None
    breakdown: HealthBreakdown = Field(default_factory=HealthBreakdown)
    missing_components: List[str] = Field(default_factory=list)
    complete: bool = False

    @model_validator(mode="after")
    def validate_sum(self) -> "HealthScore":
        known = self.breakdown.known()
        if not known:
            if self.total is not None:
                raise ValueError("total must be null when no component is known")
            return self
        if self.total != min(100, max(0, sum(known.values()))):
            raise ValueError(f"total {self.total} must equal the sum of sub-scores {known}")
        return self


class AnalysisMetrics(BaseModel):
    period_days: int
    total_revenue: Optional[float] = None
    monthly_revenue: Optional[float] = None
    total_orders: Optional[int] = None
    average_ticket: Optional[float] = None
    benchmark_ticket: Optional[float] = None
    ticket_ratio_pct: Optional[float] = None
    previous_period_revenue: Optional[float] = None
    sales_change_pct: Optional[float] = None
    sales_trend: Optional[SalesTrend] = None
    cancellation_rate: Optional[float] = None
    active_products: Optional[int] = None
    out_of_stock_count: Optional[int] = None
    out_of_stock_pct: Optional[float] = None
    low_stock_count: Optional[int] = None
    coupon_usage_rate: Optional[float] = None
    coupon_ticket_impact: Optional[float] = None
    top3_revenue_share: Optional[float] = None
    health: HealthScore = Field(default_factory=HealthScore)

    def ground_truth(self) -> Dict[str, float]:
        """Numeric metrics that downstream stages may cite."""
        values = self.model_dump(exclude={"health", "sales_trend", "period_days"})
        return {key: float(value) for key, value in values.items() if value is not None}


class Anomaly(BaseModel):
    type: str
    description: str
    severity: Severity
    evidence: Dict[str, Any]
    impact_estimate: Optional[float] = None

    @field_validator("evidence")
    def require_evidence(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        if not v:
            raise ValueError("anomaly requires at least one piece of evidence")
        return v


class Alert(BaseModel):
    level: str
    metric: str
    message: str
    value: Optional[float] = None


class PrioritizedProblem(BaseModel):
    rank: int = Field(ge=1)
    problem_category: ProblemCategory
    description: str
    metric: Optional[str] = None
    value: Optional[float] = None


class DataQuality(BaseModel):
    missing_metrics: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class AnalystReport(BaseModel):
    metrics: AnalysisMetrics
    anomalies: List[Anomaly] = Field(default_factory=list)
    identified_patterns: List[str] = Field(default_factory=list)
    alerts: List[Alert] = Field(default_factory=list)
    data_quality: DataQuality = Field(default_factory=DataQuality)
    prioritized_problems: List[PrioritizedProblem] = Field(default_factory=list)
    seasonality_note: str = ""


class ThemeSaturationEntry(BaseModel):
    theme: str
    label: str
    count: int = Field(ge=0)
    level: SaturationLevel
    matched_suggestion_ids: List[str] = Field(default_factory=list)


class ProhibitedZone(BaseModel):
    id: str
    original_title: str
    problem_category: ProblemCategory
    problem_description: str = ""
    solution_type: SolutionType
    keywords: List[str] = Field(default_factory=list)
    prohibited_variations: List[str] = Field(min_length=3)


class CoverageSummary(BaseModel):
    categories_covered: List[str] = Field(default_factory=list)
    categories_gaps: List[str] = Field(default_factory=list)
    total_analyzed: int = Field(default=0, ge=0)


class SimilarityReport(BaseModel):
    prohibited_zones: List[ProhibitedZone] = Field(default_factory=list)
    allowed_approaches: Dict[str, List[str]] = Field(default_factory=dict)
    coverage_summary: CoverageSummary = Field(default_factory=CoverageSummary)
    strategist_guidance: str = ""


class ActionStep(BaseModel):
    step: int = Field(default=1, ge=1)
    what: str = ""
    how: str = ""
    expected_result: str = ""
    time: str = ""
    resources: str = ""
    indicator: str = ""

    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = ("what", "how", "expected_result", "resources")

    def missing_fields(self) -> List[str]:
        return [name for name in self.REQUIRED_FIELDS if not str(getattr(self, name) or "").strip()]


class ImpactCalculation(BaseModel):
    base_metric: str = ""
    base_value: Optional[float] = None
    improvement_rate: Optional[float] = None
    projected_value: Optional[float] = None

    def expected_projection(self) -> Optional[float]:
        if self.base_value is None or self.improvement_rate is None:
            return None
        return round(self.base_value * self.improvement_rate, 2)

    def is_consistent(self, tolerance: float = 0.02) -> bool:
        expected = self.expected_projection()
        if expected is None or self.projected_value is None:
            return False
        scale = max(abs(expected), 1.0)
        return abs(expected - self.projected_value) / scale <= tolerance


class ExpectedResult(BaseModel):
    kind: ResultKind
    value: float
    description: str = ""


class Implementation(BaseModel):
    type: ImplementationType = ImplementationType.NATIVE
    complexity: Complexity = Complexity.MEDIUM
    cost: str = ""
    monthly_cost_max: Optional[float] = Field(default=None, ge=0)
    app_name: Optional[str] = None


class Suggestion(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    tier: ImpactTier
    category: SuggestionCategory
    title: str = Field(min_length=3)
    problem: str
    description: str = ""
    action_plan: List[ActionStep] = Field(default_factory=list)
    expected_result: ExpectedResult
    impact_calculation: ImpactCalculation = Field(default_factory=ImpactCalculation)
    data_source: DataSource = DataSource.INFERENCE
    implementation: Implementation = Field(default_factory=Implementation)
    competitor_reference: Optional[str] = None
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    cited_metrics: Dict[str, float] = Field(default_factory=dict)
    target_problem: Optional[str] = None

    def text_blob(self) -> str:
        return f"{self.title} {self.description}"

    def full_text(self) -> str:
        steps = " ".join(f"{step.what} {step.how}" for step in self.action_plan)
        return f"{self.title} {self.problem} {self.description} {steps}"


class VerificationRecord(BaseModel):
    check: VerificationCheck
    passed: bool
    outcome: str
    detail: str = ""


class CuratedSuggestion(BaseModel):
    suggestion: Suggestion
    final_state: FinalState
    quality_score: float = Field(ge=0.0, le=10.0)
    verification: List[VerificationRecord] = Field(default_factory=list)
    replaced_title: Optional[str] = None
    priority: int = Field(default=1, ge=1)


class GoalCoverage(BaseModel):
    gap: float
    covered: float
    ratio: float
    target_ratio: float
    met: bool


class ExternalJustification(BaseModel):
    required: int = 0
    satisfied: int = 0
    waived: bool = True


class CriticReport(BaseModel):
    suggestions: List[CuratedSuggestion] = Field(default_factory=list)
    average_score: float = 0.0
    rescored: bool = False
    goal_coverage: Optional[GoalCoverage] = None
    external_justification: ExternalJustification = Field(default_factory=ExternalJustification)
    rejected: List[Dict[str, Any]] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class StrategistSlate(BaseModel):
    suggestions: List[Suggestion] = Field(default_factory=list)
    omitted: List[Dict[str, Any]] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    analysis_id: str
    status: str = "completed"
    generated_at: str = Field(default_factory=lambda: datetime.now().isoformat())
    store_name: str
    analysis_type: AnalysisType = AnalysisType.GENERAL
    profile: ProfileResult
    collector: CollectorDigest
    analyst: AnalystReport
    similarity: SimilarityReport
    saturation: List[ThemeSaturationEntry] = Field(default_factory=list)
    strategist: StrategistSlate
    critic: CriticReport
    stage_timings: Dict[str, float] = Field(default_factory=dict)

    def curated(self) -> List[Suggestion]:
        return [item.suggestion for item in self.critic.suggestions]
