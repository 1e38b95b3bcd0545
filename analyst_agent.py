"""
Analyst

Quantitative stage. Metrics, the health score, anomalies, alerts and the
ranked problem list are computed here from the request; the backend is only
asked to narrate patterns over numbers it is handed. A metric missing from the
input stays None all the way to the serialized output.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import health_score
from analysis_contracts import lint_analyst_payload
from analysis_modules import resolve_module
from config import GrowthConfig
from metrics import MISSING_METRIC_RECOMMENDATIONS, missing_metric_recommendation, replace_metric_tokens
from models import (
    Alert,
    AnalysisMetrics,
    AnalystReport,
    Anomaly,
    DataQuality,
    NicheBenchmarks,
    PrioritizedProblem,
    ProblemCategory,
    Severity,
    StoreAnalysisRequest,
)
from seasonality import seasonality_impact
from stage_runner import request_stage_json
from text_generation import TextGenerator

logger = logging.getLogger(__name__)

# Detection rules
DAILY_DROP_RATIO = 0.5
OUT_OF_STOCK_ANOMALY_PCT = 30.0
TOP3_CONCENTRATION_PCT = 60.0
COUPON_DEPENDENCY_PCT = 70.0

COMPONENT_PROBLEMS: Dict[str, ProblemCategory] = {
    "ticket": ProblemCategory.TICKET,
    "stock": ProblemCategory.ESTOQUE,
    "cancellation": ProblemCategory.OPERACIONAL,
    "coupons": ProblemCategory.CUPONS,
    "trend": ProblemCategory.CONVERSAO,
}

COMPONENT_METRICS: Dict[str, str] = {
    "ticket": "ticket_ratio_pct",
    "stock": "out_of_stock_pct",
    "cancellation": "cancellation_rate",
    "coupons": "coupon_usage_rate",
    "trend": "sales_change_pct",
}

COMPONENT_LABELS: Dict[str, str] = {
    "ticket": "Ticket médio",
    "stock": "Disponibilidade de estoque",
    "cancellation": "Cancelamentos",
    "coupons": "Saúde dos cupons",
    "trend": "Tendência de vendas",
}

ANOMALY_PROBLEMS: Dict[str, ProblemCategory] = {
    "queda_faturamento_diario": ProblemCategory.CONVERSAO,
    "ruptura_estoque": ProblemCategory.ESTOQUE,
    "concentracao_receita": ProblemCategory.PRODUTO,
    "dependencia_cupons": ProblemCategory.CUPONS,
}

SYSTEM_PROMPT = (
    "Você é o Analista de dados de uma análise de e-commerce.\n"
    "As métricas, o score de saúde e as anomalias já foram calculados e NÃO podem ser alterados.\n"
    "Descreva apenas padrões sustentados pelos números fornecidos, citando-os.\n"
)


def _pct(part: Optional[float], whole: Optional[float]) -> Optional[float]:
    if part is None or whole is None or whole <= 0:
        return None
    return round(part / whole * 100.0, 2)


def compute_metrics(request: StoreAnalysisRequest, benchmarks: NicheBenchmarks) -> AnalysisMetrics:
    orders = request.orders
    products = request.products
    coupons = request.coupons

    average_ticket = orders.average_ticket
    if average_ticket is None and orders.total_revenue is not None and orders.total_orders:
        average_ticket = round(orders.total_revenue / orders.total_orders, 2)

    sales_change = None
    if orders.total_revenue is not None and orders.previous_period_revenue:
        sales_change = round(
            (orders.total_revenue - orders.previous_period_revenue) / orders.previous_period_revenue * 100.0, 2
        )

    cancellation_rate = orders.cancellation_rate
    if cancellation_rate is None and orders.cancelled_orders is not None:
        cancellation_rate = _pct(orders.cancelled_orders, orders.total_orders)

    coupon_usage = coupons.usage_rate
    if coupon_usage is None and coupons.orders_with_coupon is not None:
        coupon_usage = _pct(coupons.orders_with_coupon, orders.total_orders)

    top3_share = None
    if products.top_products:
        top3 = sorted((p.revenue for p in products.top_products), reverse=True)[:3]
        top3_share = _pct(sum(top3), orders.total_revenue)

    ticket_ratio = _pct(average_ticket, benchmarks.average_ticket)
    out_of_stock_pct = _pct(products.out_of_stock, products.active_products)

    health = health_score.score(
        health_score.HealthInputs(
            ticket_ratio_pct=ticket_ratio,
            out_of_stock_pct=out_of_stock_pct,
            cancellation_rate=cancellation_rate,
            coupon_usage_rate=coupon_usage,
            coupon_ticket_impact=coupons.ticket_impact,
            sales_change_pct=sales_change,
        )
    )

    return AnalysisMetrics(
        period_days=request.period_days,
        total_revenue=orders.total_revenue,
        monthly_revenue=request.monthly_revenue(),
        total_orders=orders.total_orders,
        average_ticket=average_ticket,
        benchmark_ticket=benchmarks.average_ticket,
        ticket_ratio_pct=ticket_ratio,
        previous_period_revenue=orders.previous_period_revenue,
        sales_change_pct=sales_change,
        sales_trend=health_score.sales_trend(sales_change),
        cancellation_rate=cancellation_rate,
        active_products=products.active_products,
        out_of_stock_count=products.out_of_stock,
        out_of_stock_pct=out_of_stock_pct,
        low_stock_count=products.low_stock,
        coupon_usage_rate=coupon_usage,
        coupon_ticket_impact=coupons.ticket_impact,
        top3_revenue_share=top3_share,
        health=health,
    )


def detect_anomalies(request: StoreAnalysisRequest, metrics: AnalysisMetrics) -> List[Anomaly]:
    """Fire each detection rule independently. No rule, no anomaly."""
    anomalies: List[Anomaly] = []

    daily = [float(value) for value in request.orders.daily_revenue if value is not None]
    if len(daily) >= 2:
        average = sum(daily) / len(daily)
        low_days = [
            {"dia": idx + 1, "faturamento": round(value, 2)}
            for idx, value in enumerate(daily)
            if average > 0 and value < average * DAILY_DROP_RATIO
        ]
        if low_days:
            anomalies.append(
                Anomaly(
                    type="queda_faturamento_diario",
                    description=(
                        f"{len(low_days)} dia(s) com faturamento abaixo de 50% da média diária "
                        f"de R$ {average:.2f}."
                    ),
                    severity=Severity.HIGH if len(low_days) >= 3 else Severity.MEDIUM,
                    evidence={"media_diaria": round(average, 2), "dias_abaixo": low_days},
                    impact_estimate=round(sum(average - day["faturamento"] for day in low_days), 2),
                )
            )

    if metrics.out_of_stock_pct is not None and metrics.out_of_stock_pct > OUT_OF_STOCK_ANOMALY_PCT:
        anomalies.append(
            Anomaly(
                type="ruptura_estoque",
                description=(
                    f"{metrics.out_of_stock_count} de {metrics.active_products} produtos ativos sem estoque "
                    f"({metrics.out_of_stock_pct:.1f}% do catálogo)."
                ),
                severity=Severity.HIGH if metrics.out_of_stock_pct > 40 else Severity.MEDIUM,
                evidence={
                    "produtos_sem_estoque": metrics.out_of_stock_count,
                    "produtos_ativos": metrics.active_products,
                    "percentual": metrics.out_of_stock_pct,
                },
            )
        )

    if metrics.top3_revenue_share is not None and metrics.top3_revenue_share > TOP3_CONCENTRATION_PCT:
        top_names = [
            p.name for p in sorted(request.products.top_products, key=lambda p: p.revenue, reverse=True)[:3]
        ]
        anomalies.append(
            Anomaly(
                type="concentracao_receita",
                description=(
                    f"Os 3 produtos mais vendidos concentram {metrics.top3_revenue_share:.1f}% do faturamento."
                ),
                severity=Severity.MEDIUM,
                evidence={"participacao_top3": metrics.top3_revenue_share, "produtos": top_names},
            )
        )

    if metrics.coupon_usage_rate is not None and metrics.coupon_usage_rate > COUPON_DEPENDENCY_PCT:
        impact = metrics.coupon_ticket_impact
        anomalies.append(
            Anomaly(
                type="dependencia_cupons",
                description=f"{metrics.coupon_usage_rate:.1f}% dos pedidos usam cupom de desconto.",
                severity=Severity.HIGH if impact is not None and impact > 15 else Severity.MEDIUM,
                evidence={"uso_cupons": metrics.coupon_usage_rate, "impacto_ticket": impact},
            )
        )

    return anomalies


def build_alerts(metrics: AnalysisMetrics) -> List[Alert]:
    """Threshold flags. They never change the score."""
    alerts: List[Alert] = []
    stock = metrics.out_of_stock_pct
    cancel = metrics.cancellation_rate
    change = metrics.sales_change_pct

    if stock is not None:
        if stock > 40:
            alerts.append(Alert(level="critico", metric="out_of_stock_pct", value=stock,
                                message=f"{stock:.1f}% do catálogo sem estoque."))
        elif stock >= 20:
            alerts.append(Alert(level="atencao", metric="out_of_stock_pct", value=stock,
                                message=f"{stock:.1f}% do catálogo sem estoque."))
    if cancel is not None:
        if cancel > 10:
            alerts.append(Alert(level="critico", metric="cancellation_rate", value=cancel,
                                message=f"Taxa de cancelamento de {cancel:.1f}%."))
        elif cancel >= 5:
            alerts.append(Alert(level="atencao", metric="cancellation_rate", value=cancel,
                                message=f"Taxa de cancelamento de {cancel:.1f}%."))
    if change is not None and change < -30:
        alerts.append(Alert(level="critico", metric="sales_change_pct", value=change,
                            message=f"Vendas caíram {abs(change):.1f}% em relação ao período anterior."))
    if metrics.ticket_ratio_pct is not None and metrics.ticket_ratio_pct < 80:
        alerts.append(
            Alert(
                level="atencao",
                metric="ticket_ratio_pct",
                value=metrics.ticket_ratio_pct,
                message=(
                    f"Ticket médio de R$ {metrics.average_ticket:.2f} está "
                    f"{100 - metrics.ticket_ratio_pct:.1f}% abaixo do nicho (R$ {metrics.benchmark_ticket:.2f})."
                ),
            )
        )
    usage, impact = metrics.coupon_usage_rate, metrics.coupon_ticket_impact
    if usage is not None and impact is not None and usage > 70 and impact > 15:
        alerts.append(Alert(level="atencao", metric="coupon_usage_rate", value=usage,
                            message=f"{usage:.1f}% dos pedidos com cupom e impacto de {impact:.1f}% no ticket."))
    return alerts


def prioritize_problems(metrics: AnalysisMetrics, anomalies: List[Anomaly]) -> List[PrioritizedProblem]:
    """Weakest health components first, then problems only anomalies revealed."""
    known = metrics.health.breakdown.known()
    ranked = sorted(
        (
            (value / health_score.COMPONENT_WEIGHTS[key], key)
            for key, value in known.items()
            if value < health_score.COMPONENT_WEIGHTS[key]
        ),
    )
    problems: List[PrioritizedProblem] = []
    seen = set()
    for ratio, key in ranked:
        category = COMPONENT_PROBLEMS[key]
        metric_id = COMPONENT_METRICS[key]
        value = getattr(metrics, metric_id)
        problems.append(
            PrioritizedProblem(
                rank=len(problems) + 1,
                problem_category=category,
                description=(
                    f"{COMPONENT_LABELS[key]}: {known[key]} de "
                    f"{health_score.COMPONENT_WEIGHTS[key]} pontos no score de saúde."
                ),
                metric=metric_id,
                value=value,
            )
        )
        seen.add(category)

    for anomaly in anomalies:
        category = ANOMALY_PROBLEMS.get(anomaly.type)
        if category is None or category in seen:
            continue
        problems.append(
            PrioritizedProblem(rank=len(problems) + 1, problem_category=category, description=anomaly.description)
        )
        seen.add(category)
    return problems


def assess_data_quality(metrics: AnalysisMetrics) -> DataQuality:
    missing = [metric_id for metric_id in MISSING_METRIC_RECOMMENDATIONS if getattr(metrics, metric_id) is None]
    return DataQuality(
        missing_metrics=missing,
        recommendations=[missing_metric_recommendation(metric_id) for metric_id in missing],
    )


class AnalystAgent:
    """Metrics and health stage."""

    stage = "analyst"

    def __init__(self, generator: TextGenerator, config=GrowthConfig, provider: Optional[str] = None):
        self.generator = generator
        self.config = config
        self.provider = provider

    def build_prompt(
        self,
        request: StoreAnalysisRequest,
        metrics: AnalysisMetrics,
        anomalies: List[Anomaly],
        alerts: List[Alert],
    ) -> str:
        context: Dict[str, Any] = {
            "nicho": request.store.niche,
            "periodo_dias": request.period_days,
            "metricas": metrics.model_dump(mode="json", exclude={"health"}),
            "score_saude": metrics.health.model_dump(mode="json"),
            "anomalias": [a.model_dump(mode="json") for a in anomalies],
            "alertas": [a.model_dump(mode="json") for a in alerts],
        }
        return (
            f"{self.config.language_preamble()}\n\n"
            f"{resolve_module(request.analysis_type).analyst_block()}"
            f"DADOS CALCULADOS:\n{json.dumps(context, ensure_ascii=False, indent=2)}\n\n"
            "Métricas nulas são desconhecidas: não as trate como zero.\n"
            "Retorne JSON: "
            '{"identified_patterns": ["padrão citando números"], '
            '"recommendations": ["melhoria de coleta de dados"]}\n'
        )

    def run(self, request: StoreAnalysisRequest, benchmarks: NicheBenchmarks) -> AnalystReport:
        metrics = compute_metrics(request, benchmarks)
        anomalies = detect_anomalies(request, metrics)
        alerts = build_alerts(metrics)
        logger.info(
            "Health score %s (%s), %d anomalies, %d alerts",
            metrics.health.total,
            health_score.band_label(metrics.health.band),
            len(anomalies),
            len(alerts),
        )

        payload = request_stage_json(
            self.generator,
            self.stage,
            SYSTEM_PROMPT,
            self.build_prompt(request, metrics, anomalies, alerts),
            lint_analyst_payload,
            provider=self.provider,
            temperature=resolve_module(request.analysis_type).temperature_override,
        )

        quality = assess_data_quality(metrics)
        for item in payload.get("recommendations") or []:
            text = replace_metric_tokens(str(item).strip())
            if text and text not in quality.recommendations:
                quality.recommendations.append(text)

        return AnalystReport(
            metrics=metrics,
            anomalies=anomalies,
            identified_patterns=[
                replace_metric_tokens(str(p).strip()) for p in payload.get("identified_patterns") or [] if str(p).strip()
            ],
            alerts=alerts,
            data_quality=quality,
            prioritized_problems=prioritize_problems(metrics, anomalies),
            seasonality_note=seasonality_impact(request.reference_date().month),
        )
