"""Shared helpers for labeling store metrics in Portuguese."""

from __future__ import annotations

import re
from typing import Dict, List

METRIC_LABELS: Dict[str, str] = {
    "total_revenue": "Faturamento do período",
    "monthly_revenue": "Faturamento mensal",
    "total_orders": "Total de pedidos",
    "average_ticket": "Ticket médio",
    "benchmark_ticket": "Ticket médio do nicho",
    "ticket_ratio_pct": "Ticket vs. benchmark (%)",
    "previous_period_revenue": "Faturamento do período anterior",
    "sales_change_pct": "Variação de vendas (%)",
    "sales_trend": "Tendência de vendas",
    "cancellation_rate": "Taxa de cancelamento (%)",
    "active_products": "Produtos ativos",
    "out_of_stock_count": "Produtos sem estoque",
    "out_of_stock_pct": "Catálogo sem estoque (%)",
    "low_stock_count": "Produtos com estoque baixo",
    "coupon_usage_rate": "Pedidos com cupom (%)",
    "coupon_ticket_impact": "Impacto dos cupons no ticket (%)",
    "top3_revenue_share": "Participação dos 3 principais produtos (%)",
}

MISSING_METRIC_RECOMMENDATIONS: Dict[str, str] = {
    "average_ticket": "Sincronizar pedidos com valores para calcular o ticket médio.",
    "benchmark_ticket": "Configurar o nicho da loja para comparar o ticket com o mercado.",
    "sales_change_pct": "Manter ao menos dois períodos sincronizados para medir a variação de vendas.",
    "cancellation_rate": "Sincronizar o status dos pedidos para medir cancelamentos.",
    "out_of_stock_pct": "Sincronizar o estoque dos produtos ativos.",
    "coupon_usage_rate": "Sincronizar os cupons utilizados nos pedidos.",
    "coupon_ticket_impact": "Registrar o valor de desconto por pedido para medir o impacto dos cupons.",
    "top3_revenue_share": "Sincronizar o faturamento por produto.",
}

SNAKE_CASE_PATTERN = re.compile(r"\b([a-z0-9]+(?:_[a-z0-9]+)+)\b")


def known_metric_ids() -> List[str]:
    return list(METRIC_LABELS.keys())


def friendly_metric_label(raw: str) -> str:
    key = (raw or "").strip().lower()
    if not key:
        return "Métrica"
    label = METRIC_LABELS.get(key)
    if label:
        return label
    return key.replace("_", " ").capitalize()


def replace_metric_tokens(text: str) -> str:
    """Rewrite known metric ids that leaked into user-facing text as labels."""
    if not isinstance(text, str):
        return text

    def _sub(match: re.Match) -> str:
        token = match.group(1)
        if token in METRIC_LABELS:
            return METRIC_LABELS[token].lower()
        return token

    return SNAKE_CASE_PATTERN.sub(_sub, text)


def missing_metric_recommendation(metric_id: str) -> str:
    return MISSING_METRIC_RECOMMENDATIONS.get(
        metric_id, f"Completar os dados de '{friendly_metric_label(metric_id)}' na próxima sincronização."
    )
