import json
from datetime import date

import pytest

import analyst_agent
import collector_agent
import critic_agent
import profile_synthesizer
import similarity_engine
import strategist_agent
from models import StoreAnalysisRequest, Suggestion
from text_generation import TextGenerator

_STAGE_BY_PROMPT = {
    profile_synthesizer.SYSTEM_PROMPT: "profile",
    collector_agent.SYSTEM_PROMPT: "collector",
    analyst_agent.SYSTEM_PROMPT: "analyst",
    similarity_engine.SYSTEM_PROMPT: "similarity",
    strategist_agent.SYSTEM_PROMPT: "strategist",
    critic_agent.SYSTEM_PROMPT: "critic",
}


class StubGenerator(TextGenerator):
    """Canned backend: answers per stage, identified by the system prompt.

    Each stage maps to one payload or a list of payloads consumed in order
    (the last one repeats). Payloads may be dicts, raw strings or exceptions.
    """

    provider_name = "stub"

    def __init__(self, responses):
        self.responses = {
            stage: list(value) if isinstance(value, list) else [value] for stage, value in responses.items()
        }
        self.calls = []

    def generate(self, messages, options):
        stage = _STAGE_BY_PROMPT.get(messages[0]["content"], "unknown")
        self.calls.append((stage, messages[-1]["content"]))
        queue = self.responses.get(stage)
        if not queue:
            raise AssertionError(f"No stub response for stage {stage}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return item
        return json.dumps(item, ensure_ascii=False)

    def stages_called(self):
        return [stage for stage, _ in self.calls]


@pytest.fixture
def stub_generator():
    return StubGenerator


def make_request(**overrides):
    payload = {
        "analysis_id": "an-001",
        "store": {"name": "Loja Aurora", "niche": "beauty", "subcategory": "skincare", "tenure_months": 18},
        "goals": {"monthly_revenue": 30000.0, "monthly_visits": 4000},
        "period_days": 30,
        "orders": {
            "total_orders": 250,
            "total_revenue": 20000.0,
            "average_ticket": 80.0,
            "cancelled_orders": 45,
            "previous_period_revenue": 20000.0,
        },
        "products": {"active_products": 100, "out_of_stock": 40},
        "coupons": {"usage_rate": 85.0, "ticket_impact": 25.0},
        "benchmarks": {"average_ticket": 150.0, "source": "informado"},
        "today": date(2024, 3, 20).isoformat(),
    }
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(payload.get(key), dict):
            merged = dict(payload[key])
            merged.update(value)
            payload[key] = merged
        else:
            payload[key] = value
    return StoreAnalysisRequest.model_validate(payload)


@pytest.fixture
def request_factory():
    return make_request


def make_suggestion(**overrides):
    payload = {
        "id": "sug-01",
        "tier": "medium",
        "category": "inventory",
        "title": "Reposição automática dos 10 produtos sem estoque",
        "problem": "40 de 100 produtos ativos estão sem estoque (40%).",
        "description": "Reabastecer os itens mais vendidos que estão com ruptura.",
        "action_plan": [
            {
                "step": 1,
                "what": "Listar os 40 produtos sem estoque",
                "how": "Exportar o relatório de estoque no painel",
                "expected_result": "Lista priorizada por receita",
                "time": "1 dia",
                "resources": "Planilha e painel da loja",
                "indicator": "Produtos listados",
            }
        ],
        "expected_result": {"kind": "currency", "value": 2000.0, "description": "R$ 2.000 a mais por mês"},
        "impact_calculation": {
            "base_metric": "monthly_revenue",
            "base_value": 20000.0,
            "improvement_rate": 0.1,
            "projected_value": 2000.0,
        },
        "data_source": "dado_direto",
        "cited_metrics": {"out_of_stock_pct": 40.0},
    }
    for key, value in overrides.items():
        payload[key] = value
    return Suggestion.model_validate(payload)


@pytest.fixture
def suggestion_factory():
    return make_suggestion
