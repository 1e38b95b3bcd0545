"""Nuvemshop feasibility catalogue: what is native, what needs a paid app, what cannot be done."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from theme_registry import normalize_text

NATIVE = "native"
PAID_APP = "paid_app"
INFEASIBLE = "infeasible"
UNKNOWN = "unknown"

NATIVE_FEATURES: List[Dict[str, object]] = [
    {"key": "cupons", "label": "Cupons de desconto", "keywords": ["cupom", "cupons", "codigo de desconto"]},
    {
        "key": "frete_gratis",
        "label": "Frete grátis condicional",
        "keywords": ["frete gratis", "frete gratuito", "entrega gratis"],
    },
    {"key": "avise_me", "label": "Avise-me quando chegar", "keywords": ["avise-me", "avise me", "aviso de reposicao"]},
    {
        "key": "produtos_relacionados",
        "label": "Produtos relacionados",
        "keywords": ["produtos relacionados", "compre junto", "venda cruzada"],
    },
    {"key": "seo_basico", "label": "SEO básico", "keywords": ["seo", "meta description", "titulo da pagina"]},
    {
        "key": "checkout_transparente",
        "label": "Checkout transparente",
        "keywords": ["checkout transparente", "checkout"],
    },
    {
        "key": "pagamentos",
        "label": "Múltiplas formas de pagamento",
        "keywords": ["via pix", "boleto", "parcelamento", "formas de pagamento"],
    },
]

PAID_APPS: List[Dict[str, object]] = [
    {
        "key": "quiz",
        "label": "Quiz de recomendação",
        "min_cost": 30.0,
        "max_cost": 100.0,
        "examples": ["Pregão", "Lily AI"],
        "keywords": ["quiz", "questionario"],
    },
    {
        "key": "fidelidade",
        "label": "Programa de fidelidade",
        "min_cost": 49.0,
        "max_cost": 150.0,
        "examples": ["Fidelizar+", "Remember"],
        "keywords": ["fidelidade", "pontos", "cashback", "recompensa"],
    },
    {
        "key": "reviews",
        "label": "Reviews e avaliações",
        "min_cost": 20.0,
        "max_cost": 80.0,
        "examples": ["Lily Reviews", "Trustvox"],
        "keywords": ["review", "avaliacao", "avaliacoes", "depoimento"],
    },
    {
        "key": "carrinho_abandonado",
        "label": "Recuperação de carrinho abandonado",
        "min_cost": 30.0,
        "max_cost": 100.0,
        "examples": ["CartStack", "Enviou"],
        "keywords": ["carrinho abandonado", "abandono de carrinho", "recuperacao de carrinho"],
    },
    {
        "key": "chat",
        "label": "Chat e WhatsApp",
        "min_cost": 0.0,
        "max_cost": 100.0,
        "examples": ["JivoChat", "Zenvia"],
        "keywords": ["whatsapp", "chat", "atendimento online"],
    },
    {
        "key": "assinatura",
        "label": "Assinatura e recorrência",
        "min_cost": 50.0,
        "max_cost": 150.0,
        "examples": ["Vindi", "Asaas"],
        "keywords": ["assinatura", "recorrencia", "clube de assinatura"],
    },
]

INFEASIBLE_FEATURES: List[Dict[str, object]] = [
    {
        "key": "realidade_aumentada",
        "label": "Realidade aumentada",
        "keywords": ["realidade aumentada", "provador virtual 3d", "experimentacao virtual"],
    },
    {
        "key": "ia_generativa_nativa",
        "label": "IA generativa nativa",
        "keywords": ["ia generativa nativa", "inteligencia artificial nativa"],
    },
    {"key": "live_commerce", "label": "Live commerce nativo", "keywords": ["live commerce", "live shopping"]},
    {"key": "b2b_nativo", "label": "Integração B2B nativa", "keywords": ["integracao b2b", "portal b2b", "b2b nativo"]},
]


@dataclass
class Feasibility:
    status: str
    features: List[str] = field(default_factory=list)
    monthly_cost_min: Optional[float] = None
    monthly_cost_max: Optional[float] = None
    app_examples: List[str] = field(default_factory=list)

    @property
    def feasible(self) -> bool:
        return self.status != INFEASIBLE

    def cost_label(self) -> str:
        if self.status == NATIVE:
            return "Gratuito (recurso nativo)"
        if self.status == PAID_APP and self.monthly_cost_max is not None:
            return f"R$ {self.monthly_cost_min:.0f}-{self.monthly_cost_max:.0f}/mês"
        return ""


def _hits(text: str, entries: List[Dict[str, object]]) -> List[Dict[str, object]]:
    return [entry for entry in entries if any(keyword in text for keyword in entry["keywords"])]


def assess(text: str) -> Feasibility:
    """Classify an action description against the platform catalogue."""
    normalized = normalize_text(text)

    infeasible = _hits(normalized, INFEASIBLE_FEATURES)
    if infeasible:
        return Feasibility(status=INFEASIBLE, features=[str(entry["label"]) for entry in infeasible])

    apps = _hits(normalized, PAID_APPS)
    if apps:
        return Feasibility(
            status=PAID_APP,
            features=[str(entry["label"]) for entry in apps],
            monthly_cost_min=sum(float(entry["min_cost"]) for entry in apps),
            monthly_cost_max=sum(float(entry["max_cost"]) for entry in apps),
            app_examples=[example for entry in apps for example in entry["examples"]],
        )

    native = _hits(normalized, NATIVE_FEATURES)
    if native:
        return Feasibility(status=NATIVE, features=[str(entry["label"]) for entry in native])

    return Feasibility(status=UNKNOWN)


def catalogue_prompt_block() -> str:
    lines = ["RECURSOS NATIVOS (gratuitos):"]
    lines.extend(f"- {entry['label']}" for entry in NATIVE_FEATURES)
    lines.append("APPS PAGOS (custo mensal real):")
    lines.extend(
        f"- {entry['label']}: R$ {entry['min_cost']:.0f}-{entry['max_cost']:.0f}/mês ({', '.join(entry['examples'])})"
        for entry in PAID_APPS
    )
    lines.append("INVIÁVEIS NA PLATAFORMA (não sugerir):")
    lines.extend(f"- {entry['label']}" for entry in INFEASIBLE_FEATURES)
    return "\n".join(lines)
