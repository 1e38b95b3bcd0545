"""
Specialized analysis modes.

A request's ``analysis_type`` resolves to a :class:`ModuleConfig` that every
backend stage folds into its user prompt: what the collector should prioritize,
the analyst's keywords, the strategist's focus with good/bad examples and the
critic's extra criteria. ``general`` and the modes not yet implemented resolve
to an empty config, which leaves every prompt unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from models import AnalysisType

logger = logging.getLogger(__name__)

LABELS: Dict[AnalysisType, str] = {
    AnalysisType.GENERAL: "Análise Geral",
    AnalysisType.FINANCIAL: "Análise Financeira",
    AnalysisType.CONVERSION: "Análise de Conversão",
    AnalysisType.COMPETITORS: "Análise de Concorrentes",
    AnalysisType.CAMPAIGNS: "Análise de Campanhas",
    AnalysisType.TRACKING: "Análise de Tracking",
}

DESCRIPTIONS: Dict[AnalysisType, str] = {
    AnalysisType.GENERAL: "Visão completa da loja com recomendações gerais",
    AnalysisType.FINANCIAL: "Foco em margem, ticket médio, CAC, LTV e pricing",
    AnalysisType.CONVERSION: "Foco em taxa de conversão, checkout, UX e funil",
    AnalysisType.COMPETITORS: "Análise competitiva: posicionamento, diferenciais e gaps vs concorrentes",
    AnalysisType.CAMPAIGNS: "Foco em ROAS, CPC, CTR e performance de anúncios",
    AnalysisType.TRACKING: "Foco em logística, entrega e rastreamento",
}

UNAVAILABLE = frozenset({AnalysisType.CAMPAIGNS, AnalysisType.TRACKING})


@dataclass(frozen=True)
class ModuleConfig:
    analysis_type: AnalysisType = AnalysisType.GENERAL
    collector_priorities: str = ""
    required_metrics: Tuple[str, ...] = ()
    analyst_keywords: str = ""
    analyst_focus: str = ""
    strategist_focus: str = ""
    good_example: str = ""
    bad_example: str = ""
    critic_criteria: str = ""
    temperature_override: Optional[float] = None

    @property
    def is_specialized(self) -> bool:
        return self.analysis_type != AnalysisType.GENERAL

    def collector_block(self) -> str:
        if not self.is_specialized:
            return ""
        lines = [f"FOCO ESPECIALIZADO: {self.analysis_type.value}", f"Priorize no resumo: {self.collector_priorities}"]
        if self.required_metrics:
            lines.append(f"Métricas obrigatórias: {', '.join(self.required_metrics)}")
        return "\n".join(lines) + "\n\n"

    def analyst_block(self) -> str:
        if not self.is_specialized:
            return ""
        return (
            f"FOCO ESPECIALIZADO: {self.analysis_type.value}\n"
            "Esta é uma análise especializada. Priorize padrões e métricas relacionados a:\n"
            f"{self.analyst_keywords}\n"
            f"Direcionamento: {self.analyst_focus}\n\n"
        )

    def strategist_block(self) -> str:
        if not self.is_specialized:
            return ""
        block = (
            f"FOCO ESPECIALIZADO: {self.analysis_type.value}\n"
            f"Direcione TODAS as sugestões para: {self.strategist_focus}\n"
            "Não gere sugestões genéricas; todas devem seguir o foco acima.\n"
        )
        if self.good_example or self.bad_example:
            block += f"EXEMPLOS ESPECÍFICOS PARA {self.analysis_type.value}:\n"
            if self.good_example:
                block += f"BOM: {self.good_example}\n"
            if self.bad_example:
                block += f"RUIM (evitar): {self.bad_example}\n"
        return block + "\n"

    def critic_block(self) -> str:
        if not self.is_specialized or not self.critic_criteria:
            return ""
        return f"CRITÉRIOS EXTRAS ({self.analysis_type.value}): {self.critic_criteria}\n\n"

    def to_dict(self) -> Dict[str, object]:
        return {
            "analysis_type": self.analysis_type.value,
            "is_specialized": self.is_specialized,
            "collector_priorities": self.collector_priorities,
            "required_metrics": list(self.required_metrics),
            "analyst_keywords": self.analyst_keywords,
            "strategist_focus": self.strategist_focus,
            "critic_criteria": self.critic_criteria,
            "temperature_override": self.temperature_override,
        }


GENERAL = ModuleConfig()

MODULES: Dict[AnalysisType, ModuleConfig] = {
    AnalysisType.FINANCIAL: ModuleConfig(
        analysis_type=AnalysisType.FINANCIAL,
        collector_priorities=(
            "faturamento, margem bruta, margem líquida, ticket médio, CAC, LTV, custo de frete, taxa de recompra"
        ),
        required_metrics=("faturamento_mensal", "ticket_medio", "margem", "custo_aquisicao", "ltv"),
        analyst_keywords=(
            "margem, ticket médio, CAC, LTV, faturamento, pricing, custo de frete, sazonalidade financeira, "
            "mix de produtos por rentabilidade, custo operacional"
        ),
        analyst_focus=(
            "Concentre a análise em saúde financeira e oportunidades de otimização de pricing e margem. "
            "Identifique produtos com melhor e pior margem."
        ),
        strategist_focus="otimização financeira, pricing, margem e redução de custos",
        good_example=(
            "Crie kit do Produto A + Produto C (margem combinada de 38%) e projete o aumento de ticket médio "
            "a partir do ticket atual da loja."
        ),
        bad_example="Aumente seus preços para melhorar a margem.",
        critic_criteria=(
            "Toda sugestão financeira cita números reais da loja. Cálculos de margem, ticket médio e projeções "
            "de receita devem estar matematicamente corretos. Rejeite pricing que ignore o posicionamento do nicho."
        ),
    ),
    AnalysisType.CONVERSION: ModuleConfig(
        analysis_type=AnalysisType.CONVERSION,
        collector_priorities=(
            "taxa de conversão geral, conversão por dispositivo, abandono de carrinho, etapas do funil, "
            "bounce rate, páginas de saída, velocidade de carregamento"
        ),
        required_metrics=("taxa_conversao", "taxa_abandono_carrinho", "visitantes_mobile_vs_desktop", "bounce_rate"),
        analyst_keywords=(
            "conversão, abandono de carrinho, funil de vendas, checkout, página de produto, UX, mobile, "
            "velocidade, bounce rate, CTAs, formulários, navegação"
        ),
        analyst_focus=(
            "Concentre a análise nos pontos de fricção do funil de conversão. Identifique onde os visitantes "
            "abandonam e por quê. Compare mobile e desktop."
        ),
        strategist_focus="otimização de conversão, redução de abandono, melhoria de UX e checkout",
        good_example=(
            "Simplifique o checkout: remova campos opcionais, preencha o endereço pelo CEP e mostre o progresso, "
            "com meta de abandono calculada sobre a taxa atual da loja."
        ),
        bad_example="Melhore a experiência de checkout para converter mais clientes.",
        critic_criteria=(
            "Sugestões de conversão trazem passos de implementação concretos e taxas que conferem com os dados. "
            "Rejeite sugestões que não dizem onde no funil atuam (topo, meio ou fundo)."
        ),
    ),
    AnalysisType.COMPETITORS: ModuleConfig(
        analysis_type=AnalysisType.COMPETITORS,
        collector_priorities=(
            "dados de concorrentes (preços, diferenciais, categorias, promoções, avaliações), posicionamento de "
            "preço da loja vs mercado, gaps de recursos e categorias não exploradas"
        ),
        required_metrics=(
            "ticket_medio_vs_concorrentes",
            "categorias_overlap",
            "diferenciais_ausentes",
            "comparativo_promocoes",
            "faixa_preco_mercado",
        ),
        analyst_keywords=(
            "posicionamento competitivo, diferenciais ausentes, gaps de mercado, pricing competitivo, "
            "overlap de categorias, proposta de valor única, oportunidades de diferenciação"
        ),
        analyst_focus=(
            "Compare a loja com cada concorrente em preço, produto, experiência e promoções, classificando a "
            "posição da loja como ACIMA, PAR ou ABAIXO em cada dimensão."
        ),
        strategist_focus=(
            "vantagem competitiva, diferenciação de mercado e exploração de gaps identificados nos concorrentes"
        ),
        good_example=(
            "Um concorrente citado pelo nome oferece quiz personalizado e a loja não. Implemente um quiz próprio "
            "com os produtos ativos da loja, com meta de ticket calculada sobre o ticket atual."
        ),
        bad_example="Copie o que os concorrentes fazem para não ficar para trás.",
        critic_criteria=(
            "Sugestão high cita pelo menos 1 concorrente pelo nome com dado numérico. Dados de concorrentes "
            "conferem com os fornecidos. A sugestão propõe diferenciação, não cópia. Sem dados de concorrentes, "
            "sugestões competitivas ficam em low."
        ),
    ),
}


def resolve_module(analysis_type: Union[AnalysisType, str, None]) -> ModuleConfig:
    """Module config for an analysis type; unknown or unavailable types fall back to general."""
    try:
        kind = AnalysisType(analysis_type) if analysis_type else AnalysisType.GENERAL
    except ValueError:
        logger.warning("Unknown analysis type '%s', using general", analysis_type)
        return GENERAL
    if kind in UNAVAILABLE:
        logger.info("Analysis type '%s' is not available yet, using general", kind.value)
    return MODULES.get(kind, GENERAL)


def available_types() -> List[AnalysisType]:
    return [kind for kind in AnalysisType if kind not in UNAVAILABLE]


def describe_types() -> List[Dict[str, object]]:
    return [
        {
            "key": kind.value,
            "label": LABELS[kind],
            "description": DESCRIPTIONS[kind],
            "available": kind not in UNAVAILABLE,
            "is_default": kind == AnalysisType.GENERAL,
        }
        for kind in AnalysisType
    ]
