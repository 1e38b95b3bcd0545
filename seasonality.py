"""Brazilian retail calendar used to frame the analysis window."""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Dict, List, Tuple

MONTHLY_CONTEXT: Dict[int, Dict[str, object]] = {
    1: {
        "periodo": "PÓS-FESTAS / VERÃO",
        "foco": "Liquidação, fidelização novos clientes",
        "oportunidades": ["Queima de estoque", "Fidelizar clientes do Natal", "Kits verão"],
        "evitar": ["Lançamentos premium", "Aumento de preços"],
    },
    2: {
        "periodo": "CARNAVAL / VERÃO",
        "foco": "Produtos para uso intenso no verão",
        "oportunidades": ["Kits pós-sol", "Tratamentos reparadores", "Promoções Carnaval"],
        "evitar": ["Produtos de inverno"],
    },
    3: {
        "periodo": "OUTONO / DIA DA MULHER",
        "foco": "Campanhas femininas, transição",
        "oportunidades": ["Promoções Dia da Mulher", "Kits presenteáveis", "Tratamentos"],
        "evitar": ["Produtos de verão"],
    },
    4: {
        "periodo": "OUTONO / PÁSCOA",
        "foco": "Reconstrução pós-verão",
        "oportunidades": ["Cronogramas de cuidado", "Tratamentos intensivos"],
        "evitar": ["Produtos leves"],
    },
    5: {
        "periodo": "DIA DAS MÃES",
        "foco": "Presentes, kits especiais",
        "oportunidades": ["Kits presenteáveis premium", "Combos especiais", "Embalagens"],
        "evitar": ["Promoções que desvalorizam"],
    },
    6: {
        "periodo": "INVERNO / DIA DOS NAMORADOS",
        "foco": "Presentes para casais",
        "oportunidades": ["Kits casais", "Linhas de inverno"],
        "evitar": ["Linhas de verão"],
    },
    7: {
        "periodo": "INVERNO / FÉRIAS",
        "foco": "Tratamentos intensivos",
        "oportunidades": ["Cronograma completo", "Assinaturas", "Fidelização"],
        "evitar": ["Esperar Black Friday"],
    },
    8: {
        "periodo": "DIA DOS PAIS / PRÉ-PRIMAVERA",
        "foco": "Linha masculina",
        "oportunidades": ["Produtos masculinos", "Kits pais", "Antecipação de tendências"],
        "evitar": ["Ignorar público masculino"],
    },
    9: {
        "periodo": "PRIMAVERA / DIA DO CLIENTE",
        "foco": "Renovação, fidelização",
        "oportunidades": ["Lançamentos", "Promoções Dia do Cliente", "Programa de pontos"],
        "evitar": ["Grandes descontos (guardar para a Black Friday)"],
    },
    10: {
        "periodo": "DIA DAS CRIANÇAS / PRÉ-BLACK FRIDAY",
        "foco": "Linha infantil, preparar Black Friday",
        "oportunidades": ["Produtos infantis", "Reposição de estoque", "Aquecimento da base"],
        "evitar": ["Queimar promoções antes da Black Friday"],
    },
    11: {
        "periodo": "BLACK FRIDAY",
        "foco": "Maior evento de vendas",
        "oportunidades": ["Descontos agressivos", "Kits exclusivos", "Frete grátis"],
        "evitar": ["Descontos falsos", "Estoque insuficiente"],
    },
    12: {
        "periodo": "NATAL / FIM DE ANO",
        "foco": "Presentes, última chance do ano",
        "oportunidades": ["Kits presenteáveis", "Embalagens natalinas", "Garantia de entrega"],
        "evitar": ["Promoções que canibalizam margem"],
    },
}

SEASONALITY_IMPACT: Dict[int, str] = {
    1: "Janeiro - Pós-Festas: queda natural de 20-30% nas vendas é esperada. Não classificar como anomalia grave.",
    2: "Fevereiro - Carnaval: vendas voláteis. Pico antes do feriado, queda durante.",
    3: "Março - Normalização: retorno ao padrão normal. Bom mês para comparação.",
    4: "Abril - Páscoa: possível leve alta em kits presenteáveis.",
    5: "Maio - Dia das Mães: alta temporada. Espere +30-50% nas vendas. Queda após é normal.",
    6: "Junho - Inverno/Namorados: pico no início (Namorados), depois estabiliza.",
    7: "Julho - Férias: vendas podem cair 10-15% (férias escolares).",
    8: "Agosto - Dia dos Pais: leve alta em produtos masculinos. Mês de preparação para o Q4.",
    9: "Setembro - Dia do Cliente: possíveis promoções. Preparação para a Black Friday.",
    10: "Outubro - Pré-Black Friday: consumidores segurando compras. Queda pode ser estratégica.",
    11: "Novembro - Black Friday: maior mês. Espere +50-100% nas vendas.",
    12: "Dezembro - Natal: alta temporada. +40-60% nas vendas até o dia 20, queda após.",
}


def monthly_context(month: int) -> Dict[str, object]:
    return MONTHLY_CONTEXT.get(month, MONTHLY_CONTEXT[7])


def seasonality_impact(month: int) -> str:
    return SEASONALITY_IMPACT.get(month, "Mês sem sazonalidade específica.")


def _nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (n - 1))


def _black_friday(year: int) -> date:
    return _nth_weekday(year, 11, calendar.THURSDAY, 4) + timedelta(days=1)


def events_for_year(year: int) -> List[Tuple[date, str]]:
    events = [
        (date(year, 1, 1), "Ano Novo"),
        (date(year, 3, 8), "Dia da Mulher"),
        (_nth_weekday(year, 5, calendar.SUNDAY, 2), "Dia das Mães"),
        (date(year, 6, 12), "Dia dos Namorados"),
        (_nth_weekday(year, 8, calendar.SUNDAY, 2), "Dia dos Pais"),
        (date(year, 9, 15), "Dia do Cliente"),
        (date(year, 10, 12), "Dia das Crianças"),
        (_black_friday(year), "Black Friday"),
        (date(year, 12, 25), "Natal"),
    ]
    return sorted(events)


def upcoming_events(today: date, horizon_days: int = 60) -> List[str]:
    """Events between today and today + horizon, formatted as 'Nome (dd/mm, em N dias)'."""
    limit = today + timedelta(days=horizon_days)
    found: List[str] = []
    for year in (today.year, today.year + 1):
        for when, name in events_for_year(year):
            if today <= when <= limit:
                days = (when - today).days
                found.append(f"{name} ({when.strftime('%d/%m')}, em {days} dias)")
    return found
