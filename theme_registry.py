"""Static theme taxonomy and theme-saturation counting for suggestion history."""

from __future__ import annotations

import re
import unicodedata
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from config import GrowthConfig
from models import SaturationLevel, ThemeSaturationEntry

REGISTRY_VERSION = "2024.2"

_THEMES: Dict[str, Tuple[str, ...]] = {
    "quiz": ("quiz", "questionário", "personalizado", "recomendação", "personalização"),
    "frete_gratis": ("frete grátis", "frete gratuito", "entrega grátis", "frete gratis"),
    "fidelidade": ("fidelidade", "pontos", "cashback", "loyalty", "recompensa"),
    "kits": ("kit", "combo", "bundle", "cronograma", "pack"),
    "estoque": ("estoque", "avise-me", "reposição", "inventário", "ruptura"),
    "email": ("email", "e-mail", "newsletter", "automação", "pós-venda"),
    "video": ("vídeo", "video", "tutorial", "youtube", "reels"),
    "assinatura": ("assinatura", "recorrência", "subscription", "clube"),
    "cupom": ("cupom", "desconto", "promoção", "voucher", "código"),
    "checkout": ("checkout", "carrinho", "conversão", "abandono", "finalização"),
    "whatsapp": ("whatsapp", "telegram", "chat", "mensagem", "zap"),
    "reviews": ("review", "ugc", "avaliação", "depoimento", "fotos", "vídeos", "antes e depois"),
    "pos_compra": ("pós-compra", "pos-compra", "follow-up", "acompanhamento"),
    "influenciadores": (
        "influenciador",
        "micro-influenciador",
        "embaixador",
        "embaixadora",
        "parceria",
        "afiliado",
    ),
    "gamificacao": ("gamificação", "gamificacao", "desafio", "milhas", "níveis"),
    "conteudo": ("conteúdo", "conteudo", "hub", "guia", "educativo"),
    "carnaval": ("carnaval", "folia", "fantasia", "bloco"),
    "ticket": ("ticket médio", "ticket", "aov", "valor médio"),
    "cancelamento": ("cancelamento", "cancelado", "desistência", "churn"),
    "reativacao": ("reativação", "reativar", "inativos", "dormentes", "win-back"),
    "upsell": ("upsell", "up-sell", "upgrade", "premium"),
    "cross_sell": (
        "cross-sell",
        "cross sell",
        "venda cruzada",
        "produtos relacionados",
        "compre junto",
    ),
    "preco": ("preço", "pricing", "margem", "precificação"),
    "seo": ("seo", "google", "busca", "orgânico", "ranqueamento"),
    "remarketing": ("remarketing", "retargeting", "pixel", "público similar"),
}

_LABELS: Dict[str, str] = {
    "quiz": "Quiz de Recomendação",
    "frete_gratis": "Frete Grátis",
    "fidelidade": "Programa de Fidelidade",
    "kits": "Kits e Combos",
    "estoque": "Gestão de Estoque",
    "email": "Email Marketing",
    "video": "Conteúdo em Vídeo",
    "assinatura": "Modelo de Assinatura",
    "cupom": "Cupons e Descontos",
    "checkout": "Otimização de Checkout",
    "whatsapp": "Atendimento via WhatsApp",
    "reviews": "Reviews e UGC",
    "pos_compra": "Pós-Compra",
    "influenciadores": "Marketing de Influenciadores",
    "gamificacao": "Gamificação",
    "conteudo": "Hub de Conteúdo",
    "carnaval": "Campanha de Carnaval",
    "ticket": "Aumento de Ticket Médio",
    "cancelamento": "Redução de Cancelamento",
    "reativacao": "Reativação de Clientes",
    "upsell": "Upsell",
    "cross_sell": "Cross-sell",
    "preco": "Estratégia de Precificação",
    "seo": "SEO",
    "remarketing": "Remarketing",
}

THEMES: Mapping[str, Tuple[str, ...]] = MappingProxyType(_THEMES)
LABELS: Mapping[str, str] = MappingProxyType(_LABELS)


def normalize_text(text: Optional[str]) -> str:
    """Lowercase and strip accents so 'Reposição' and 'reposicao' compare equal."""
    decomposed = unicodedata.normalize("NFKD", (text or "").lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


_NORMALIZED_THEMES: Dict[str, Tuple[str, ...]] = {
    key: tuple(normalize_text(keyword) for keyword in keywords) for key, keywords in _THEMES.items()
}


def themes() -> Mapping[str, Tuple[str, ...]]:
    return THEMES


def label(theme_key: str) -> str:
    try:
        return LABELS[theme_key]
    except KeyError:
        raise KeyError(f"Unknown theme: {theme_key}") from None


def _keyword_pattern(keyword: str) -> re.Pattern:
    # Short keywords ("kit", "seo", "hub") must match whole words only.
    if len(keyword) <= 4:
        return re.compile(rf"(?<![a-z0-9]){re.escape(keyword)}s?(?![a-z0-9])")
    return re.compile(re.escape(keyword))


_PATTERNS: Dict[str, Tuple[re.Pattern, ...]] = {
    key: tuple(_keyword_pattern(keyword) for keyword in keywords)
    for key, keywords in _NORMALIZED_THEMES.items()
}


def match_themes(text: str) -> List[str]:
    """Return every theme whose keywords appear in the text, in registry order."""
    normalized = normalize_text(text)
    if not normalized.strip():
        return []
    return [
        key for key, patterns in _PATTERNS.items() if any(pattern.search(normalized) for pattern in patterns)
    ]


def matched_keywords(text: str, theme_key: str) -> List[str]:
    normalized = normalize_text(text)
    return [
        keyword
        for keyword, pattern in zip(_THEMES[theme_key], _PATTERNS[theme_key])
        if pattern.search(normalized)
    ]


def saturation_level(count: int) -> SaturationLevel:
    if count >= GrowthConfig.SATURATION_BLOCKED_AT:
        return SaturationLevel.BLOCKED
    if count >= GrowthConfig.SATURATION_FREQUENT_AT:
        return SaturationLevel.FREQUENT
    if count == 1:
        return SaturationLevel.USED
    return SaturationLevel.PREFERRED


def theme_saturation(history: Iterable[object]) -> List[ThemeSaturationEntry]:
    """
    Count how many past suggestions touched each theme.

    Each suggestion counts at most once per theme. Items may be models or dicts
    exposing ``id``, ``title`` and ``description``.
    """
    matches: Dict[str, List[str]] = {key: [] for key in _THEMES}
    for item in history:
        if isinstance(item, dict):
            item_id = str(item.get("id", ""))
            text = f"{item.get('title', '')} {item.get('description', '')}"
        else:
            item_id = str(getattr(item, "id", ""))
            text = f"{getattr(item, 'title', '')} {getattr(item, 'description', '')}"
        for key in match_themes(text):
            matches[key].append(item_id)

    return [
        ThemeSaturationEntry(
            theme=key,
            label=_LABELS[key],
            count=len(ids),
            level=saturation_level(len(ids)),
            matched_suggestion_ids=ids,
        )
        for key, ids in matches.items()
    ]


def saturation_map(entries: Iterable[ThemeSaturationEntry]) -> Dict[str, ThemeSaturationEntry]:
    return {entry.theme: entry for entry in entries}


def blocked_themes(entries: Iterable[ThemeSaturationEntry]) -> List[str]:
    return [entry.theme for entry in entries if entry.level == SaturationLevel.BLOCKED]


def saturation_prompt_block(entries: Iterable[ThemeSaturationEntry]) -> str:
    lines: List[str] = []
    for entry in entries:
        if entry.level == SaturationLevel.BLOCKED:
            lines.append(f"- PROIBIDO: {entry.label} (usado {entry.count}x)")
        elif entry.level == SaturationLevel.FREQUENT:
            lines.append(f"- EVITAR: {entry.label} (usado {entry.count}x)")
        elif entry.level == SaturationLevel.PREFERRED:
            lines.append(f"- PREFERIR: {entry.label} (nunca sugerido)")
    return "\n".join(lines)


__all__ = [
    "LABELS",
    "REGISTRY_VERSION",
    "THEMES",
    "blocked_themes",
    "label",
    "match_themes",
    "matched_keywords",
    "normalize_text",
    "saturation_level",
    "saturation_map",
    "saturation_prompt_block",
    "theme_saturation",
    "themes",
]
