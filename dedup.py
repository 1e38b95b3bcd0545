"""Title similarity and the two-part duplicate rule shared by the Similarity Engine, Strategist and Critic."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein

from models import ProblemCategory, SolutionType
from theme_registry import normalize_text

_NON_ALNUM = re.compile(r"[^a-z0-9 ]+")
_SPACES = re.compile(r"\s+")

STOPWORDS = {
    "a", "o", "as", "os", "de", "da", "do", "das", "dos", "e", "em", "no", "na", "nos", "nas",
    "para", "por", "com", "sem", "um", "uma", "uns", "umas", "ao", "aos", "que", "se", "mais",
    "sua", "seu", "suas", "seus", "via", "pelo", "pela",
}

PROBLEM_KEYWORDS: Dict[ProblemCategory, Tuple[str, ...]] = {
    ProblemCategory.ESTOQUE: ("estoque", "ruptura", "reposicao", "avise", "inventario", "reabastec"),
    ProblemCategory.TICKET: ("ticket", "valor medio", "aov", "upsell", "kit", "combo", "bundle"),
    ProblemCategory.CONVERSAO: ("conversao", "checkout", "carrinho", "abandono", "frete", "finalizacao"),
    ProblemCategory.RETENCAO: (
        "fidelidade", "fidelizacao", "recompra", "retencao", "reativacao", "assinatura",
        "pos-compra", "inativos", "pontos", "cashback", "recorrente", "recorrencia",
    ),
    ProblemCategory.CUPONS: ("cupom", "cupons", "desconto", "promocao", "voucher"),
    ProblemCategory.MARKETING: (
        "marketing", "instagram", "influenciador", "redes sociais", "email", "newsletter",
        "remarketing", "seo", "conteudo", "anuncio", "trafego", "tiktok", "campanha",
    ),
    ProblemCategory.OPERACIONAL: ("cancelamento", "entrega", "logistica", "atendimento", "prazo", "operac"),
    ProblemCategory.PRODUTO: ("produto", "catalogo", "lancamento", "mix", "portfolio", "linha", "colecao"),
}

SOLUTION_KEYWORDS: Dict[SolutionType, Tuple[str, ...]] = {
    SolutionType.REPOSICAO: ("repor", "reposicao", "reabastec", "avise-me", "estoque de seguranca"),
    SolutionType.DESCONTO: ("desconto", "cupom", "promocao", "liquidacao", "frete gratis", "preco"),
    SolutionType.EMAIL: ("email", "e-mail", "newsletter", "automacao"),
    SolutionType.FIDELIDADE: ("fidelidade", "pontos", "cashback", "recompensa", "vip", "assinatura", "clube"),
    SolutionType.UPSELL: ("upsell", "upgrade", "premium", "versao maior"),
    SolutionType.CROSSSELL: ("cross", "venda cruzada", "compre junto", "relacionados", "complementar"),
    SolutionType.BUNDLE: ("kit", "combo", "bundle", "pack"),
    SolutionType.SOCIAL: (
        "instagram", "whatsapp", "influenciador", "redes sociais", "tiktok", "comunidade",
        "ugc", "review", "avaliacao", "indicacao", "parceria",
    ),
    SolutionType.CONTEUDO: ("conteudo", "video", "guia", "tutorial", "blog", "seo", "quiz"),
    SolutionType.UX: ("checkout", "pagina", "layout", "navegacao", "mobile", "busca", "filtro", "carrinho"),
}

CATEGORY_TO_PROBLEM: Dict[str, ProblemCategory] = {
    "inventory": ProblemCategory.ESTOQUE,
    "pricing": ProblemCategory.TICKET,
    "product": ProblemCategory.PRODUTO,
    "customer": ProblemCategory.RETENCAO,
    "conversion": ProblemCategory.CONVERSAO,
    "marketing": ProblemCategory.MARKETING,
    "coupon": ProblemCategory.CUPONS,
    "operational": ProblemCategory.OPERACIONAL,
    "growth": ProblemCategory.MARKETING,
    "market": ProblemCategory.MARKETING,
    "positioning": ProblemCategory.PRODUTO,
    "strategy": ProblemCategory.PRODUTO,
    "investment": ProblemCategory.OPERACIONAL,
    "financial": ProblemCategory.TICKET,
}

DEFAULT_SOLUTION: Dict[ProblemCategory, SolutionType] = {
    ProblemCategory.ESTOQUE: SolutionType.REPOSICAO,
    ProblemCategory.TICKET: SolutionType.UPSELL,
    ProblemCategory.CONVERSAO: SolutionType.UX,
    ProblemCategory.RETENCAO: SolutionType.FIDELIDADE,
    ProblemCategory.CUPONS: SolutionType.DESCONTO,
    ProblemCategory.MARKETING: SolutionType.SOCIAL,
    ProblemCategory.OPERACIONAL: SolutionType.UX,
    ProblemCategory.PRODUTO: SolutionType.BUNDLE,
}


def normalize_title(title: Optional[str]) -> str:
    text = _NON_ALNUM.sub(" ", normalize_text(title))
    return _SPACES.sub(" ", text).strip()


def title_similarity(a: str, b: str) -> float:
    """Best of edit-distance, indel and word-order-insensitive ratios on normalized titles (0-1)."""
    left, right = normalize_title(a), normalize_title(b)
    if not left or not right:
        return 0.0
    score = max(
        Levenshtein.normalized_similarity(left, right),
        fuzz.ratio(left, right) / 100.0,
        fuzz.token_sort_ratio(left, right) / 100.0,
    )
    return round(score, 4)


def title_tokens(title: str) -> set:
    return {token for token in normalize_title(title).split() if token not in STOPWORDS}


def jaccard(a: str, b: str) -> float:
    left, right = title_tokens(a), title_tokens(b)
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def extract_keywords(text: str, limit: int = 8) -> List[str]:
    seen: List[str] = []
    for token in normalize_title(text).split():
        if len(token) < 4 or token in STOPWORDS or token in seen:
            continue
        seen.append(token)
        if len(seen) >= limit:
            break
    return seen


def _count_hits(text: str, keywords: Iterable[str]) -> int:
    return sum(1 for keyword in keywords if keyword in text)


def classify_problem(text: str, category: Optional[str] = None) -> ProblemCategory:
    normalized = normalize_text(text)
    scores = {key: _count_hits(normalized, words) for key, words in PROBLEM_KEYWORDS.items()}
    best = max(scores.values())
    if best > 0:
        for key in PROBLEM_KEYWORDS:
            if scores[key] == best:
                return key
    return CATEGORY_TO_PROBLEM.get((category or "").lower(), ProblemCategory.PRODUTO)


def classify_solution(text: str, problem: ProblemCategory) -> SolutionType:
    normalized = normalize_text(text)
    scores = {key: _count_hits(normalized, words) for key, words in SOLUTION_KEYWORDS.items()}
    best = max(scores.values())
    if best > 0:
        for key in SOLUTION_KEYWORDS:
            if scores[key] == best:
                return key
    return DEFAULT_SOLUTION[problem]


def classify_pair(title: str, description: str = "", category: Optional[str] = None) -> Tuple[ProblemCategory, SolutionType]:
    text = f"{title} {description}"
    problem = classify_problem(text, category)
    return problem, classify_solution(text, problem)


def is_duplicate(
    candidate_title: str,
    candidate_pair: Tuple[ProblemCategory, SolutionType],
    existing_title: str,
    existing_pair: Tuple[ProblemCategory, SolutionType],
    threshold: float,
) -> bool:
    """Same (problem category, solution type) pair, or title similarity at or above the threshold."""
    if candidate_pair == existing_pair:
        return True
    return title_similarity(candidate_title, existing_title) >= threshold


def dedupe_titles(titles: Sequence[str], threshold: float) -> List[int]:
    """Indexes to keep: the first of every group whose token sets overlap at or above the threshold."""
    kept: List[int] = []
    for idx, title in enumerate(titles):
        if any(jaccard(title, titles[other]) >= threshold for other in kept):
            continue
        kept.append(idx)
    return kept
