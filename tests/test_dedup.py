from dedup import (
    classify_pair,
    dedupe_titles,
    extract_keywords,
    is_duplicate,
    jaccard,
    normalize_title,
    title_similarity,
)
from models import ProblemCategory, SolutionType


def test_normalize_title_strips_accents_and_punctuation():
    assert normalize_title("  Reposição: Automática!! ") == "reposicao automatica"


def test_title_similarity_bounds():
    assert title_similarity("Kit de verão", "Kit de verão") == 1.0
    assert title_similarity("", "Kit") == 0.0
    assert title_similarity("Kit de Verão", "kit de verao") == 1.0
    assert title_similarity("Quiz de pele", "Frete grátis nacional") < 0.5


def test_classify_pair_detects_loyalty_points():
    problem, solution = classify_pair("Programa de Pontos para Clientes Recorrentes")
    assert problem == ProblemCategory.RETENCAO
    assert solution == SolutionType.FIDELIDADE


def test_classify_pair_falls_back_to_category():
    problem, solution = classify_pair("Ajustar algo genérico", category="inventory")
    assert problem == ProblemCategory.ESTOQUE
    assert solution == SolutionType.REPOSICAO


def test_duplicate_when_pair_matches_even_with_different_titles():
    pair = (ProblemCategory.RETENCAO, SolutionType.FIDELIDADE)
    assert is_duplicate("Clube de vantagens", pair, "Programa de fidelidade", pair, 0.7)


def test_duplicate_when_titles_are_close():
    left = (ProblemCategory.TICKET, SolutionType.BUNDLE)
    right = (ProblemCategory.PRODUTO, SolutionType.BUNDLE)
    assert is_duplicate("Kit presente Dia das Mães", left, "Kits presente Dia das Mães", right, 0.7)
    assert not is_duplicate("Kit presente", left, "Ranqueamento no Google", right, 0.7)


def test_intra_batch_dedupe_keeps_first():
    titles = [
        "Kit presente Dia das Mães",
        "Kit presente para Dia das Mães",
        "Reposição automática de estoque",
    ]
    assert jaccard(titles[0], titles[1]) >= 0.85
    assert dedupe_titles(titles, 0.85) == [0, 2]


def test_extract_keywords_skips_stopwords_and_short_tokens():
    assert extract_keywords("Programa de Pontos para os Clientes") == ["programa", "pontos", "clientes"]


def test_title_similarity_ignores_word_order():
    assert title_similarity("Dia das Mães: kit presente", "Kit presente Dia das Mães") == 1.0
    assert title_similarity("Kit presente Dia das Mães", "Kits presente Dia das Mães") >= 0.9
