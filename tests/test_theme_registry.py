import pytest

import theme_registry
from models import HistoricalSuggestion, SaturationLevel


def _history(*titles):
    return [HistoricalSuggestion(id=str(idx), title=title) for idx, title in enumerate(titles, start=1)]


def test_registry_is_read_only():
    with pytest.raises(TypeError):
        theme_registry.themes()["novo"] = ("x",)


def test_match_is_accent_insensitive():
    assert "estoque" in theme_registry.match_themes("Reposicao automatica de produtos")
    assert "estoque" in theme_registry.match_themes("Reposição automática de produtos")


def test_short_keywords_match_whole_words_only():
    assert "kits" in theme_registry.match_themes("Kit presente para o Dia das Mães")
    assert "kits" not in theme_registry.match_themes("Kitchen organizers")


def test_unknown_label_raises():
    with pytest.raises(KeyError):
        theme_registry.label("inexistente")


def test_saturation_counts_each_suggestion_once_per_theme():
    entries = theme_registry.saturation_map(
        theme_registry.theme_saturation(_history("Programa de fidelidade com pontos e cashback"))
    )
    assert entries["fidelidade"].count == 1
    assert entries["fidelidade"].level == SaturationLevel.USED


def test_saturation_levels():
    history = _history(
        "Quiz de pele",
        "Quiz personalizado de rotina",
        "Questionário de recomendação",
        "Frete grátis acima de R$ 199",
        "Entrega grátis para capitais",
    )
    entries = theme_registry.saturation_map(theme_registry.theme_saturation(history))
    assert entries["quiz"].level == SaturationLevel.BLOCKED
    assert entries["frete_gratis"].level == SaturationLevel.FREQUENT
    assert entries["carnaval"].level == SaturationLevel.PREFERRED
    assert theme_registry.blocked_themes(entries.values()) == ["quiz"]


def test_saturation_is_idempotent():
    history = _history("Quiz de pele", "Kit de verão", "Cupom de primeira compra")
    first = theme_registry.theme_saturation(history)
    second = theme_registry.theme_saturation(history)
    assert [e.model_dump() for e in first] == [e.model_dump() for e in second]


def test_saturation_accepts_plain_dicts():
    entries = theme_registry.saturation_map(
        theme_registry.theme_saturation([{"id": 7, "title": "Newsletter semanal", "description": ""}])
    )
    assert entries["email"].matched_suggestion_ids == ["7"]


def test_prompt_block_marks_blocked_and_preferred():
    history = _history("Quiz A", "Quiz B", "Quiz C")
    block = theme_registry.saturation_prompt_block(theme_registry.theme_saturation(history))
    assert "PROIBIDO: Quiz de Recomendação (usado 3x)" in block
    assert "PREFERIR: SEO (nunca sugerido)" in block
