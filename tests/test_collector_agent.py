from benchmarks import resolve_benchmarks
from collector_agent import NO_HISTORY_SUMMARY, CollectorAgent, partition_history, suggestions_to_avoid
from models import HistoricalSuggestion


def _payload(**overrides):
    payload = {
        "historical_summary": ["Loja recebeu 3 análises anteriores."],
        "success_patterns": ["Campanhas de kits tiveram boa adesão."],
        "suggestions_to_avoid": ["Algo inventado"],
        "relevant_benchmarks": {},
        "identified_gaps": ["Nenhuma ação de retenção registrada."],
        "special_context": "Loja em expansão para novas linhas.",
    }
    payload.update(overrides)
    return payload


def _history():
    return [
        HistoricalSuggestion(id=1, title="Kit presente Dia das Mães", status="completed"),
        HistoricalSuggestion(id=2, title="Cupom de primeira compra", status="rejected"),
        HistoricalSuggestion(id=3, title="Newsletter semanal", status="ignored"),
        HistoricalSuggestion(id=4, title="Quiz de pele", status="in_progress"),
        HistoricalSuggestion(id=5, title="Frete grátis acima de R$ 199"),
    ]


def _run(stub_generator, request, payload):
    generator = stub_generator({"collector": payload})
    return CollectorAgent(generator).run(request, resolve_benchmarks(request.store.niche, request.benchmarks))


def test_partition_by_recorded_status():
    groups = partition_history(_history())
    assert [s.id for s in groups["successful"]] == ["1"]
    assert [s.id for s in groups["failed"]] == ["2", "3"]
    assert [s.id for s in groups["in_progress"]] == ["4"]
    assert [s.id for s in groups["pending"]] == ["5"]


def test_suggestions_to_avoid_come_from_failed_history():
    failed = partition_history(_history())["failed"]
    assert suggestions_to_avoid(failed) == [
        "Cupom de primeira compra (status: rejected)",
        "Newsletter semanal (status: ignored)",
    ]


def test_first_analysis_gets_fixed_summary_and_no_success_patterns(stub_generator, request_factory):
    digest = _run(stub_generator, request_factory(), _payload())
    assert digest.historical_summary == [NO_HISTORY_SUMMARY]
    assert digest.success_patterns == []
    assert digest.suggestions_to_avoid == []


def test_history_keeps_backend_summary_and_patterns(stub_generator, request_factory):
    request = request_factory(previous_suggestions=[s.model_dump() for s in _history()])
    digest = _run(stub_generator, request, _payload())
    assert digest.historical_summary == ["Loja recebeu 3 análises anteriores."]
    assert digest.success_patterns == ["Campanhas de kits tiveram boa adesão."]
    assert "Algo inventado" not in digest.suggestions_to_avoid
    assert digest.special_context == "Loja em expansão para novas linhas."


def test_patterns_dropped_without_completed_suggestions(stub_generator, request_factory):
    history = [HistoricalSuggestion(id=9, title="Quiz de pele", status="rejected").model_dump()]
    digest = _run(stub_generator, request_factory(previous_suggestions=history), _payload())
    assert digest.success_patterns == []


def test_benchmarks_and_snippets_are_reported(stub_generator, request_factory):
    request = request_factory(strategy_snippets=["Trecho A", "Trecho B"])
    digest = _run(stub_generator, request, _payload())
    assert digest.relevant_benchmarks["ticket_medio_nicho"] == 150.0
    assert digest.relevant_benchmarks["fonte"] == "informado"
    assert digest.relevant_benchmarks["trechos_estrategia"] == 2
