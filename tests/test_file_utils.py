import json
import os

import pytest

import file_utils
from analyst_agent import compute_metrics
from benchmarks import resolve_benchmarks
from file_utils import FAILED_DIRNAME, AnalysisFileStore
from models import (
    AnalysisContext,
    AnalysisResult,
    AnalystReport,
    CollectorDigest,
    CriticReport,
    CuratedSuggestion,
    FinalState,
    ProfileResult,
    SimilarityReport,
    StoreProfile,
    StrategistSlate,
)


@pytest.fixture
def analysis_result(request_factory, suggestion_factory):
    def build(analysis_id="an-001"):
        request = request_factory(analysis_id=analysis_id)
        metrics = compute_metrics(request, resolve_benchmarks(request.store.niche, request.benchmarks))
        suggestion = suggestion_factory()
        return AnalysisResult(
            analysis_id=analysis_id,
            store_name=request.store.name,
            profile=ProfileResult(profile=StoreProfile(nicho="beauty"), context=AnalysisContext(data="2024-03-20")),
            collector=CollectorDigest(),
            analyst=AnalystReport(metrics=metrics),
            similarity=SimilarityReport(),
            strategist=StrategistSlate(suggestions=[suggestion]),
            critic=CriticReport(
                suggestions=[
                    CuratedSuggestion(suggestion=suggestion, final_state=FinalState.APPROVED, quality_score=8.0)
                ],
                average_score=8.0,
            ),
            stage_timings={"profile": 0.1},
        )

    return build


def test_persist_writes_every_artifact(tmp_path, analysis_result):
    store = AnalysisFileStore(str(tmp_path))
    location = store.persist(analysis_result())

    target = tmp_path / "an-001"
    assert location == str(target)
    assert sorted(p.name for p in target.iterdir()) == [
        "analysis.json", "metadata.json", "metrics.json", "suggestions.json", "summary.md",
    ]
    metadata = json.loads((target / "metadata.json").read_text(encoding="utf-8"))
    assert metadata["health_score"] == 39
    assert metadata["suggestion_count"] == 1
    summary = (target / "summary.md").read_text(encoding="utf-8")
    assert "Loja Aurora" in summary
    assert "Reposição automática dos 10 produtos sem estoque" in summary
    assert not [p for p in tmp_path.iterdir() if p.name.startswith(".")]


def test_persist_replaces_previous_run(tmp_path, analysis_result):
    store = AnalysisFileStore(str(tmp_path))
    store.persist(analysis_result())
    (tmp_path / "an-001" / "stale.txt").write_text("antigo", encoding="utf-8")
    store.persist(analysis_result())
    assert not (tmp_path / "an-001" / "stale.txt").exists()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["an-001"]


def test_failed_swap_keeps_previous_analysis(tmp_path):
    target = tmp_path / "an-001"
    target.mkdir()
    (target / "result.json").write_text("{}", encoding="utf-8")
    with pytest.raises(OSError):
        file_utils.swap_directory(tmp_path / "missing-staging", target)
    assert (target / "result.json").read_text(encoding="utf-8") == "{}"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["an-001"]


def test_swap_never_leaves_the_target_missing(tmp_path, monkeypatch):
    target = tmp_path / "an-001"
    target.mkdir()
    staging = tmp_path / ".an-001-staging"
    staging.mkdir()
    (staging / "result.json").write_text("novo", encoding="utf-8")
    seen = []
    real_rmtree = file_utils.shutil.rmtree

    def watching_rmtree(path, *args, **kwargs):
        seen.append(target.exists())
        return real_rmtree(path, *args, **kwargs)

    monkeypatch.setattr(file_utils.shutil, "rmtree", watching_rmtree)
    file_utils.swap_directory(staging, target)
    assert seen == [True]
    assert (target / "result.json").read_text(encoding="utf-8") == "novo"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["an-001"]


def test_failed_write_leaves_nothing_behind(tmp_path, analysis_result, monkeypatch):
    def broken(path, content):
        raise OSError("disk full")

    monkeypatch.setattr(file_utils, "write_text", broken)
    store = AnalysisFileStore(str(tmp_path))
    with pytest.raises(OSError):
        store.persist(analysis_result())
    assert list(tmp_path.iterdir()) == []


def test_load_round_trips(tmp_path, analysis_result):
    store = AnalysisFileStore(str(tmp_path))
    original = analysis_result()
    store.persist(original)
    loaded = store.load("an-001")
    assert loaded.critic.suggestions[0].suggestion.title == original.critic.suggestions[0].suggestion.title
    assert loaded.analyst.metrics.health.total == 39


def test_mark_failed_and_listing(tmp_path, analysis_result):
    store = AnalysisFileStore(str(tmp_path))
    store.persist(analysis_result("an-old"))
    store.persist(analysis_result("an-new"))
    os.utime(tmp_path / "an-old", (1_000_000, 1_000_000))
    store.mark_failed("an-bad", {"error_type": "StageFailedError", "stage": "critic"})

    record = json.loads((tmp_path / FAILED_DIRNAME / "an-bad.json").read_text(encoding="utf-8"))
    assert record == {"analysis_id": "an-bad", "status": "failed", "error_type": "StageFailedError", "stage": "critic"}
    assert store.list_analyses() == ["an-new", "an-old"]
