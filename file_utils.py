"""
File utilities for the growth analysis pipeline.

Persists completed analyses as a directory of JSON files. A run is written
into a temporary directory first and moved into place with a single rename,
so readers never observe a half-written analysis. Failed runs leave only a
failure record.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import uuid
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Dict, List, Optional

from analysis_modules import LABELS
from config import GrowthConfig
from models import AnalysisResult

logger = logging.getLogger(__name__)

FAILED_DIRNAME = "failed"


def _atomic_write_text(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with NamedTemporaryFile("w", delete=False, encoding="utf-8", dir=str(path.parent)) as tmp:
        tmp.write(data)
        tmp_name = tmp.name
    os.replace(tmp_name, path)


def write_text(path: Path, content: str) -> None:
    _atomic_write_text(path, content)


def write_json(path: Path, payload: Any) -> None:
    serialized = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
    _atomic_write_text(path, serialized)


def swap_directory(staging: Path, target: Path) -> None:
    """
    Move ``staging`` to ``target``. An existing ``target`` is renamed aside first and
    deleted only after the swap, and is restored if the swap fails.
    """
    previous: Optional[Path] = None
    if target.exists():
        previous = target.with_name(f".{target.name}-previous-{uuid.uuid4().hex[:8]}")
        os.replace(target, previous)
    try:
        os.replace(staging, target)
    except OSError:
        if previous is not None:
            os.replace(previous, target)
        raise
    if previous is not None:
        shutil.rmtree(previous, ignore_errors=True)


def _summary_markdown(result: AnalysisResult) -> str:
    metrics = result.analyst.metrics
    health = metrics.health
    lines = [
        f"# Análise de crescimento: {result.store_name}",
        "",
        f"- Gerada em: {result.generated_at}",
        f"- Tipo de análise: {LABELS[result.analysis_type]}",
        f"- Score de saúde: {health.total if health.total is not None else 'indeterminado'}"
        f" ({health.band.value if health.band else 'sem classificação'})",
        f"- Porte: {result.profile.profile.porte.value}",
        f"- Maturidade digital: {result.profile.profile.maturidade_digital.value}",
        "",
        "## Sugestões",
    ]
    for item in result.critic.suggestions:
        suggestion = item.suggestion
        lines.append(
            f"{item.priority}. [{suggestion.tier.value}] {suggestion.title} "
            f"(nota {item.quality_score:.1f}, {item.final_state.value})"
        )
        lines.append(f"   - Problema: {suggestion.problem}")
        lines.append(f"   - Resultado esperado: {suggestion.expected_result.description or suggestion.expected_result.value}")
    coverage = result.critic.goal_coverage
    if coverage is not None:
        lines += ["", f"Cobertura da meta: {coverage.ratio:.0%} de R$ {coverage.gap:,.2f}"]
    return "\n".join(lines) + "\n"


class AnalysisFileStore:
    """Persistence sink: ``<base>/<analysis_id>/`` per completed run, ``<base>/failed/`` for failures."""

    def __init__(self, base_output_dir: Optional[str] = None):
        self.base_output_dir = base_output_dir or GrowthConfig.OUTPUT_DIR
        Path(self.base_output_dir).mkdir(parents=True, exist_ok=True)

    def analysis_dir(self, analysis_id: str) -> Path:
        return Path(self.base_output_dir) / analysis_id

    def persist(self, result: AnalysisResult) -> str:
        """Write every artifact of a completed run, then expose it with one rename."""
        target = self.analysis_dir(result.analysis_id)
        staging = Path(tempfile.mkdtemp(prefix=f".{result.analysis_id}-", dir=self.base_output_dir))
        try:
            payload = result.model_dump(mode="json")
            write_json(staging / "analysis.json", payload)
            write_json(staging / "suggestions.json", payload["critic"]["suggestions"])
            write_json(staging / "metrics.json", payload["analyst"]["metrics"])
            write_json(
                staging / "metadata.json",
                {
                    "analysis_id": result.analysis_id,
                    "store_name": result.store_name,
                    "status": result.status,
                    "generated_at": result.generated_at,
                    "stage_timings": result.stage_timings,
                    "suggestion_count": len(result.critic.suggestions),
                    "health_score": result.analyst.metrics.health.total,
                },
            )
            write_text(staging / "summary.md", _summary_markdown(result))
            swap_directory(staging, target)
        except Exception:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        logger.info("💾 Analysis saved to %s", target)
        return str(target)

    def mark_failed(self, analysis_id: str, error_info: Dict[str, Any]) -> str:
        path = Path(self.base_output_dir) / FAILED_DIRNAME / f"{analysis_id}.json"
        write_json(path, {"analysis_id": analysis_id, "status": "failed", **error_info})
        logger.info("Failure record saved to %s", path)
        return str(path)

    def load(self, analysis_id: str) -> AnalysisResult:
        path = self.analysis_dir(analysis_id) / "analysis.json"
        return AnalysisResult.model_validate_json(path.read_text(encoding="utf-8"))

    def list_analyses(self) -> List[str]:
        base = Path(self.base_output_dir)
        if not base.exists():
            return []
        entries = [
            entry for entry in base.iterdir()
            if entry.is_dir() and entry.name != FAILED_DIRNAME and not entry.name.startswith(".")
        ]
        entries.sort(key=os.path.getmtime, reverse=True)
        return [entry.name for entry in entries]
