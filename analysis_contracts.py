import re
from typing import Any, Dict, Iterable, List, Tuple

from errors import LanguageContractError, SchemaViolationError

ENGLISH_TERMS_PATTERN = re.compile(
    r"\b(growing|stable|falling|increasing|decreasing|declining|improving|worsening)\b",
    flags=re.I,
)

# Enum codes and identifiers are not user-facing text.
CODE_FIELDS = {
    "id",
    "tier",
    "category",
    "severity",
    "level",
    "kind",
    "type",
    "data_source",
    "confidence",
    "final_state",
    "status",
    "complexity",
    "problem_category",
    "solution_type",
    "sales_trend",
    "band",
    "check",
    "outcome",
    "base_metric",
    "porte",
    "maturidade_digital",
    "app_name",
    "competitor_reference",
    "cited_metrics",
    "theme",
}

PLACEHOLDER_STRINGS = {
    "Lorem ipsum",
    "Exemplo de título",
    "Título da sugestão",
    "Descrição do problema",
    "TODO",
}

PLACEHOLDER_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(p) for p in sorted(PLACEHOLDER_STRINGS)) + r")\b",
    flags=re.I,
)


def _walk_strings(node: Any, path: str = "") -> List[Tuple[str, str]]:
    results: List[Tuple[str, str]] = []
    if isinstance(node, str):
        results.append((path, node))
    elif isinstance(node, list):
        for idx, value in enumerate(node):
            child_path = f"{path}[{idx}]" if path else f"[{idx}]"
            results.extend(_walk_strings(value, child_path))
    elif isinstance(node, dict):
        for key, value in node.items():
            if key in CODE_FIELDS:
                continue
            child_path = f"{path}.{key}" if path else key
            results.extend(_walk_strings(value, child_path))
    return results


def _missing_keys(payload: Dict[str, Any], keys: Iterable[str]) -> List[str]:
    return [f"Missing top-level key: {key}" for key in keys if key not in payload]


def _expect_type(payload: Dict[str, Any], key: str, expected: type, label: str) -> List[str]:
    if key in payload and not isinstance(payload[key], expected):
        return [f"{key} must be {label}."]
    return []


def find_english_terms(payload: Any) -> List[str]:
    """Return 'path: term' for every English status word found in user-facing text."""
    hits: List[str] = []
    for path, text in _walk_strings(payload):
        for match in ENGLISH_TERMS_PATTERN.finditer(text):
            hits.append(f"{path}: {match.group(0)}")
    return hits


def find_placeholders(payload: Any) -> List[str]:
    hits: List[str] = []
    for path, text in _walk_strings(payload):
        if text.strip() in ("...", "\u2026") or PLACEHOLDER_PATTERN.search(text):
            hits.append(path)
    return hits


def lint_profile_payload(payload: Dict[str, Any]) -> List[str]:
    """Return a list of contract violations for the Profile Synthesizer."""

    if not isinstance(payload, dict):
        return ["Profile payload must be a dictionary."]

    errors = _missing_keys(payload, ("perfil_loja", "contexto_analise"))
    errors += _expect_type(payload, "perfil_loja", dict, "an object")
    errors += _expect_type(payload, "contexto_analise", dict, "an object")

    profile = payload.get("perfil_loja")
    if isinstance(profile, dict):
        for key in ("nicho", "publico_alvo", "diferenciais"):
            if key not in profile:
                errors.append(f"perfil_loja missing field: {key}")
        if "diferenciais" in profile and not isinstance(profile["diferenciais"], list):
            errors.append("perfil_loja.diferenciais must be a list.")
    return errors


def lint_collector_payload(payload: Dict[str, Any]) -> List[str]:
    """Return a list of contract violations for the Collector."""

    if not isinstance(payload, dict):
        return ["Collector payload must be a dictionary."]

    list_keys = ("historical_summary", "success_patterns", "suggestions_to_avoid", "identified_gaps")
    errors = _missing_keys(payload, list_keys + ("relevant_benchmarks", "special_context"))
    for key in list_keys:
        errors += _expect_type(payload, key, list, "a list")
    errors += _expect_type(payload, "relevant_benchmarks", dict, "an object")
    errors += _expect_type(payload, "special_context", str, "a string")
    return errors


def lint_analyst_payload(payload: Dict[str, Any]) -> List[str]:
    """Return a list of contract violations for the Analyst narrative block."""

    if not isinstance(payload, dict):
        return ["Analyst payload must be a dictionary."]

    errors = _missing_keys(payload, ("identified_patterns", "recommendations"))
    errors += _expect_type(payload, "identified_patterns", list, "a list")
    errors += _expect_type(payload, "recommendations", list, "a list")
    return errors


def lint_similarity_payload(payload: Dict[str, Any]) -> List[str]:
    """Return a list of contract violations for the Similarity Engine."""

    if not isinstance(payload, dict):
        return ["Similarity payload must be a dictionary."]

    errors = _missing_keys(payload, ("prohibited_zones", "allowed_approaches", "strategist_guidance"))
    errors += _expect_type(payload, "prohibited_zones", list, "a list")
    errors += _expect_type(payload, "allowed_approaches", dict, "an object")

    zones = payload.get("prohibited_zones")
    if isinstance(zones, list):
        for idx, zone in enumerate(zones):
            zone_path = f"prohibited_zones[{idx}]"
            if not isinstance(zone, dict):
                errors.append(f"{zone_path} must be an object.")
                continue
            if "id" not in zone:
                errors.append(f"{zone_path} missing id.")
            if not isinstance(zone.get("prohibited_variations", []), list):
                errors.append(f"{zone_path}.prohibited_variations must be a list.")
    return errors


def lint_strategist_payload(payload: Dict[str, Any]) -> List[str]:
    """Return a list of contract violations for the Strategist slate."""

    if not isinstance(payload, dict):
        return ["Strategist payload must be a dictionary."]

    errors = _missing_keys(payload, ("suggestions",))
    suggestions = payload.get("suggestions")
    if "suggestions" in payload:
        if not isinstance(suggestions, list):
            errors.append("suggestions must be a list.")
        else:
            for idx, item in enumerate(suggestions):
                if not isinstance(item, dict):
                    errors.append(f"suggestions[{idx}] must be an object.")
    return errors


def lint_critic_payload(payload: Dict[str, Any]) -> List[str]:
    """Return a list of contract violations for Critic replacement batches."""

    if not isinstance(payload, dict):
        return ["Critic payload must be a dictionary."]

    errors = _missing_keys(payload, ("replacements",))
    errors += _expect_type(payload, "replacements", list, "a list")
    return errors


def enforce_contract(stage: str, errors: List[str]) -> None:
    if errors:
        raise SchemaViolationError(stage, errors)


def enforce_language(stage: str, payload: Any, raw: str = "") -> None:
    offending = find_english_terms(payload)
    if offending:
        raise LanguageContractError(
            f"{stage} output contains English terms: {', '.join(offending[:5])}",
            offending=offending,
            raw=raw,
        )


__all__ = [
    "enforce_contract",
    "enforce_language",
    "find_english_terms",
    "find_placeholders",
    "lint_analyst_payload",
    "lint_collector_payload",
    "lint_critic_payload",
    "lint_profile_payload",
    "lint_similarity_payload",
    "lint_strategist_payload",
]
