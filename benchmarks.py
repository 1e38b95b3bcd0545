"""Default niche benchmarks used when the caller supplies none."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from models import NicheBenchmarks

logger = logging.getLogger(__name__)

# Average ticket in R$ (min, max, media). Sources: ABComm, Neotrust, NuvemCommerce 2024.
NICHE_TICKET_BENCHMARKS: Dict[str, Dict[str, float]] = {
    "beauty": {"min": 180, "max": 280, "media": 224},
    "moda": {"min": 200, "max": 320, "media": 260},
    "eletronicos": {"min": 400, "max": 700, "media": 522},
    "casa_decoracao": {"min": 200, "max": 500, "media": 320},
    "alimentos": {"min": 100, "max": 250, "media": 170},
    "pet": {"min": 120, "max": 200, "media": 155},
    "saude": {"min": 180, "max": 300, "media": 224},
    "esportes": {"min": 180, "max": 350, "media": 260},
    "infantil": {"min": 150, "max": 280, "media": 210},
    "joias_relogios": {"min": 200, "max": 600, "media": 380},
    "papelaria": {"min": 80, "max": 180, "media": 120},
    "automotivo": {"min": 150, "max": 400, "media": 260},
    "sex_shop": {"min": 120, "max": 280, "media": 190},
    "livros": {"min": 60, "max": 150, "media": 100},
    "general": {"min": 200, "max": 600, "media": 350},
}

NICHE_ALIASES = {
    "beleza": "beauty",
    "cosmeticos": "beauty",
    "fashion": "moda",
    "vestuario": "moda",
    "eletronico": "eletronicos",
    "casa": "casa_decoracao",
    "decoracao": "casa_decoracao",
    "alimentacao": "alimentos",
    "joias": "joias_relogios",
    "geral": "general",
}


def canonical_niche(niche: Optional[str]) -> str:
    key = (niche or "").strip().lower().replace(" ", "_")
    key = NICHE_ALIASES.get(key, key)
    return key if key in NICHE_TICKET_BENCHMARKS else "general"


def resolve_benchmarks(niche: Optional[str], supplied: Optional[NicheBenchmarks]) -> NicheBenchmarks:
    """Prefer caller-supplied figures and fill the ticket benchmark from the niche table."""
    if supplied is not None and supplied.average_ticket is not None:
        return supplied

    key = canonical_niche(niche)
    ticket = NICHE_TICKET_BENCHMARKS[key]
    logger.info("Using default ticket benchmark for niche '%s': R$ %.2f", key, ticket["media"])
    base = supplied.model_dump() if supplied is not None else {}
    base.update(
        {
            "average_ticket": float(ticket["media"]),
            "source": f"tabela_padrao:{key}",
        }
    )
    extra = dict(base.get("extra") or {})
    extra.setdefault("ticket_min", float(ticket["min"]))
    extra.setdefault("ticket_max", float(ticket["max"]))
    base["extra"] = extra
    return NicheBenchmarks(**base)
