"""Matching policy configuration (weights, thresholds, tolerances)."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from erp_recon.config import settings
from erp_recon.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "reconciliation.yaml"


@dataclass(frozen=True)
class MatchingConfig:
    """Runtime configuration for candidate generation and confidence scoring."""

    weight_reference: float = 0.45
    weight_amount: float = 0.35
    weight_date: float = 0.10
    weight_name: float = 0.10
    exact_threshold: float = 0.90
    fuzzy_threshold: float = 0.60
    partial_threshold: float = 0.50
    name_threshold: float = 0.60
    amount_tolerance: Decimal = Decimal("0.01")
    date_grace_days: int = 30
    date_decay_days: int = 60
    max_candidates: int = 5

    def __post_init__(self) -> None:
        weights = (self.weight_reference, self.weight_amount, self.weight_date, self.weight_name)
        if any(w < 0 for w in weights):
            raise ValueError("Scoring weights must be non-negative")
        if sum(weights) <= 0:
            raise ValueError("At least one scoring weight must be positive")
        if not 0 < self.fuzzy_threshold <= self.exact_threshold <= 1:
            raise ValueError("Thresholds must satisfy 0 < fuzzy <= exact <= 1")
        if self.amount_tolerance < 0:
            raise ValueError("Amount tolerance must be non-negative")
        if self.max_candidates < 1:
            raise ValueError("max_candidates must be at least 1")


DEFAULT_CONFIG = MatchingConfig()

_config_cache: MatchingConfig | None = None


def clear_matching_config_cache() -> None:
    """Drop the cached config so the next load re-reads YAML and env."""
    global _config_cache
    _config_cache = None


def _config_from_mapping(raw: dict[str, Any], base: MatchingConfig) -> MatchingConfig:
    scoring = raw.get("scoring", {}) or {}
    weights = scoring.get("weights", {}) or {}
    thresholds = scoring.get("thresholds", {}) or {}
    tolerances = scoring.get("tolerances", {}) or {}
    candidates = raw.get("candidates", {}) or {}

    return MatchingConfig(
        weight_reference=float(weights.get("reference", base.weight_reference)),
        weight_amount=float(weights.get("amount", base.weight_amount)),
        weight_date=float(weights.get("date", base.weight_date)),
        weight_name=float(weights.get("name", base.weight_name)),
        exact_threshold=float(thresholds.get("exact", base.exact_threshold)),
        fuzzy_threshold=float(thresholds.get("fuzzy", base.fuzzy_threshold)),
        partial_threshold=float(thresholds.get("partial", base.partial_threshold)),
        name_threshold=float(thresholds.get("name_similarity", base.name_threshold)),
        amount_tolerance=Decimal(str(tolerances.get("amount_absolute", base.amount_tolerance))),
        date_grace_days=int(tolerances.get("date_grace_days", base.date_grace_days)),
        date_decay_days=int(tolerances.get("date_decay_days", base.date_decay_days)),
        max_candidates=int(candidates.get("max_candidates", base.max_candidates)),
    )


def load_matching_config(
    force_reload: bool = False, config_path: Path | None = None
) -> MatchingConfig:
    """Load matching configuration from YAML, then apply environment overrides.

    Caches the result to avoid repeated disk I/O. An unreadable or invalid file
    falls back to the defaults with a warning.
    """
    global _config_cache
    if _config_cache is not None and not force_reload:
        return _config_cache

    config = DEFAULT_CONFIG
    if config_path is None:
        configured = settings.reconciliation_config_path
        config_path = Path(configured) if configured else DEFAULT_CONFIG_PATH

    if config_path.exists():
        try:
            raw = yaml.safe_load(config_path.read_text()) or {}
            config = _config_from_mapping(raw, config)
        except (OSError, yaml.YAMLError, ValueError, TypeError, ArithmeticError) as e:
            logger.warning(
                "Failed to load matching config - using defaults",
                config_path=str(config_path),
                error=str(e),
                error_type=type(e).__name__,
            )

    exact_env = os.getenv("RECONCILIATION_EXACT_THRESHOLD")
    fuzzy_env = os.getenv("RECONCILIATION_FUZZY_THRESHOLD")
    try:
        if exact_env:
            config = replace(config, exact_threshold=float(exact_env))
        if fuzzy_env:
            config = replace(config, fuzzy_threshold=float(fuzzy_env))
    except ValueError as e:
        logger.warning(
            "Ignoring invalid threshold override",
            exact=exact_env,
            fuzzy=fuzzy_env,
            error=str(e),
        )

    _config_cache = config
    logger.debug("Matching config loaded", config_path=str(config_path))
    return config
