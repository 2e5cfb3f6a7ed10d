"""YAML run configuration for the CLI and ``analyze_performance``.

Example::

    transactions: data/transactions.csv
    benchmark:
      file: data/omxs30.csv
      name: OMXS30
      date_column: Date
      price_column: Close
    policy:
      capital_mode: inferred
      fee_policy: capitalize

``benchmark`` may also be a bare path. Relative paths resolve against the
YAML file's directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from portfolio_performance_engine import config
from portfolio_performance_engine.config import EnginePolicy
from portfolio_performance_engine.exceptions import InputError

_TOP_LEVEL_KEYS = {"transactions", "benchmark", "policy"}
_BENCHMARK_KEYS = {"file", "name", "date_column", "price_column"}


def _resolve(base: Path, value: Any, key: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InputError(f"Config key '{key}' must be a file path", field=key, value=value)
    path = Path(value)
    if not path.is_absolute():
        path = base / path
    return str(path)


def load_analysis_config(filepath: Union[str, Path]) -> Dict[str, Any]:
    """
    Load the YAML and return ``{"transactions", "benchmark", "policy",
    "policy_settings"}``.

    ``benchmark`` is None or a dict with ``file``, ``name``, ``date_column``
    and ``price_column``; ``policy`` is a validated ``EnginePolicy`` and
    ``policy_settings`` holds only the policy keys the file sets.
    """
    path = Path(filepath)
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise InputError(f"Config file {path.name} must contain a mapping")

    unknown = set(raw) - _TOP_LEVEL_KEYS
    if unknown:
        raise InputError(f"Unknown config key(s) in {path.name}: {', '.join(sorted(unknown))}")

    base = path.parent
    settings = _policy_settings(raw.get("policy"))
    cfg: Dict[str, Any] = {
        "transactions": _resolve(base, raw["transactions"], "transactions") if raw.get("transactions") else None,
        "benchmark": _load_benchmark_section(base, raw.get("benchmark")),
        "policy": _load_policy_section(settings),
        "policy_settings": settings,
    }
    return cfg


def _load_benchmark_section(base: Path, section: Any) -> Optional[Dict[str, Any]]:
    if section is None:
        return None
    if isinstance(section, str):
        section = {"file": section}
    if not isinstance(section, dict):
        raise InputError("Config key 'benchmark' must be a path or a mapping", field="benchmark", value=section)
    unknown = set(section) - _BENCHMARK_KEYS
    if unknown:
        raise InputError(f"Unknown benchmark key(s): {', '.join(sorted(unknown))}", field="benchmark")
    defaults = config.BENCHMARK_DEFAULTS
    return {
        "file": _resolve(base, section.get("file"), "benchmark.file"),
        "name": section.get("name") or defaults["name"],
        "date_column": section.get("date_column") or defaults["date_column"],
        "price_column": section.get("price_column") or defaults["price_column"],
    }


def _policy_settings(section: Any) -> Dict[str, str]:
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise InputError("Config key 'policy' must be a mapping", field="policy", value=section)
    return {key: str(value) for key, value in section.items() if value is not None}


def _load_policy_section(settings: Dict[str, str]) -> EnginePolicy:
    try:
        return EnginePolicy.from_config(**settings)
    except (KeyError, ValueError) as exc:
        raise InputError(str(exc.args[0]), field="policy") from exc
