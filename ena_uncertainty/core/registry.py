from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml

from .errors import ConfigError


@dataclass
class ParameterRegistry:
    """Analysis and sampler settings loaded from YAML.

    Keys are read with dotted paths such as ``"sampler.burn_in"``; the
    hash of the merged settings tags each successful result.
    """

    data: Dict[str, Any]

    @classmethod
    def from_files(
        cls,
        default_yaml: str | Path = Path(__file__).resolve().parents[1]
        / "config" / "params_default.yaml",
        overrides: Dict[str, Any] | None = None,
    ) -> "ParameterRegistry":
        """Load the packaged defaults, apply ``overrides`` and range-check the result."""
        with open(default_yaml, "r", encoding="utf-8") as f:
            base = yaml.safe_load(f) or {}
        if overrides:
            base = deep_merge(base, overrides)
        _validate_params(base)
        return cls(base)

    def get(self, dotted_key: str, default: Any | None = None) -> Any:
        node = self.data
        for part in dotted_key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    def config_hash(self) -> str:
        """Stable hash of the parameters for run tagging."""
        payload = json.dumps(self.data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:12]


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    # override wins; nested sections merge key by key
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _assert_between(name: str, val: float, lo: float, hi: float):
    if not (lo <= float(val) <= hi):
        raise ConfigError(f"Parameter {name}={val} out of range [{lo},{hi}]")


def _require_int(cfg: Dict[str, Any], key: str) -> int:
    v = _dget(cfg, key)
    if isinstance(v, bool) or not isinstance(v, int):
        raise ConfigError(f"{key} must be an integer")
    return v


def _require_number(cfg: Dict[str, Any], key: str) -> float:
    v = _dget(cfg, key)
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise ConfigError(f"{key} must be numeric")
    return float(v)


def _validate_params(cfg: Dict[str, Any]):
    _assert_between("analysis.iterations", _require_int(cfg, "analysis.iterations"), 1, 10_000_000)
    _assert_between("analysis.balance_tolerance", _require_number(cfg, "analysis.balance_tolerance"), 0.0, 1.0)

    _assert_between("sampler.burn_in", _require_int(cfg, "sampler.burn_in"), 0, 10_000_000)
    _assert_between("sampler.thin", _require_int(cfg, "sampler.thin"), 1, 100_000)

    tol = _require_number(cfg, "sampler.tolerance")
    if not (0.0 < tol <= 1e-3):
        raise ConfigError(f"Parameter sampler.tolerance={tol} out of range (0,0.001]")


def _dget(d: Dict[str, Any], dotted: str) -> Any:
    node: Any = d
    for p in dotted.split("."):
        if not isinstance(node, dict) or p not in node:
            raise ConfigError(f"missing parameter {dotted}")
        node = node[p]
    return node
