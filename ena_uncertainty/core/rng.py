from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict

import numpy as np
import yaml

from .errors import ConfigError


@dataclass
class RNGStreams:
    rng_direction: np.random.Generator
    rng_step: np.random.Generator


def load_seeds(path: str | Path | None = None) -> Dict[str, int]:
    if path is None:
        path = Path(__file__).resolve().parents[1] / "config" / "seeds.yaml"
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    try:
        return {k: int(v) for k, v in data["streams"].items()}
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"invalid seeds file {path}: {exc}") from exc


def build_streams(seeds: Dict[str, int], offset: int = 0) -> RNGStreams:
    # Offsetting every stream gives an independent, reproducible run per seed
    try:
        return RNGStreams(
            rng_direction=np.random.default_rng(seeds["rng_direction"] + offset),
            rng_step=np.random.default_rng(seeds["rng_step"] + offset),
        )
    except KeyError as exc:
        raise ConfigError(f"missing seed stream {exc}") from exc
