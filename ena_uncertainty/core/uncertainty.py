from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .errors import ValidationError
from .layout import VariableLayout
from .network import FlowNetwork

logger = logging.getLogger(__name__)

# Smallest admissible ratio; keeps sampled flows strictly positive
POSITIVE_FLOOR = 0.0001
# Substituted for a zero percent error
ZERO_PERCENT_WINDOW = (0.9999, 1.0001)


@dataclass
class BoundRatios:
    lower: np.ndarray
    upper: np.ndarray
    advisories: List[str] = field(default_factory=list)


def _table_rows(table: Any, name: str) -> Iterable[Tuple[Any, ...]]:
    if isinstance(table, pd.DataFrame):
        if table.shape[1] < 2:
            raise ValidationError(f"{name} needs key column(s) and a value column", context={"table": name})
        return [tuple(row) for row in table.itertuples(index=False, name=None)]
    if isinstance(table, Mapping):
        rows = []
        for key, value in table.items():
            keys = tuple(key) if isinstance(key, tuple) else (key,)
            rows.append(keys + (value,))
        return rows
    try:
        return [tuple(row) for row in table]
    except TypeError:
        raise ValidationError(
            f"{name} must be a mapping, a sequence of rows or a DataFrame",
            context={"table": name},
        ) from None


def _value(raw: Any, name: str) -> float:
    try:
        v = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} has non-numeric value {raw!r}", context={"table": name}) from None
    if not math.isfinite(v):
        raise ValidationError(f"{name} has non-finite value {raw!r}", context={"table": name})
    return v


def _dense(table: np.ndarray, name: str) -> np.ndarray:
    try:
        out = np.array(table, dtype=float)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} has non-numeric values", context={"table": name}) from None
    if not np.all(np.isfinite(out)):
        raise ValidationError(f"{name} has non-finite values", context={"table": name})
    return out


def densify_nodes(table: Any, network: FlowNetwork, name: str, fill: np.ndarray) -> np.ndarray:
    """Expand a sparse ``{node: value}`` table to a per-node vector."""
    out = np.array(fill, dtype=float, copy=True)
    if isinstance(table, np.ndarray) and table.ndim == 1:
        if table.size != network.n:
            raise ValidationError(f"{name} has length {table.size}, expected {network.n}", context={"table": name})
        return _dense(table, name)
    for row in _table_rows(table, name):
        if len(row) != 2:
            raise ValidationError(f"{name} rows must be (node, value), got {row!r}", context={"table": name})
        try:
            idx = network.node_index(row[0])
        except ValidationError as exc:
            raise ValidationError(f"{name}: {exc}", context={"table": name, **exc.context}) from None
        out[idx] = _value(row[1], name)
    return out


def densify_flows(
    table: Any, network: FlowNetwork, layout: VariableLayout, name: str, fill: np.ndarray
) -> np.ndarray:
    """Expand a sparse ``{(from, to): value}`` table to the flux block order."""
    out = np.array(fill, dtype=float, copy=True)
    offset = 3 * layout.n
    if isinstance(table, np.ndarray) and table.ndim == 2:
        if table.shape != (network.n, network.n):
            raise ValidationError(f"{name} must be {network.n}x{network.n}", context={"table": name})
        rows, cols = layout.flux_rows_cols()
        return _dense(table, name)[rows, cols]
    ignored = 0
    for row in _table_rows(table, name):
        if len(row) != 3:
            raise ValidationError(f"{name} rows must be (from, to, value), got {row!r}", context={"table": name})
        try:
            a, b = network.node_index(row[0]), network.node_index(row[1])
        except ValidationError as exc:
            raise ValidationError(f"{name}: {exc}", context={"table": name, **exc.context}) from None
        value = _value(row[2], name)
        if network.flow[a, b] == 0:
            ignored += 1
            continue
        out[layout.flux_position(a, b) - offset] = value
    if ignored:
        logger.debug("%s: ignored %d entries for zero baseline flows", name, ignored)
    return out


def ratios(numerator: np.ndarray, baseline: np.ndarray) -> np.ndarray:
    """``numerator / baseline`` with the zero-baseline and sign guards applied."""
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.asarray(numerator, dtype=float) / baseline
    zero = baseline == 0
    out[zero] = 0.0
    negative = out < 0
    out[negative] = POSITIVE_FLOOR
    if zero.any() or negative.any():
        logger.debug(
            "normalized ratios: %d zero-baseline, %d negative clamped", int(zero.sum()), int(negative.sum())
        )
    return out


def _loss_target(network: FlowNetwork) -> str:
    # Combined output is carried by exports when the model has any, else respirations
    return "exports" if network.exports.sum() > 0 else "respirations"


def check_loss_categories(network: FlowNetwork, given: Dict[str, bool], mode: str):
    """Reject loss tables that do not match how the model stores its losses."""
    if network.output_only:
        if not given["outputs"]:
            raise ValidationError(
                f"outputs table missing for kind={mode!r}: the model only has output values (y), "
                "specify loss uncertainty with the outputs table",
                context={"missing": "outputs"},
            )
        if given["exports"] or given["respirations"]:
            raise ValidationError(
                "the model only has output values (y); do not pass exports or respirations tables",
                context={"mismatch": "exports/respirations"},
            )
    else:
        if given["outputs"]:
            raise ValidationError(
                "the model specifies exports and respirations; loss uncertainty must use the "
                "exports/respirations tables, not outputs",
                context={"mismatch": "outputs"},
            )
        if not (given["exports"] or given["respirations"]):
            raise ValidationError(
                f"exports or respirations table missing for kind={mode!r}",
                context={"missing": "exports/respirations"},
            )


@dataclass
class PercentUncertainty:
    """Uniform relative deviation applied to every variable."""

    percent: Optional[float] = None
    kind: ClassVar[str] = "percent"

    def validate(self, network: Optional[FlowNetwork] = None):
        if self.percent is None:
            raise ValidationError("percent is required when kind='percent'", context={"missing": "percent"})
        p = _value(self.percent, "percent")
        if p < 0:
            raise ValidationError(f"percent must be >= 0, got {p}", context={"field": "percent"})

    def window(self) -> Tuple[float, float, List[str]]:
        self.validate()
        p = float(self.percent)
        if p == 0:
            msg = "zero percent error given, using the [0.9999, 1.0001] window"
            logger.warning(msg)
            return ZERO_PERCENT_WINDOW[0], ZERO_PERCENT_WINDOW[1], [msg]
        if p >= 100:
            return POSITIVE_FLOOR, 1.0 + p / 100.0, []
        return 1.0 - p / 100.0, 1.0 + p / 100.0, []

    def compute_bounds(self, network: FlowNetwork, layout: VariableLayout) -> BoundRatios:
        lo, hi, advisories = self.window()
        m = layout.size
        return BoundRatios(np.full(m, lo), np.full(m, hi), advisories)


@dataclass
class SymmetricUncertainty:
    """Half-ranges around each baseline flow, in flow units."""

    flows: Any = None
    inputs: Any = None
    exports: Any = None
    respirations: Any = None
    outputs: Any = None
    kind: ClassVar[str] = "sym"

    def validate(self, network: FlowNetwork):
        if self.flows is None:
            raise ValidationError(
                "please provide symmetric uncertainty data for internal flows", context={"missing": "flows"}
            )
        if self.inputs is None:
            raise ValidationError(
                "please provide symmetric uncertainty data for model inputs", context={"missing": "inputs"}
            )
        given = {k: getattr(self, k) is not None for k in ("exports", "respirations", "outputs")}
        check_loss_categories(network, given, self.kind)

    def half_ranges(self, network: FlowNetwork, layout: VariableLayout) -> np.ndarray:
        self.validate(network)
        n = network.n
        zeros = np.zeros(n)
        exports, respirations = self.exports, self.respirations
        if self.outputs is not None:
            if _loss_target(network) == "exports":
                exports, respirations = self.outputs, None
            else:
                exports, respirations = None, self.outputs
        parts = [
            densify_nodes(self.inputs, network, "inputs", zeros),
            zeros if exports is None else densify_nodes(exports, network, "exports", zeros),
            zeros if respirations is None else densify_nodes(respirations, network, "respirations", zeros),
            densify_flows(self.flows, network, layout, "flows", np.zeros(len(layout.fluxes))),
        ]
        half = np.concatenate(parts)
        if np.any(half < 0):
            raise ValidationError("symmetric half-ranges must be non-negative", context={"field": "half_range"})
        return half

    def compute_bounds(self, network: FlowNetwork, layout: VariableLayout) -> BoundRatios:
        half = self.half_ranges(network, layout)
        base = layout.baseline(network)
        return BoundRatios(ratios(base - half, base), ratios(base + half, base))


@dataclass
class AsymmetricUncertainty:
    """Absolute lower/upper bounds per flow; unlisted entries are bounded at zero."""

    flows_lower: Any = None
    flows_upper: Any = None
    inputs_lower: Any = None
    inputs_upper: Any = None
    exports_lower: Any = None
    exports_upper: Any = None
    respirations_lower: Any = None
    respirations_upper: Any = None
    outputs_lower: Any = None
    outputs_upper: Any = None
    kind: ClassVar[str] = "asym"

    def validate(self, network: FlowNetwork):
        if self.flows_lower is None or self.flows_upper is None:
            raise ValidationError(
                "please provide lower and upper uncertainty data for internal flows",
                context={"missing": "flows_lower" if self.flows_lower is None else "flows_upper"},
            )
        if self.inputs_lower is None or self.inputs_upper is None:
            raise ValidationError(
                "please provide lower and upper uncertainty data for model inputs",
                context={"missing": "inputs_lower" if self.inputs_lower is None else "inputs_upper"},
            )
        if network.output_only and (self.outputs_lower is None) != (self.outputs_upper is None):
            raise ValidationError(
                "outputs needs both lower and upper tables",
                context={"missing": "outputs_lower" if self.outputs_lower is None else "outputs_upper"},
            )
        given = {
            k: getattr(self, f"{k}_lower") is not None or getattr(self, f"{k}_upper") is not None
            for k in ("exports", "respirations", "outputs")
        }
        check_loss_categories(network, given, self.kind)

    def _side(self, network: FlowNetwork, layout: VariableLayout, side: str) -> np.ndarray:
        zeros = np.zeros(network.n)
        tables = {k: getattr(self, f"{k}_{side}") for k in ("inputs", "exports", "respirations", "flows")}
        outputs = getattr(self, f"outputs_{side}")
        if outputs is not None:
            tables[_loss_target(network)] = outputs
        parts = []
        for name in ("inputs", "exports", "respirations"):
            table = tables[name]
            parts.append(zeros if table is None else densify_nodes(table, network, f"{name}_{side}", zeros))
        flux_zeros = np.zeros(len(layout.fluxes))
        parts.append(densify_flows(tables["flows"], network, layout, f"flows_{side}", flux_zeros))
        return np.concatenate(parts)

    def compute_bounds(self, network: FlowNetwork, layout: VariableLayout) -> BoundRatios:
        self.validate(network)
        base = layout.baseline(network)
        lower = self._side(network, layout, "lower")
        upper = self._side(network, layout, "upper")
        return BoundRatios(ratios(lower, base), ratios(upper, base))


UNCERTAINTY_KINDS = {
    PercentUncertainty.kind: PercentUncertainty,
    SymmetricUncertainty.kind: SymmetricUncertainty,
    AsymmetricUncertainty.kind: AsymmetricUncertainty,
}

_ALIASES = {"p_err": "percent"}


def make_uncertainty(kind: str = "percent", **tables: Any):
    """Build an uncertainty strategy from a mode selector and its tables."""
    cls = UNCERTAINTY_KINDS.get(kind)
    if cls is None:
        raise ValidationError(
            f'kind must be "percent", "sym", or "asym", got {kind!r}', context={"field": "kind"}
        )
    kwargs = {_ALIASES.get(k, k): v for k, v in tables.items() if v is not None}
    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(kwargs) - allowed)
    if unknown:
        raise ValidationError(
            f"unexpected tables for kind={kind!r}: {', '.join(unknown)}", context={"unexpected": unknown}
        )
    return cls(**kwargs)
