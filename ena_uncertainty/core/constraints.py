from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from .errors import ValidationError
from .layout import VariableLayout
from .network import FlowNetwork
from .uncertainty import BoundRatios

logger = logging.getLogger(__name__)


@dataclass
class ConstraintSystem:
    """``E x = F0`` (conservation) and ``G x >= H`` (box bounds) over one layout."""

    E: np.ndarray
    F0: np.ndarray
    G: np.ndarray
    H: np.ndarray
    layout: VariableLayout
    advisories: List[str] = field(default_factory=list)

    @property
    def lower(self) -> np.ndarray:
        return self.H[: self.layout.size]

    @property
    def upper(self) -> np.ndarray:
        return -self.H[self.layout.size:]

    def equality_residual(self, x: np.ndarray) -> np.ndarray:
        return self.E @ np.asarray(x, dtype=float) - self.F0

    def bound_violation(self, x: np.ndarray) -> float:
        """Largest amount by which ``x`` breaks ``G x >= H`` (0 when feasible)."""
        slack = self.G @ np.asarray(x, dtype=float) - self.H
        return float(max(0.0, -slack.min(initial=0.0)))


def build_equality(network: FlowNetwork, layout: VariableLayout) -> Tuple[np.ndarray, np.ndarray]:
    n = network.n
    E = np.zeros((n, layout.size))
    idx = np.arange(n)
    E[idx, layout.inputs.start + idx] = network.inputs
    E[idx, layout.exports.start + idx] = -network.exports
    E[idx, layout.respirations.start + idx] = -network.respirations
    offset = layout.flux_block.start
    for k, (a, b) in enumerate(layout.fluxes):
        if a == b:
            # a self-loop never changes the node balance
            continue
        value = network.flow[a, b]
        E[b, offset + k] = value
        E[a, offset + k] = -value
    return E, np.zeros(n)


def build_inequality(lower: np.ndarray, upper: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    lower = np.asarray(lower, dtype=float)
    upper = np.asarray(upper, dtype=float)
    if lower.shape != upper.shape or lower.ndim != 1:
        raise ValidationError(
            f"bound vectors must be 1-D and equal length, got {lower.shape} and {upper.shape}"
        )
    m = lower.size
    G = np.vstack([np.eye(m), -np.eye(m)])
    H = np.concatenate([lower, -upper])
    return G, H


def build_constraints(
    network: FlowNetwork,
    uncertainty,
    layout: Optional[VariableLayout] = None,
) -> ConstraintSystem:
    if not isinstance(network, FlowNetwork):
        raise ValidationError(
            f"network must be a FlowNetwork, got {type(network).__name__}",
            context={"field": "network"},
        )
    if layout is None:
        layout = VariableLayout.from_network(network)
    bounds: BoundRatios = uncertainty.compute_bounds(network, layout)
    if bounds.lower.size != layout.size or bounds.upper.size != layout.size:
        raise ValidationError(
            f"{uncertainty.kind} bounds have length {bounds.lower.size}, expected {layout.size}"
        )
    E, F0 = build_equality(network, layout)
    G, H = build_inequality(bounds.lower, bounds.upper)
    logger.debug(
        "built constraints: %d nodes, %d fluxes, %d variables (%s)",
        network.n, len(layout.fluxes), layout.size, uncertainty.kind,
    )
    return ConstraintSystem(E=E, F0=F0, G=G, H=H, layout=layout, advisories=list(bounds.advisories))
