from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Tuple

import numpy as np
from scipy.linalg import null_space
from scipy.optimize import linprog

from .errors import InfeasibleError, SamplerError, ValidationError
from .registry import ParameterRegistry
from .rng import RNGStreams

logger = logging.getLogger(__name__)

_DIRECTION_EPS = 1e-12
_REPROJECT_EVERY = 1000


class PolytopeSampler(Protocol):
    """Draws ``iterations`` points from ``{x : E x = F, G x >= H}``.

    Implementations return an ``(iterations, m)`` array or raise
    :class:`InfeasibleError` when the region is empty.
    """

    def sample(
        self,
        E: np.ndarray,
        F: np.ndarray,
        G: np.ndarray,
        H: np.ndarray,
        iterations: int,
        streams: RNGStreams,
    ) -> np.ndarray:
        ...


def split_box_rows(
    G: np.ndarray, H: np.ndarray, tol: float
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Separate single-variable rows of ``G x >= H`` into per-variable bounds.

    Returns ``(lower, upper, G_rest, H_rest)``.
    """
    m = G.shape[1]
    lower = np.full(m, -np.inf)
    upper = np.full(m, np.inf)
    nnz = np.count_nonzero(G, axis=1)
    empty = nnz == 0
    if np.any(H[empty] > tol):
        raise InfeasibleError("constraint 0 >= h with h > 0 can never hold")
    for i in np.flatnonzero(nnz == 1):
        j = int(np.flatnonzero(G[i])[0])
        g = G[i, j]
        bound = H[i] / g
        if g > 0:
            lower[j] = max(lower[j], bound)
        else:
            upper[j] = min(upper[j], bound)
    rest = nnz > 1
    return lower, upper, G[rest], H[rest]


@dataclass
class HitAndRunSampler:
    """Hit-and-run random walk restricted to the affine hull of ``E x = F``.

    Directions are drawn in the null space of the free equality matrix, so
    every step keeps the equalities up to round-off; the step length is
    uniform on the chord cut out by the inequalities.
    """

    burn_in: int = 200
    thin: int = 1
    tolerance: float = 1e-9

    @classmethod
    def from_registry(cls, params: ParameterRegistry) -> "HitAndRunSampler":
        return cls(
            burn_in=int(params.get("sampler.burn_in")),
            thin=int(params.get("sampler.thin")),
            tolerance=float(params.get("sampler.tolerance")),
        )

    def sample(self, E, F, G, H, iterations, streams):
        E = np.atleast_2d(np.asarray(E, dtype=float))
        F = np.asarray(F, dtype=float).reshape(-1)
        G = np.atleast_2d(np.asarray(G, dtype=float))
        H = np.asarray(H, dtype=float).reshape(-1)
        if int(iterations) < 1:
            raise ValidationError(f"iterations must be >= 1, got {iterations}", context={"field": "iterations"})
        iterations = int(iterations)
        m = E.shape[1]
        if G.shape[1] != m or F.size != E.shape[0] or H.size != G.shape[0]:
            raise ValidationError(
                f"inconsistent system shapes E{E.shape} F{F.shape} G{G.shape} H{H.shape}"
            )
        tol = self.tolerance

        lower, upper, G_rest, H_rest = split_box_rows(G, H, tol)
        scale = np.maximum(1.0, np.abs(np.where(np.isfinite(upper), upper, 0.0)))
        crossed = lower > upper + tol * scale
        if crossed.any():
            idx = np.flatnonzero(crossed)
            raise InfeasibleError(
                f"{idx.size} variable(s) have a lower bound above the upper bound",
                context={"variables": idx[:10].tolist()},
            )
        pinned = (upper - lower) <= tol * scale
        free = ~pinned
        x_pinned = 0.5 * (lower[pinned] + upper[pinned])

        E_free = E[:, free]
        b = F - E[:, pinned] @ x_pinned
        G_free = G_rest[:, free]
        h_free = H_rest - G_rest[:, pinned] @ x_pinned
        lo_free, up_free = lower[free], upper[free]

        out = np.empty((iterations, m))
        out[:, pinned] = x_pinned
        k = int(free.sum())
        if k == 0:
            if np.abs(b).max(initial=0.0) > tol * max(1.0, np.abs(E).max(initial=0.0)):
                raise InfeasibleError("fixed bounds violate the equality constraints")
            return out

        x = self._interior_point(E_free, b, lo_free, up_free, G_free, h_free)
        basis = null_space(E_free) if E_free.shape[0] else np.eye(k)
        d = basis.shape[1]
        logger.debug("hit-and-run: %d variables, %d free, %d-dimensional walk", m, k, d)
        if d == 0:
            out[:, free] = x
            return out

        total = self.burn_in + iterations * self.thin
        kept = 0
        for step in range(total):
            u = basis @ streams.rng_direction.standard_normal(d)
            norm = np.linalg.norm(u)
            if norm > 0:
                u /= norm
                t_lo, t_hi = self._chord(x, u, lo_free, up_free, G_free, h_free)
                t = streams.rng_step.uniform(t_lo, t_hi) if t_hi > t_lo else 0.0
                x = np.clip(x + t * u, lo_free, up_free)
            if (step + 1) % _REPROJECT_EVERY == 0:
                x = self._project(E_free, b, x, lo_free, up_free)
            if step >= self.burn_in and (step - self.burn_in + 1) % self.thin == 0:
                out[kept, free] = x
                kept += 1
        return out

    def _interior_point(self, E, b, lower, upper, G, h) -> np.ndarray:
        # Chebyshev-style center: maximize the slack s shared by every inequality
        k = E.shape[1]
        rows, rhs = [], []
        for j in np.flatnonzero(np.isfinite(lower)):
            row = np.zeros(k + 1)
            row[j], row[k] = -1.0, 1.0
            rows.append(row)
            rhs.append(-lower[j])
        for j in np.flatnonzero(np.isfinite(upper)):
            row = np.zeros(k + 1)
            row[j], row[k] = 1.0, 1.0
            rows.append(row)
            rhs.append(upper[j])
        for i in range(G.shape[0]):
            rows.append(np.concatenate([-G[i], [np.linalg.norm(G[i])]]))
            rhs.append(-h[i])
        c = np.zeros(k + 1)
        c[k] = -1.0
        A_eq = np.hstack([E, np.zeros((E.shape[0], 1))]) if E.shape[0] else None
        res = linprog(
            c,
            A_ub=np.array(rows) if rows else None,
            b_ub=np.array(rhs) if rhs else None,
            A_eq=A_eq,
            b_eq=b if E.shape[0] else None,
            bounds=[(None, None)] * k + [(0, None)],
            method="highs",
        )
        if res.status == 2:
            raise InfeasibleError(
                "no coefficient vector satisfies both the conservation and bound constraints"
            )
        if res.status == 3:
            raise SamplerError("feasible region is unbounded; every variable needs finite bounds")
        if not res.success:
            raise SamplerError(f"interior point search failed: {res.message}")
        radius = float(res.x[k])
        if radius <= self.tolerance:
            logger.warning("feasible region has no interior; samples collapse to a single point")
        return self._project(E, b, res.x[:k], lower, upper)

    @staticmethod
    def _project(E, b, x, lower, upper) -> np.ndarray:
        if E.shape[0]:
            x = x - np.linalg.lstsq(E, E @ x - b, rcond=None)[0]
        return np.clip(x, lower, upper)

    @staticmethod
    def _chord(x, u, lower, upper, G, h) -> Tuple[float, float]:
        t_lo, t_hi = -np.inf, np.inf
        pos = u > _DIRECTION_EPS
        neg = u < -_DIRECTION_EPS
        if pos.any():
            t_hi = min(t_hi, float(((upper[pos] - x[pos]) / u[pos]).min()))
            t_lo = max(t_lo, float(((lower[pos] - x[pos]) / u[pos]).max()))
        if neg.any():
            t_hi = min(t_hi, float(((lower[neg] - x[neg]) / u[neg]).min()))
            t_lo = max(t_lo, float(((upper[neg] - x[neg]) / u[neg]).max()))
        if G.shape[0]:
            gu = G @ u
            slack = G @ x - h
            up = gu > _DIRECTION_EPS
            down = gu < -_DIRECTION_EPS
            if up.any():
                t_lo = max(t_lo, float((-slack[up] / gu[up]).max()))
            if down.any():
                t_hi = min(t_hi, float((-slack[down] / gu[down]).min()))
        if not (np.isfinite(t_lo) and np.isfinite(t_hi)):
            raise SamplerError("feasible region is unbounded along a sampled direction")
        return min(t_lo, 0.0), max(t_hi, 0.0)
