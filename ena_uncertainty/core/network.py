from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Union

import numpy as np

from .errors import ValidationError


NodeKey = Union[int, str]


def _vector(name: str, values, n: int) -> np.ndarray:
    arr = np.asarray(values, dtype=float).reshape(-1)
    if arr.size != n:
        raise ValidationError(
            f"{name} has length {arr.size}, expected {n}",
            context={"field": name},
        )
    return arr


def _check_magnitudes(name: str, arr: np.ndarray):
    if not np.all(np.isfinite(arr)):
        raise ValidationError(f"{name} contains non-finite values", context={"field": name})
    if np.any(arr < 0):
        raise ValidationError(f"{name} contains negative flow magnitudes", context={"field": name})


@dataclass(eq=False)
class FlowNetwork:
    """Structured view of a conserved-flow network.

    ``flow[a, b]`` is the flow from node a to node b. Losses are held both as
    the export/respiration split and as the combined ``outputs`` vector; a
    network stored with outputs only carries all of it as exports.
    """

    flow: np.ndarray
    inputs: np.ndarray
    exports: Optional[np.ndarray] = None
    respirations: Optional[np.ndarray] = None
    outputs: Optional[np.ndarray] = None
    storage: Optional[np.ndarray] = None
    living: Optional[np.ndarray] = None
    vertex_names: Optional[Sequence[str]] = None
    _names: List[str] = field(init=False, repr=False)

    def __post_init__(self):
        flow = np.asarray(self.flow, dtype=float)
        if flow.ndim != 2 or flow.shape[0] != flow.shape[1]:
            raise ValidationError(
                f"flow matrix must be square, got shape {flow.shape}",
                context={"field": "flow"},
            )
        n = flow.shape[0]
        self.flow = flow
        self.inputs = _vector("inputs", self.inputs, n)

        e = None if self.exports is None else _vector("exports", self.exports, n)
        r = None if self.respirations is None else _vector("respirations", self.respirations, n)
        y = None if self.outputs is None else _vector("outputs", self.outputs, n)
        if y is None:
            e = np.zeros(n) if e is None else e
            r = np.zeros(n) if r is None else r
            y = e + r
        elif e is None and r is None:
            # Output-only model: carry all losses as exports
            e = y.copy()
            r = np.zeros(n)
        elif e is None:
            e = np.clip(y - r, 0.0, None)
        elif r is None:
            r = np.clip(y - e, 0.0, None)
        elif not np.allclose(y, e + r, rtol=1e-9, atol=1e-9):
            raise ValidationError(
                "outputs must equal exports + respirations when all three are given",
                context={"field": "outputs"},
            )
        self.exports, self.respirations, self.outputs = e, r, y

        self.storage = np.zeros(n) if self.storage is None else _vector("storage", self.storage, n)
        if self.living is None:
            self.living = np.ones(n, dtype=bool)
        else:
            living = np.asarray(self.living, dtype=bool).reshape(-1)
            if living.size != n:
                raise ValidationError(
                    f"living has length {living.size}, expected {n}",
                    context={"field": "living"},
                )
            self.living = living

        for name in ("flow", "inputs", "exports", "respirations", "outputs"):
            _check_magnitudes(name, getattr(self, name))

        if self.vertex_names is None:
            names = [f"node_{i + 1}" for i in range(n)]
        else:
            names = [str(v) for v in self.vertex_names]
        if len(names) != n:
            raise ValidationError(
                f"vertex_names has length {len(names)}, expected {n}",
                context={"field": "vertex_names"},
            )
        if len(set(names)) != n:
            raise ValidationError("vertex_names must be unique", context={"field": "vertex_names"})
        self.vertex_names = tuple(names)
        self._names = names

    @property
    def n(self) -> int:
        return int(self.flow.shape[0])

    @property
    def output_only(self) -> bool:
        """True when losses are only distinguishable as a combined output."""
        if self.outputs.sum() <= 0:
            return False
        return bool(
            np.array_equal(self.exports, self.outputs)
            or np.array_equal(self.respirations, self.outputs)
        )

    def node_index(self, key: NodeKey) -> int:
        if isinstance(key, (bool, np.bool_)):
            raise ValidationError(f"invalid node identity {key!r}", context={"node": key})
        if isinstance(key, (int, np.integer)):
            idx = int(key)
            if 0 <= idx < self.n:
                return idx
            raise ValidationError(
                f"node index {idx} out of range for {self.n} nodes", context={"node": idx}
            )
        if isinstance(key, str) and key in self._names:
            return self._names.index(key)
        raise ValidationError(f"unknown node {key!r}", context={"node": key})

    def balance(self) -> np.ndarray:
        """Per-node inflow minus outflow; self-loops do not count."""
        internal = self.flow - np.diag(np.diag(self.flow))
        inflow = self.inputs + internal.sum(axis=0)
        outflow = self.exports + self.respirations + internal.sum(axis=1)
        return inflow - outflow

    def is_balanced(self, tol: float = 1e-6) -> bool:
        scale = max(1.0, float(np.abs(self.flow).max(initial=0.0)), float(self.inputs.max(initial=0.0)))
        return bool(np.all(np.abs(self.balance()) <= tol * scale))

    def copy(self) -> "FlowNetwork":
        return replace(
            self,
            flow=self.flow.copy(),
            inputs=self.inputs.copy(),
            exports=self.exports.copy(),
            respirations=self.respirations.copy(),
            outputs=self.outputs.copy(),
            storage=self.storage.copy(),
            living=self.living.copy(),
            vertex_names=tuple(self.vertex_names),
        )
