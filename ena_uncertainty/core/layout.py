from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np

from .errors import ValidationError
from .network import FlowNetwork


Flux = Tuple[int, int]


def flux_index_set(flow: np.ndarray) -> Tuple[Flux, ...]:
    """Non-zero (row, col) entries of ``flow`` in column-major order."""
    cols, rows = np.nonzero(np.asarray(flow).T)
    return tuple((int(a), int(b)) for a, b in zip(rows, cols))


@dataclass(frozen=True)
class VariableLayout:
    """Column layout shared by bounds, constraints, samples and reconstruction.

    Columns are ``[z_1..z_n, e_1..e_n, r_1..r_n, F_f1..F_fk]`` where the flux
    block follows :func:`flux_index_set`.
    """

    n: int
    fluxes: Tuple[Flux, ...]
    _positions: Dict[Flux, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        offset = 3 * self.n
        object.__setattr__(
            self, "_positions", {f: offset + k for k, f in enumerate(self.fluxes)}
        )

    @classmethod
    def from_network(cls, network: FlowNetwork) -> "VariableLayout":
        return cls(n=network.n, fluxes=flux_index_set(network.flow))

    @property
    def size(self) -> int:
        return 3 * self.n + len(self.fluxes)

    @property
    def inputs(self) -> slice:
        return slice(0, self.n)

    @property
    def exports(self) -> slice:
        return slice(self.n, 2 * self.n)

    @property
    def respirations(self) -> slice:
        return slice(2 * self.n, 3 * self.n)

    @property
    def flux_block(self) -> slice:
        return slice(3 * self.n, self.size)

    def flux_position(self, a: int, b: int) -> int:
        try:
            return self._positions[(a, b)]
        except KeyError:
            raise ValidationError(
                f"({a}, {b}) is not a non-zero flow in the baseline network",
                context={"flux": (a, b)},
            ) from None

    def flux_rows_cols(self) -> Tuple[np.ndarray, np.ndarray]:
        if not self.fluxes:
            return np.zeros(0, dtype=int), np.zeros(0, dtype=int)
        arr = np.asarray(self.fluxes, dtype=int)
        return arr[:, 0], arr[:, 1]

    def baseline(self, network: FlowNetwork) -> np.ndarray:
        rows, cols = self.flux_rows_cols()
        return np.concatenate([
            network.inputs,
            network.exports,
            network.respirations,
            network.flow[rows, cols],
        ])

    def labels(self, network: FlowNetwork) -> List[str]:
        names = list(network.vertex_names)
        out = [f"z:{v}" for v in names]
        out += [f"e:{v}" for v in names]
        out += [f"r:{v}" for v in names]
        out += [f"F:{names[a]}->{names[b]}" for a, b in self.fluxes]
        return out
