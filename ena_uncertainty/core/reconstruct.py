from __future__ import annotations

from typing import List

import numpy as np

from .errors import ValidationError
from .layout import VariableLayout
from .network import FlowNetwork


def reconstruct_model(network: FlowNetwork, layout: VariableLayout, coefficients) -> FlowNetwork:
    """Scale the baseline flows by one coefficient vector.

    Names, living flags and storage are carried over from the baseline;
    outputs are rebuilt as exports plus respirations.
    """
    x = np.asarray(coefficients, dtype=float).reshape(-1)
    if x.size != layout.size:
        raise ValidationError(
            f"coefficient vector has length {x.size}, expected {layout.size}",
            context={"field": "coefficients"},
        )
    z = x[layout.inputs] * network.inputs
    e = x[layout.exports] * network.exports
    r = x[layout.respirations] * network.respirations
    flow = np.zeros_like(network.flow)
    rows, cols = layout.flux_rows_cols()
    flow[rows, cols] = x[layout.flux_block] * network.flow[rows, cols]
    return FlowNetwork(
        flow=flow,
        inputs=z,
        exports=e,
        respirations=r,
        outputs=e + r,
        storage=network.storage.copy(),
        living=network.living.copy(),
        vertex_names=network.vertex_names,
    )


def reconstruct_models(network: FlowNetwork, layout: VariableLayout, samples) -> List[FlowNetwork]:
    samples = np.atleast_2d(np.asarray(samples, dtype=float))
    return [reconstruct_model(network, layout, row) for row in samples]
