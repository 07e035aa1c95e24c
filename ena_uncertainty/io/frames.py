from __future__ import annotations

from typing import Dict, Iterable, List

import numpy as np
import pandas as pd

from ena_uncertainty.core.errors import ValidationError
from ena_uncertainty.core.network import FlowNetwork
from ena_uncertainty.core.result import UncertaintyResult


def coefficients_frame(result: UncertaintyResult, baseline: FlowNetwork) -> pd.DataFrame:
    """One row per sample, one column per layout variable."""
    if not result.ok or result.coefficients is None or result.layout is None:
        raise ValidationError("result holds no samples", context={"field": "result"})
    df = pd.DataFrame(result.coefficients, columns=result.layout.labels(baseline))
    df.index.name = "sample"
    return df


def models_frame(models: Iterable[FlowNetwork]) -> pd.DataFrame:
    """Long table of every flow-derived quantity: sample, kind, source, target, value."""
    records: List[Dict[str, object]] = []
    for k, m in enumerate(models):
        names = list(m.vertex_names)
        for kind, vec in (
            ("input", m.inputs),
            ("export", m.exports),
            ("respiration", m.respirations),
            ("output", m.outputs),
        ):
            for i, v in enumerate(vec):
                src, dst = (None, names[i]) if kind == "input" else (names[i], None)
                records.append({"sample": k, "kind": kind, "source": src, "target": dst, "value": float(v)})
        rows, cols = np.nonzero(m.flow)
        for a, b in zip(rows, cols):
            records.append({
                "sample": k,
                "kind": "flow",
                "source": names[a],
                "target": names[b],
                "value": float(m.flow[a, b]),
            })
    return pd.DataFrame.from_records(records, columns=["sample", "kind", "source", "target", "value"])
