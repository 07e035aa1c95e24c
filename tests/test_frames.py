import numpy as np
import pytest

from ena_uncertainty.core.errors import ValidationError
from ena_uncertainty.core.uncertainty import PercentUncertainty
from ena_uncertainty.io.frames import coefficients_frame, models_frame
from ena_uncertainty.mc.runner import run_uncertainty


def test_coefficients_frame(network, fast_params):
    res = run_uncertainty(network, PercentUncertainty(10), iterations=5, params=fast_params)
    df = coefficients_frame(res, network)
    assert df.shape == (5, 12)
    assert df.columns[0] == "z:A"
    assert df.columns[-1] == "F:B->C"
    assert df.index.name == "sample"
    assert np.allclose(df.to_numpy(), res.coefficients)


def test_coefficients_frame_rejects_failure(network):
    res = run_uncertainty(network, PercentUncertainty(-1), iterations=5)
    with pytest.raises(ValidationError):
        coefficients_frame(res, network)


def test_models_frame(network):
    df = models_frame([network, network])
    assert list(df.columns) == ["sample", "kind", "source", "target", "value"]
    one = df[df["sample"] == 0]
    # 3 nodes x 4 boundary kinds + 3 internal flows
    assert len(one) == 3 * 4 + 3
    flow = one[(one["kind"] == "flow") & (one["source"] == "A") & (one["target"] == "B")]
    assert flow["value"].item() == 6.0
    assert one[one["kind"] == "input"]["value"].sum() == 10.0
