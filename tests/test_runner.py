import numpy as np
import pytest

from ena_uncertainty.core.errors import InfeasibleError, ValidationError
from ena_uncertainty.core.network import FlowNetwork
from ena_uncertainty.core.uncertainty import AsymmetricUncertainty, PercentUncertainty
from ena_uncertainty.mc.runner import ena_uncertainty, run_uncertainty


def _flow_values(net):
    return np.concatenate([net.inputs, net.exports, net.respirations, net.flow[net.flow != 0]])


def test_percent_end_to_end(looped_network, fast_params):
    res = run_uncertainty(looped_network, PercentUncertainty(25), iterations=60, params=fast_params)
    assert res.ok
    assert len(res) == 60
    assert res.coefficients.shape == (60, res.layout.size)
    base = _flow_values(looped_network)
    for m in res:
        # conservation holds for every sample
        assert np.allclose(m.balance(), 0.0, atol=1e-8)
        vals = _flow_values(m)
        assert np.all(vals >= 0.75 * base - 1e-9)
        assert np.all(vals <= 1.25 * base + 1e-9)
        assert m.vertex_names == looped_network.vertex_names
        assert np.array_equal(m.living, looped_network.living)
        assert np.array_equal(m.storage, looped_network.storage)
    assert np.all(res.coefficients >= 0.75 - 1e-9)
    assert np.all(res.coefficients <= 1.25 + 1e-9)


def test_samples_vary(network, fast_params):
    res = run_uncertainty(network, PercentUncertainty(25), iterations=40, params=fast_params)
    flows = np.array([m.flow[0, 1] for m in res])
    assert flows.std() > 0


def test_zero_percent_tight_window(network, fast_params):
    res = ena_uncertainty(network, "percent", iterations=20, percent=0, params=fast_params)
    assert res.ok
    assert len(res.advisories) == 1
    assert np.all(res.coefficients >= 0.9999 - 1e-12)
    assert np.all(res.coefficients <= 1.0001 + 1e-12)


def test_large_percent_keeps_flows_positive(network, fast_params):
    res = ena_uncertainty(network, "percent", iterations=30, p_err=150, params=fast_params)
    assert res.ok
    for m in res:
        assert np.all(m.flow[network.flow != 0] > 0)
    assert np.all(res.coefficients <= 2.5 + 1e-9)


def test_symmetric_end_to_end(network, fast_params):
    res = ena_uncertainty(
        network, "sym", iterations=30, params=fast_params,
        flows={(0, 1): 1.0, (0, 2): 0.5, (1, 2): 0.5},
        inputs={0: 1.0},
        exports={0: 0.2, 1: 0.2, 2: 0.5},
        respirations={0: 0.2, 1: 0.5, 2: 0.5},
    )
    assert res.ok
    for m in res:
        assert np.allclose(m.balance(), 0.0, atol=1e-8)
        assert 9.0 - 1e-9 <= m.inputs[0] <= 11.0 + 1e-9
        assert 5.0 - 1e-9 <= m.flow[0, 1] <= 7.0 + 1e-9


def test_output_only_end_to_end(output_only_network, fast_params):
    res = ena_uncertainty(
        output_only_network, "sym", iterations=20, params=fast_params,
        flows={(0, 1): 1.0}, inputs={0: 1.0}, outputs={0: 0.5, 1: 0.5, 2: 0.5},
    )
    assert res.ok
    for m in res:
        assert np.allclose(m.balance(), 0.0, atol=1e-8)
        assert np.allclose(m.outputs, m.exports + m.respirations)


def test_asymmetric_end_to_end(network, fast_params):
    # +/-20% of every baseline value, flows given as a dense matrix
    lo, hi = 0.8, 1.2
    nodes = range(network.n)
    res = ena_uncertainty(
        network, "asym", iterations=30, params=fast_params,
        flows_lower=lo * network.flow,
        flows_upper=hi * network.flow,
        inputs_lower={0: lo * 10.0},
        inputs_upper={0: hi * 10.0},
        exports_lower={i: lo * network.exports[i] for i in nodes},
        exports_upper={i: hi * network.exports[i] for i in nodes},
        respirations_lower={i: lo * network.respirations[i] for i in nodes},
        respirations_upper={i: hi * network.respirations[i] for i in nodes},
    )
    assert res.ok
    assert len(res) == 30
    base = _flow_values(network)
    for m in res:
        assert np.allclose(m.balance(), 0.0, atol=1e-8)
        vals = _flow_values(m)
        assert np.all(vals >= lo * base - 1e-9)
        assert np.all(vals <= hi * base + 1e-9)
        assert np.all(m.flow[network.flow == 0] == 0.0)


def test_nan_deviation_is_a_validation_failure(network, fast_params):
    res = ena_uncertainty(
        network, "sym", iterations=5, params=fast_params,
        flows={}, inputs=np.array([np.nan, 0.0, 0.0]), exports={},
    )
    assert res.failure.kind == "validation"
    assert res.failure.field == "inputs"


def test_contradictory_asymmetric_bounds_fail(network, fast_params):
    unc = AsymmetricUncertainty(
        flows_lower={(0, 1): 7.0}, flows_upper={(0, 1): 5.0},
        inputs_lower={}, inputs_upper={}, exports_lower={},
    )
    res = run_uncertainty(network, unc, iterations=10, params=fast_params)
    assert not res.ok
    assert res.failure.kind == "infeasible"
    assert res.models == []
    assert res.coefficients is None
    with pytest.raises(InfeasibleError):
        res.unwrap()


def test_validation_failures_are_values(network, fast_params):
    res = run_uncertainty({"flow": [[0.0]]}, PercentUncertainty(10), params=fast_params)
    assert res.failure.kind == "validation"
    assert res.failure.field == "network"

    res = ena_uncertainty(network, "normal", iterations=10)
    assert res.failure.kind == "validation"
    assert "kind must be" in res.failure.message

    res = ena_uncertainty(network, "sym", iterations=10, flows={}, params=fast_params)
    assert res.failure.field == "inputs"

    res = ena_uncertainty(network, "percent", iterations=0, percent=5, params=fast_params)
    assert res.failure.field == "iterations"
    with pytest.raises(ValidationError):
        res.unwrap()


def test_unbalanced_baseline_is_flagged(fast_params):
    net = FlowNetwork(flow=[[0.0, 5.0], [0.0, 0.0]], inputs=[10.0, 0.0], exports=[5.0, 4.0])
    res = run_uncertainty(net, PercentUncertainty(25), iterations=10, params=fast_params)
    assert any("not balanced" in a for a in res.advisories)


def test_custom_sampler_is_used(network, fast_params):
    class OnesSampler:
        def sample(self, E, F, G, H, iterations, streams):
            return np.ones((iterations, E.shape[1]))

    res = run_uncertainty(network, PercentUncertainty(5), iterations=3, params=fast_params, sampler=OnesSampler())
    assert len(res) == 3
    for m in res:
        assert np.array_equal(m.flow, network.flow)


def test_short_sampler_output_is_a_failure(network, fast_params):
    class ShortSampler:
        def sample(self, E, F, G, H, iterations, streams):
            return np.ones((iterations - 1, E.shape[1]))

    res = run_uncertainty(network, PercentUncertainty(5), iterations=3, params=fast_params, sampler=ShortSampler())
    assert res.failure.kind == "sampler"
    assert len(res) == 0


def test_default_iterations_from_registry(network):
    from ena_uncertainty.core.registry import ParameterRegistry

    params = ParameterRegistry.from_files(overrides={"analysis": {"iterations": 7}, "sampler": {"burn_in": 5}})
    res = run_uncertainty(network, PercentUncertainty(10), params=params)
    assert len(res) == 7
    assert res.config_hash == params.config_hash()


def test_seed_changes_samples(network, fast_params):
    a = run_uncertainty(network, PercentUncertainty(10), iterations=5, params=fast_params, seed=1)
    b = run_uncertainty(network, PercentUncertainty(10), iterations=5, params=fast_params, seed=2)
    assert not np.array_equal(a.coefficients, b.coefficients)
