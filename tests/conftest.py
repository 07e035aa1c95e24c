import numpy as np
import pytest

from ena_uncertainty.core.network import FlowNetwork
from ena_uncertainty.core.registry import ParameterRegistry


def _three_node(self_loop: float = 0.0, **overrides) -> FlowNetwork:
    # node A feeds B and C, B feeds C; every node balances
    flow = np.array([
        [0.0, 6.0, 2.0],
        [0.0, self_loop, 3.0],
        [0.0, 0.0, 0.0],
    ])
    kwargs = dict(
        flow=flow,
        inputs=[10.0, 0.0, 0.0],
        exports=[1.0, 1.0, 2.0],
        respirations=[1.0, 2.0, 3.0],
        storage=[5.0, 7.0, 9.0],
        living=[True, True, False],
        vertex_names=["A", "B", "C"],
    )
    kwargs.update(overrides)
    return FlowNetwork(**kwargs)


@pytest.fixture
def network() -> FlowNetwork:
    return _three_node()


@pytest.fixture
def looped_network() -> FlowNetwork:
    return _three_node(self_loop=4.0)


@pytest.fixture
def output_only_network() -> FlowNetwork:
    return _three_node(exports=None, respirations=None, outputs=[2.0, 3.0, 5.0])


@pytest.fixture
def fast_params() -> ParameterRegistry:
    return ParameterRegistry.from_files(overrides={"sampler": {"burn_in": 20}})
