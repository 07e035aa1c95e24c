from __future__ import annotations

import logging
from typing import Any, List, Optional

import numpy as np

from ena_uncertainty.core.constraints import build_constraints
from ena_uncertainty.core.errors import EnaUncertaintyError, SamplerError, ValidationError
from ena_uncertainty.core.layout import VariableLayout
from ena_uncertainty.core.network import FlowNetwork
from ena_uncertainty.core.reconstruct import reconstruct_models
from ena_uncertainty.core.registry import ParameterRegistry
from ena_uncertainty.core.result import UncertaintyResult
from ena_uncertainty.core.rng import build_streams, load_seeds
from ena_uncertainty.core.sampler import HitAndRunSampler, PolytopeSampler
from ena_uncertainty.core.uncertainty import make_uncertainty
from ena_uncertainty.logging_utils import log_exception

logger = logging.getLogger(__name__)


def _resolve_iterations(iterations: Optional[int], params: ParameterRegistry) -> int:
    if iterations is None:
        return int(params.get("analysis.iterations"))
    if isinstance(iterations, bool) or not isinstance(iterations, (int, np.integer)) or iterations < 1:
        raise ValidationError(
            f"iterations must be a positive integer, got {iterations!r}", context={"field": "iterations"}
        )
    return int(iterations)


def _sample(
    network: FlowNetwork,
    uncertainty,
    iterations: Optional[int],
    params: ParameterRegistry,
    sampler: Optional[PolytopeSampler],
    seed: int,
    advisories: List[str],
) -> UncertaintyResult:
    if not isinstance(network, FlowNetwork):
        raise ValidationError(
            f"network must be a FlowNetwork, got {type(network).__name__}", context={"field": "network"}
        )
    iterations = _resolve_iterations(iterations, params)
    if not hasattr(uncertainty, "compute_bounds"):
        raise ValidationError(
            f"uncertainty must be an uncertainty strategy, got {type(uncertainty).__name__}",
            context={"field": "uncertainty"},
        )
    uncertainty.validate(network)

    if not network.is_balanced(float(params.get("analysis.balance_tolerance"))):
        msg = (
            "baseline network is not balanced (max residual "
            f"{np.abs(network.balance()).max():.3g}); the sample may be infeasible"
        )
        logger.warning(msg)
        advisories.append(msg)

    layout = VariableLayout.from_network(network)
    system = build_constraints(network, uncertainty, layout)
    advisories.extend(system.advisories)

    if sampler is None:
        sampler = HitAndRunSampler.from_registry(params)
    streams = build_streams(load_seeds(), offset=seed)
    samples = np.asarray(sampler.sample(system.E, system.F0, system.G, system.H, iterations, streams))
    if samples.shape != (iterations, layout.size):
        raise SamplerError(
            f"sampler returned shape {samples.shape}, expected {(iterations, layout.size)}"
        )
    models = reconstruct_models(network, layout, samples)
    logger.info("sampled %d plausible models (%s, %d variables)", len(models), uncertainty.kind, layout.size)
    return UncertaintyResult(
        models=models,
        coefficients=samples,
        layout=layout,
        advisories=advisories,
        config_hash=params.config_hash(),
    )


def run_uncertainty(
    network: FlowNetwork,
    uncertainty,
    iterations: Optional[int] = None,
    *,
    params: Optional[ParameterRegistry] = None,
    sampler: Optional[PolytopeSampler] = None,
    seed: int = 0,
) -> UncertaintyResult:
    """Sample ``iterations`` balanced networks within the given uncertainty.

    Package errors (bad input, infeasible bounds, sampler failure) come back as
    a failed :class:`UncertaintyResult`; nothing partial is returned.
    """
    advisories: List[str] = []
    try:
        if params is None:
            params = ParameterRegistry.from_files()
        return _sample(network, uncertainty, iterations, params, sampler, seed, advisories)
    except EnaUncertaintyError as exc:
        log_exception(logger, exc)
        return UncertaintyResult.failed(exc, advisories)


def ena_uncertainty(
    network: FlowNetwork,
    kind: str = "percent",
    iterations: Optional[int] = None,
    *,
    params: Optional[ParameterRegistry] = None,
    sampler: Optional[PolytopeSampler] = None,
    seed: int = 0,
    **tables: Any,
) -> UncertaintyResult:
    """Mode-selector entry point: ``kind`` is "percent", "sym" or "asym"."""
    try:
        uncertainty = make_uncertainty(kind, **tables)
    except EnaUncertaintyError as exc:
        log_exception(logger, exc)
        return UncertaintyResult.failed(exc)
    return run_uncertainty(network, uncertainty, iterations, params=params, sampler=sampler, seed=seed)
