"""Error hierarchy for ena_uncertainty."""

from __future__ import annotations

from typing import Any, Mapping, Optional


class EnaUncertaintyError(Exception):
    """Base exception for uncertainty-analysis failures."""

    kind = "error"

    def __init__(
        self,
        message: str,
        *,
        user_message: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.user_message = message if user_message is None else user_message
        self.context = dict(context) if context else {}

    def log_message(self) -> str:
        if not self.context:
            return str(self)
        return f"{self}: {self.context}"


class ValidationError(EnaUncertaintyError):
    """Invalid network, uncertainty mode or deviation table."""

    kind = "validation"


class ConfigError(EnaUncertaintyError):
    """Parameter file loading or validation error."""

    kind = "config"


class InfeasibleError(EnaUncertaintyError):
    """The constraint polytope is empty."""

    kind = "infeasible"


class SamplerError(EnaUncertaintyError):
    """The sampler failed for a reason other than infeasibility."""

    kind = "sampler"


__all__ = [
    "EnaUncertaintyError",
    "ValidationError",
    "ConfigError",
    "InfeasibleError",
    "SamplerError",
]
