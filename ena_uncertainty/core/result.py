from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional

import numpy as np

from .errors import EnaUncertaintyError
from .layout import VariableLayout
from .network import FlowNetwork


@dataclass(frozen=True)
class Failure:
    """Why an analysis produced no models."""

    kind: str
    message: str
    field: Optional[str] = None
    error: Optional[EnaUncertaintyError] = None

    @classmethod
    def from_error(cls, exc: EnaUncertaintyError) -> "Failure":
        ctx = exc.context
        name = ctx.get("missing") or ctx.get("mismatch") or ctx.get("field") or ctx.get("table")
        return cls(kind=exc.kind, message=exc.user_message, field=name, error=exc)


@dataclass
class UncertaintyResult:
    """Either the full list of plausible models or a single failure."""

    models: List[FlowNetwork] = field(default_factory=list)
    coefficients: Optional[np.ndarray] = None
    layout: Optional[VariableLayout] = None
    advisories: List[str] = field(default_factory=list)
    failure: Optional[Failure] = None
    config_hash: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def __len__(self) -> int:
        return len(self.models)

    def __iter__(self) -> Iterator[FlowNetwork]:
        return iter(self.models)

    def __getitem__(self, i: int) -> FlowNetwork:
        return self.models[i]

    def unwrap(self) -> List[FlowNetwork]:
        if self.failure is not None:
            if self.failure.error is not None:
                raise self.failure.error
            raise EnaUncertaintyError(self.failure.message)
        return self.models

    @classmethod
    def failed(cls, exc: EnaUncertaintyError, advisories: Optional[List[str]] = None) -> "UncertaintyResult":
        return cls(advisories=list(advisories or []), failure=Failure.from_error(exc))
