"""
Parameter-update contracts for trainable layers.

This module defines the closed set of update rules a trainable layer can
apply and the explicit hyperparameter record a trainer passes into every
update call.

Notes
-----
- The global learning rate and momentum belong to the trainer, not to the
  layer. They are handed over per call through `UpdateContext` instead of
  being read from shared option objects.
- Per-layer scaling of the learning rate (`learn_rate_coef`) stays layer
  state and is applied by the layer itself.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Union


class UpdateRule(Enum):
    """
    Enumeration of supported parameter-update rules.

    Attributes
    ----------
    SGD : UpdateRule
        Plain (momentum) gradient descent.
    ADAGRAD : UpdateRule
        Steps scaled by the inverse square root of the summed squared
        gradient history.
    RMSPROP : UpdateRule
        Steps scaled by the inverse square root of an exponential moving
        average of squared gradients.
    """

    SGD = "sgd"
    ADAGRAD = "adagrad"
    RMSPROP = "rmsprop"

    @property
    def is_adaptive(self) -> bool:
        """Return True for rules that maintain squared-gradient accumulators."""
        return self is not UpdateRule.SGD

    @classmethod
    def parse(cls, rule: Union["UpdateRule", str]) -> "UpdateRule":
        """
        Normalize an `UpdateRule` or its string value into an `UpdateRule`.

        Parameters
        ----------
        rule : UpdateRule | str
            Rule instance or case-insensitive name ("sgd", "adagrad",
            "rmsprop").

        Returns
        -------
        UpdateRule
            The matching enum member.

        Raises
        ------
        ValueError
            If `rule` does not name a supported update rule.
        """
        if isinstance(rule, cls):
            return rule
        try:
            return cls(str(rule).strip().lower())
        except ValueError as e:
            available = ", ".join(r.value for r in cls)
            raise ValueError(
                f"Unsupported update rule: {rule!r}. Available: {available}"
            ) from e


@dataclass(frozen=True)
class UpdateContext:
    """
    Trainer-owned hyperparameters for a single `update` call.

    Parameters
    ----------
    learn_rate : float
        Global learning rate. Must be finite and >= 0; 0 freezes the
        parameters while still refreshing the gradient buffers.
    momentum : float, optional
        Blending coefficient for the previous gradient buffer, in [0, 1).
        Defaults to 0.0 (no momentum).
    """

    learn_rate: float
    momentum: float = 0.0

    def __post_init__(self) -> None:
        lr = float(self.learn_rate)
        mmt = float(self.momentum)
        if not math.isfinite(lr) or lr < 0.0:
            raise ValueError(f"learn_rate must be a finite value >= 0, got {lr}")
        if not (0.0 <= mmt < 1.0):
            raise ValueError(f"momentum must be in [0, 1), got {mmt}")
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "learn_rate", lr)
        object.__setattr__(self, "momentum", mmt)


__all__ = [
    UpdateRule.__name__,
    UpdateContext.__name__,
]
