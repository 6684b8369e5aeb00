"""
Layer interface definitions.

This module defines the domain-level contracts shared by every layer variant
using structural subtyping via `typing.Protocol`, plus the closed set of
variant tags used for persistence and dispatch.

Notes
-----
- Domain contracts are backend-agnostic and must not depend on NumPy or
  infrastructure implementations; arrays are typed as `Any` here.
- `ILayer` covers gradient flow only. `ITrainableLayer` extends it with
  parameter mutation, persistence and introspection.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, Union, runtime_checkable

from ._update import UpdateContext, UpdateRule


class LayerType(Enum):
    """
    Closed set of layer variants.

    Each member's value is the marker token that introduces the variant in a
    persisted token stream and in layer config lines.
    """

    AFFINE_TRANSFORM = "<AffineTransform>"

    @property
    def marker(self) -> str:
        """Return the stream marker token for this variant."""
        return self.value

    @property
    def variant_name(self) -> str:
        """Return the marker without angle brackets (e.g., "AffineTransform")."""
        return self.value.strip("<>")

    @classmethod
    def from_marker(cls, marker: str) -> "LayerType":
        """
        Resolve a marker token (with or without angle brackets).

        Raises
        ------
        ValueError
            If the marker does not name a known variant.
        """
        token = marker if marker.startswith("<") else f"<{marker}>"
        try:
            return cls(token)
        except ValueError as e:
            available = ", ".join(t.value for t in cls)
            raise ValueError(
                f"Unknown layer marker: {marker!r}. Available: {available}"
            ) from e


@runtime_checkable
class ILayer(Protocol):
    """
    Domain-level layer interface.

    A layer maps a batch-major activation matrix of `input_dim` columns to one
    of `output_dim` columns and can map output gradients back to input
    gradients.
    """

    @property
    def input_dim(self) -> int: ...

    @property
    def output_dim(self) -> int: ...

    def propagate(self, x: Any) -> Any:
        """
        Compute the forward activations for a minibatch.

        Parameters
        ----------
        x : Any
            Input activations of shape `(batch, input_dim)`.

        Returns
        -------
        Any
            Output activations of shape `(batch, output_dim)`.
        """
        ...

    def backpropagate(self, x: Any, y: Any, dy: Any) -> Any:
        """
        Compute the gradient with respect to the layer input.

        Parameters
        ----------
        x : Any
            Forward input of shape `(batch, input_dim)`.
        y : Any
            Forward output of shape `(batch, output_dim)`.
        dy : Any
            Gradient with respect to the output, shape `(batch, output_dim)`.

        Returns
        -------
        Any
            Gradient with respect to the input, shape `(batch, input_dim)`.
        """
        ...


@runtime_checkable
class ITrainableLayer(ILayer, Protocol):
    """
    Domain-level trainable layer interface.

    Adds parameter updates, model-combination operations, persistence and
    parameter introspection on top of `ILayer`.
    """

    def update(
        self,
        x: Any,
        dy: Any,
        context: UpdateContext,
        rule: Union[UpdateRule, str] = UpdateRule.SGD,
    ) -> None:
        """Apply one parameter update from a minibatch's input and output gradient."""
        ...

    def scale(self, factor: float) -> None: ...

    def add(self, factor: float, other: "ITrainableLayer") -> None: ...

    def num_params(self) -> int: ...

    def get_params(self) -> Any: ...

    def init_data(self, config: Any) -> None: ...

    def read_data(self, reader: Any) -> None: ...

    def write_data(self, writer: Any) -> None: ...

    def info(self) -> str: ...

    def info_gradient(self) -> str: ...


__all__ = [
    LayerType.__name__,
    ILayer.__name__,
    ITrainableLayer.__name__,
]
