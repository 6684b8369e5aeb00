"""
Base classes and the variant registry for layers.

`Layer` implements the dimension bookkeeping and input validation shared by
every variant; subclasses provide the numeric kernels `_propagate` and
`_backpropagate`. `TrainableLayer` adds the abstract parameter-update,
persistence and introspection surface.

Variants are a closed set: every concrete class is tagged with a `LayerType`
through `@register_layer(...)`, and persistence code resolves classes only
through that registry.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Dict, Type, TypeVar, Union

import numpy as np
from typing_extensions import Self

from ...domain._errors import LayerNotInitializedError, ShapeMismatchError
from ...domain._layer import LayerType
from ...domain._update import UpdateContext, UpdateRule
from ..io._token_stream import TokenReader, TokenWriter
from ..ops import dense_cpu

_LAYER_REGISTRY: Dict[LayerType, Type["Layer"]] = {}

L = TypeVar("L", bound=Type["Layer"])


def register_layer(layer_type: LayerType) -> Callable[[L], L]:
    """
    Decorator to tag a Layer class with its variant and register it.

    Raises
    ------
    ValueError
        If another class is already registered for `layer_type`.
    """

    def deco(cls: L) -> L:
        existing = _LAYER_REGISTRY.get(layer_type)
        if existing is not None and existing is not cls:
            raise ValueError(
                f"Layer type {layer_type.variant_name} is already registered "
                f"to {existing.__name__}"
            )
        cls.layer_type = layer_type
        _LAYER_REGISTRY[layer_type] = cls
        return cls

    return deco


def layer_class_for(layer_type: LayerType) -> Type["Layer"]:
    """
    Return the class registered for `layer_type`.

    Raises
    ------
    KeyError
        If no class is registered for the variant.
    """
    try:
        return _LAYER_REGISTRY[layer_type]
    except KeyError:
        raise KeyError(
            f"No layer class registered for {layer_type.variant_name}"
        ) from None


def _as_batch(x: Any, cols: int, what: str) -> np.ndarray:
    arr = np.asarray(x, dtype=dense_cpu.FLOAT_DTYPE)
    if arr.ndim != 2 or arr.shape[1] != cols:
        raise ShapeMismatchError(what, (-1, cols), tuple(arr.shape))
    return arr


class Layer(ABC):
    """
    Base class for all layer variants.

    Parameters
    ----------
    input_dim : int
        Number of input columns. Must be positive.
    output_dim : int
        Number of output columns. Must be positive.
    """

    layer_type: ClassVar[LayerType]

    def __init__(self, input_dim: int, output_dim: int) -> None:
        if int(input_dim) <= 0:
            raise ValueError(f"input_dim must be a positive integer, got {input_dim}")
        if int(output_dim) <= 0:
            raise ValueError(f"output_dim must be a positive integer, got {output_dim}")
        self._input_dim = int(input_dim)
        self._output_dim = int(output_dim)

    @property
    def input_dim(self) -> int:
        return self._input_dim

    @property
    def output_dim(self) -> int:
        return self._output_dim

    @property
    def is_trainable(self) -> bool:
        return False

    def propagate(self, x: Any) -> np.ndarray:
        """
        Compute forward activations for a minibatch.

        Parameters
        ----------
        x : array-like
            Input of shape `(batch, input_dim)`.

        Returns
        -------
        np.ndarray
            Output of shape `(batch, output_dim)`.

        Raises
        ------
        ShapeMismatchError
            If `x` is not 2-D with `input_dim` columns.
        """
        x = _as_batch(x, self._input_dim, f"{type(self).__name__}.propagate input")
        return self._propagate(x)

    def backpropagate(self, x: Any, y: Any, dy: Any) -> np.ndarray:
        """
        Compute the gradient with respect to the input.

        Parameters
        ----------
        x : array-like
            Forward input, `(batch, input_dim)`.
        y : array-like
            Forward output, `(batch, output_dim)`.
        dy : array-like
            Output gradient, `(batch, output_dim)`.

        Returns
        -------
        np.ndarray
            Input gradient, `(batch, input_dim)`.

        Raises
        ------
        ShapeMismatchError
            If any argument has the wrong column count, or the batch sizes
            disagree.
        """
        name = type(self).__name__
        x = _as_batch(x, self._input_dim, f"{name}.backpropagate input")
        y = _as_batch(y, self._output_dim, f"{name}.backpropagate output")
        dy = _as_batch(dy, self._output_dim, f"{name}.backpropagate output gradient")
        if not (x.shape[0] == y.shape[0] == dy.shape[0]):
            raise ShapeMismatchError(
                f"{name}.backpropagate output gradient",
                (x.shape[0], self._output_dim),
                tuple(dy.shape),
            )
        return self._backpropagate(x, y, dy)

    @abstractmethod
    def _propagate(self, x: np.ndarray) -> np.ndarray: ...

    @abstractmethod
    def _backpropagate(
        self, x: np.ndarray, y: np.ndarray, dy: np.ndarray
    ) -> np.ndarray: ...

    def info(self) -> str:
        return ""

    def info_gradient(self) -> str:
        return ""

    def copy(self) -> Self:
        """Return an independent deep copy of this layer."""
        return copy.deepcopy(self)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(input_dim={self._input_dim}, "
            f"output_dim={self._output_dim})"
        )


class TrainableLayer(Layer):
    """
    Base class for layers that own trainable parameters.

    Subclasses must report whether their parameters are populated; gradient
    flow and updates fail with `LayerNotInitializedError` until they are.
    """

    @property
    def is_trainable(self) -> bool:
        return True

    @property
    @abstractmethod
    def is_initialized(self) -> bool:
        """Return True once parameters have been populated."""

    def _require_initialized(self, op: str) -> None:
        if not self.is_initialized:
            raise LayerNotInitializedError(op, type(self).__name__)

    def propagate(self, x: Any) -> np.ndarray:
        self._require_initialized("propagate")
        return super().propagate(x)

    def backpropagate(self, x: Any, y: Any, dy: Any) -> np.ndarray:
        self._require_initialized("backpropagate")
        return super().backpropagate(x, y, dy)

    @abstractmethod
    def update(
        self,
        x: Any,
        dy: Any,
        context: UpdateContext,
        rule: Union[UpdateRule, str] = UpdateRule.SGD,
    ) -> None: ...

    @abstractmethod
    def scale(self, factor: float) -> None: ...

    @abstractmethod
    def add(self, factor: float, other: "TrainableLayer") -> None: ...

    @abstractmethod
    def num_params(self) -> int: ...

    @abstractmethod
    def get_params(self) -> np.ndarray: ...

    @abstractmethod
    def init_data(self, config: Any) -> None: ...

    @abstractmethod
    def read_data(self, reader: TokenReader) -> None: ...

    @abstractmethod
    def write_data(self, writer: TokenWriter) -> None: ...

    def get_config(self) -> Dict[str, Any]:
        """
        Return a JSON-serializable constructor configuration.
        """
        return {"input_dim": self._input_dim, "output_dim": self._output_dim}

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> Self:
        """
        Construct an unpopulated layer from a `get_config` dictionary.
        """
        return cls(int(cfg["input_dim"]), int(cfg["output_dim"]))


__all__ = [
    register_layer.__name__,
    layer_class_for.__name__,
    Layer.__name__,
    TrainableLayer.__name__,
]
