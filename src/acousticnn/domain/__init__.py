"""
Backend-agnostic contracts: errors, layer protocols and update types.
"""

from ._errors import (
    ConfigError,
    CorruptStateError,
    LayerNotInitializedError,
    LayerTypeMismatchError,
    ShapeMismatchError,
)
from ._layer import ILayer, ITrainableLayer, LayerType
from ._update import UpdateContext, UpdateRule

__all__ = [
    ConfigError.__name__,
    CorruptStateError.__name__,
    LayerNotInitializedError.__name__,
    LayerTypeMismatchError.__name__,
    ShapeMismatchError.__name__,
    ILayer.__name__,
    ITrainableLayer.__name__,
    LayerType.__name__,
    UpdateContext.__name__,
    UpdateRule.__name__,
]
