"""
acousticnn: trainable layers for neural-network acoustic models.

The public API re-exports the pieces a trainer needs: layers, the update
context and rules, persistence helpers and the error types.
"""

from .domain import (
    ConfigError,
    CorruptStateError,
    ILayer,
    ITrainableLayer,
    LayerNotInitializedError,
    LayerType,
    LayerTypeMismatchError,
    ShapeMismatchError,
    UpdateContext,
    UpdateRule,
)
from .infrastructure.io import TokenReader, TokenWriter, open_input, open_output
from .infrastructure.layers import (
    AffineTransform,
    TrainableLayer,
    init_layer,
    load_json,
    load_layer,
    read_layer,
    save_json,
    save_layer,
    write_layer,
)

__version__ = "1.0.0"

__all__ = [
    "ConfigError",
    "CorruptStateError",
    "ILayer",
    "ITrainableLayer",
    "LayerNotInitializedError",
    "LayerType",
    "LayerTypeMismatchError",
    "ShapeMismatchError",
    "UpdateContext",
    "UpdateRule",
    "TokenReader",
    "TokenWriter",
    "open_input",
    "open_output",
    "AffineTransform",
    "TrainableLayer",
    "init_layer",
    "load_json",
    "load_layer",
    "read_layer",
    "save_json",
    "save_layer",
    "write_layer",
]
