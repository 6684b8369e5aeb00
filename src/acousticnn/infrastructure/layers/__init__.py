"""
Layer variants and their persistence helpers.

Importing this package registers every built-in variant with the layer
registry.
"""

from ._layer import Layer, TrainableLayer, layer_class_for, register_layer
from ._affine_transform import AffineTransform
from ._serialization import (
    JSON_FORMAT,
    init_layer,
    layer_from_payload,
    layer_to_payload,
    load_json,
    load_layer,
    read_layer,
    save_json,
    save_layer,
    write_layer,
)

__all__ = [
    Layer.__name__,
    TrainableLayer.__name__,
    layer_class_for.__name__,
    register_layer.__name__,
    AffineTransform.__name__,
    "JSON_FORMAT",
    init_layer.__name__,
    layer_from_payload.__name__,
    layer_to_payload.__name__,
    load_json.__name__,
    load_layer.__name__,
    read_layer.__name__,
    save_json.__name__,
    save_layer.__name__,
    write_layer.__name__,
]
