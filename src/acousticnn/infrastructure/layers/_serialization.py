"""
Layer-level framing, config-line construction and checkpoints.

Three persistence paths are provided:

- Token streams: `write_layer` / `read_layer` frame a layer's `write_data`
  payload with its variant marker and dimensions::

      <AffineTransform> <output_dim> <input_dim> [\\n] <layer data>

  `save_layer` / `load_layer` do the same for a file, including the binary
  stream header.
- Config lines: `init_layer` builds and randomly initializes a layer from a
  line such as ``"<AffineTransform> <InputDim> 3 <OutputDim> 2 <ParamRange> 0.1"``.
- JSON checkpoints: `save_json` / `load_json` store the layer config and its
  arrays as base64 payloads.

All variant lookups go through the `register_layer` registry.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Union

from ...domain._errors import ConfigError, CorruptStateError, LayerNotInitializedError
from ...domain._layer import LayerType
from ..encoding._b64 import array_to_payload, payload_to_array
from ..io._config_pairs import parse_config_pairs, parse_int
from ..io._token_stream import TokenReader, TokenWriter, open_input, open_output
from ._affine_transform import AffineTransform
from ._layer import TrainableLayer, layer_class_for

JSON_FORMAT = "acousticnn.json.layer.v1"


def _resolve_marker(marker: str, error: type) -> LayerType:
    try:
        return LayerType.from_marker(marker)
    except ValueError as e:
        raise error(str(e)) from e


def write_layer(layer: TrainableLayer, writer: TokenWriter) -> None:
    """
    Write a layer's marker, dimensions and data to a token stream.
    """
    writer.write_token(layer.layer_type.marker)
    writer.write_int(layer.output_dim)
    writer.write_int(layer.input_dim)
    writer.write_newline()
    layer.write_data(writer)


def read_layer(reader: TokenReader) -> TrainableLayer:
    """
    Read one framed layer from a token stream.

    Raises
    ------
    CorruptStateError
        If the marker names no known variant, the dimensions are not
        positive, or the layer data is corrupt.
    """
    layer_type = _resolve_marker(reader.read_token(), CorruptStateError)
    output_dim = reader.read_int()
    input_dim = reader.read_int()
    if output_dim <= 0 or input_dim <= 0:
        raise CorruptStateError(
            f"Invalid dimensions for {layer_type.variant_name}: "
            f"output_dim={output_dim}, input_dim={input_dim}"
        )
    layer = layer_class_for(layer_type)(input_dim, output_dim)
    layer.read_data(reader)
    return layer


def init_layer(config_line: str) -> TrainableLayer:
    """
    Construct and randomly initialize a layer from a config line.

    The line starts with the variant marker followed by mandatory
    ``<InputDim>`` and ``<OutputDim>`` entries; every other entry is passed to
    the layer's `init_data`.

    Raises
    ------
    ConfigError
        If the marker is unknown, a dimension is missing or invalid, or the
        layer rejects one of its options.
    """
    parts = config_line.split(None, 1)
    if not parts:
        raise ConfigError("Empty layer config line")
    layer_type = _resolve_marker(parts[0], ConfigError)

    dims: Dict[str, int] = {}
    options = []
    for key, value in parse_config_pairs(parts[1] if len(parts) > 1 else ""):
        match key:
            case "<InputDim>" | "<OutputDim>":
                dims[key] = parse_int(key, value)
            case _:
                options.append((key, value))

    for key in ("<InputDim>", "<OutputDim>"):
        if key not in dims:
            raise ConfigError(f"Missing mandatory {key} for {layer_type.variant_name}", token=key)
        if dims[key] <= 0:
            raise ConfigError(f"{key} must be positive, got {dims[key]}", token=key)

    layer = layer_class_for(layer_type)(dims["<InputDim>"], dims["<OutputDim>"])
    layer.init_data(options)
    return layer


def save_layer(layer: TrainableLayer, path: Union[str, Path], binary: bool = True) -> None:
    """
    Write a framed layer to `path` (binary or text).
    """
    with open_output(path, binary) as writer:
        write_layer(layer, writer)


def load_layer(path: Union[str, Path]) -> TrainableLayer:
    """
    Read a framed layer from `path`, detecting binary or text mode.
    """
    with open_input(path) as reader:
        return read_layer(reader)


def layer_to_payload(layer: TrainableLayer) -> Dict[str, Any]:
    """
    Convert a layer into a JSON-serializable checkpoint dictionary.

    Raises
    ------
    TypeError
        If the layer variant has no JSON representation.
    """
    if not layer.is_initialized:
        raise LayerNotInitializedError("layer_to_payload", type(layer).__name__)

    match layer:
        case AffineTransform():
            state = {
                "linearity": array_to_payload(layer.linearity),
                "bias": array_to_payload(layer.bias),
            }
            if layer.ada_buffers_initialized:
                state["linearity_accu"] = array_to_payload(layer.linearity_accu)
                state["bias_accu"] = array_to_payload(layer.bias_accu)
        case _:
            raise TypeError(f"No JSON representation for {type(layer).__name__}")

    return {
        "format": JSON_FORMAT,
        "type": layer.layer_type.variant_name,
        "config": layer.get_config(),
        "state": state,
    }


def layer_from_payload(payload: Dict[str, Any]) -> TrainableLayer:
    """
    Rebuild a layer from a dictionary produced by `layer_to_payload`.

    Raises
    ------
    CorruptStateError
        On an unknown format or type, a missing entry, or a shape mismatch.
    """
    fmt = payload.get("format")
    if fmt != JSON_FORMAT:
        raise CorruptStateError(f"Unsupported checkpoint format: {fmt!r}")

    layer_type = _resolve_marker(str(payload.get("type", "")), CorruptStateError)
    try:
        layer = layer_class_for(layer_type).from_config(payload["config"])
        state = payload["state"]
    except (KeyError, TypeError, ValueError) as e:
        raise CorruptStateError(f"Malformed checkpoint: {e!r}") from e

    match layer:
        case AffineTransform():
            w_shape = (layer.output_dim, layer.input_dim)
            b_shape = (layer.output_dim,)
            try:
                layer.set_linearity(
                    payload_to_array(state["linearity"], name="linearity", shape=w_shape)
                )
                layer.set_bias(payload_to_array(state["bias"], name="bias", shape=b_shape))
            except KeyError as e:
                raise CorruptStateError(f"Missing state entry {e}") from e
            if "linearity_accu" in state or "bias_accu" in state:
                try:
                    layer.set_accumulators(
                        payload_to_array(
                            state["linearity_accu"], name="linearity_accu", shape=w_shape
                        ),
                        payload_to_array(state["bias_accu"], name="bias_accu", shape=b_shape),
                    )
                except KeyError as e:
                    raise CorruptStateError(f"Missing state entry {e}") from e
        case _:
            raise CorruptStateError(f"No JSON representation for {type(layer).__name__}")

    return layer


def save_json(layer: TrainableLayer, path: Union[str, Path]) -> None:
    """
    Save a layer to a single JSON checkpoint.
    """
    p = Path(path)
    p.write_text(
        json.dumps(layer_to_payload(layer), indent=2, sort_keys=True), encoding="utf-8"
    )


def load_json(path: Union[str, Path]) -> TrainableLayer:
    """
    Load a layer from a JSON checkpoint created by `save_json`.

    Raises
    ------
    CorruptStateError
        If the file is not valid JSON or does not describe a known layer.
    """
    p = Path(path)
    try:
        payload = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise CorruptStateError(f"Checkpoint {p} is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise CorruptStateError(f"Checkpoint {p} must contain a JSON object")
    return layer_from_payload(payload)


__all__ = [
    "JSON_FORMAT",
    write_layer.__name__,
    read_layer.__name__,
    init_layer.__name__,
    save_layer.__name__,
    load_layer.__name__,
    layer_to_payload.__name__,
    layer_from_payload.__name__,
    save_json.__name__,
    load_json.__name__,
]
