"""
Base64 ndarray payloads for JSON layer checkpoints.

A payload is a JSON-safe dict describing one float32 array::

    {"b64": "<base64>", "dtype": "<f4", "shape": [rows, cols]}

Layer state is always stored as little-endian float32 so checkpoints are
portable across platforms.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, Optional, Tuple

import numpy as np

from ...domain._errors import CorruptStateError

PAYLOAD_DTYPE = "<f4"


def array_to_payload(arr: np.ndarray) -> Dict[str, Any]:
    """
    Serialize an array into a JSON-safe float32 payload.
    """
    a = np.ascontiguousarray(arr, dtype=PAYLOAD_DTYPE)
    return {
        "b64": base64.b64encode(a.tobytes(order="C")).decode("ascii"),
        "dtype": PAYLOAD_DTYPE,
        "shape": list(a.shape),
    }


def payload_to_array(
    payload: Dict[str, Any], *, name: str, shape: Optional[Tuple[int, ...]] = None
) -> np.ndarray:
    """
    Deserialize a payload back into an owning float32 array.

    Parameters
    ----------
    payload : dict
        Payload produced by `array_to_payload`.
    name : str
        Entry name, used in error messages.
    shape : Optional[tuple[int, ...]]
        If given, the shape the decoded array must have.

    Raises
    ------
    CorruptStateError
        If the payload is malformed or its shape disagrees with `shape`.
    """
    try:
        raw = base64.b64decode(str(payload["b64"]).encode("ascii"), validate=True)
        dtype = np.dtype(str(payload["dtype"]))
        stored_shape = tuple(int(x) for x in payload["shape"])
        arr = np.frombuffer(raw, dtype=dtype).reshape(stored_shape)
    except (KeyError, TypeError, ValueError, binascii.Error) as e:
        raise CorruptStateError(f"Malformed payload for '{name}': {e}") from e

    if shape is not None and stored_shape != tuple(shape):
        raise CorruptStateError(
            f"Shape mismatch for '{name}': layer {tuple(shape)} vs checkpoint {stored_shape}"
        )
    return np.array(arr, dtype=np.float32, copy=True, order="C")
