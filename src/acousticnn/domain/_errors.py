"""
Layer-level exceptions for acousticnn.

This module defines the exceptions raised by layers and their persistence
helpers. Every fault is a setup-time or call-contract violation; nothing in
this package retries or recovers from them automatically.

The exceptions subclass the closest built-in type so callers can catch them
either precisely or through the standard hierarchy (e.g., a `ConfigError` is
also a `ValueError`).
"""

from __future__ import annotations

from typing import Iterable, Optional


class ConfigError(ValueError):
    """
    Raised when a layer initialization config cannot be applied.

    Typical causes are an unknown option token (usually a typo), a token
    without a value, or a value that is not a number.

    Attributes
    ----------
    token : Optional[str]
        The offending config token, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        token: Optional[str] = None,
        expected: Optional[Iterable[str]] = None,
    ) -> None:
        """
        Initialize the ConfigError.

        Parameters
        ----------
        message : str
            Human-readable description of the failure.
        token : Optional[str]
            The config token that triggered the failure.
        expected : Optional[Iterable[str]]
            Recognized tokens, appended to the message when given.
        """
        if expected is not None:
            message = f"{message} ({'|'.join(expected)})"
        super().__init__(message)
        self.token = token


class CorruptStateError(RuntimeError):
    """
    Raised when persisted layer state cannot be read back consistently.

    This covers malformed token streams (unexpected tokens, truncated data,
    bad numbers) as well as parameters whose dimensions disagree with the
    dimensions the layer was declared with.
    """


class LayerTypeMismatchError(TypeError):
    """
    Raised when an operation combines two incompatible layer variants.

    Attributes
    ----------
    expected : str
        Name of the variant the operation requires.
    actual : str
        Name of the variant that was supplied.
    """

    def __init__(self, op: str, expected: str, actual: str) -> None:
        """
        Initialize the LayerTypeMismatchError.

        Parameters
        ----------
        op : str
            Operation name (e.g., "add").
        expected : str
            Variant name the operation requires.
        actual : str
            Variant name of the offending operand.
        """
        super().__init__(f"{op} expects a {expected} layer, got {actual}.")
        self.expected = expected
        self.actual = actual


class ShapeMismatchError(ValueError):
    """
    Raised when an array does not have the shape a layer requires.

    Attributes
    ----------
    expected : tuple[int, ...]
        The required shape.
    actual : tuple[int, ...]
        The shape that was supplied.
    """

    def __init__(
        self, what: str, expected: tuple[int, ...], actual: tuple[int, ...]
    ) -> None:
        super().__init__(f"Shape mismatch for {what}: expected {expected}, got {actual}.")
        self.expected = tuple(expected)
        self.actual = tuple(actual)


class LayerNotInitializedError(RuntimeError):
    """
    Raised when a layer is used before its parameters have been populated.

    Parameters are populated by `init_data`, by `read_data`, or by supplying
    both the weight matrix and the bias vector explicitly.
    """

    def __init__(self, op: str, layer: str) -> None:
        super().__init__(
            f"{layer}.{op} called before parameters were populated "
            "(call init_data, read_data, or set_linearity + set_bias first)."
        )
        self.op = op
