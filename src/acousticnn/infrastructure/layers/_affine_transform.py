"""
Affine transform (fully-connected) layer.

This module provides `AffineTransform`, the trainable dense layer of the
toolkit. It owns a weight matrix (`linearity`) and a bias vector and performs
an affine projection of batch-major inputs:

    y = x @ linearity^T + bias

Shape conventions
-----------------
- x         : (batch, input_dim)
- linearity : (output_dim, input_dim)
- bias      : (output_dim,)
- y         : (batch, output_dim)

Update rules
------------
Every `update` first forms a momentum-blended gradient and optionally clips it:

    linearity_corr = momentum * linearity_corr + dy^T @ x
    bias_corr      = momentum * bias_corr + sum(dy, axis=0)
    clip both to [-max_grad, max_grad] when max_grad > 0

and then applies one of:

- SGD:      p -= lr * corr
- AdaGrad:  accu += corr^2;                        p -= lr * corr / sqrt(accu + eps)
- RMSProp:  accu = d * accu + (1 - d) * corr^2;    p -= lr * corr / sqrt(accu + eps)

where `lr = context.learn_rate * learn_rate_coef`, `eps = ADAGRAD_EPSILON`
and `d = RMSPROP_DECAY`.

Adaptive state
--------------
The squared-gradient accumulators and their derived scale buffers live in a
single optional `_AdaptiveState`. It is allocated on the first adaptive update
(or when a persisted accumulator block is read) and then kept for the layer's
lifetime, so a later SGD update never drops it. Only the accumulators are
persisted; scale buffers are recomputed on every adaptive step.

Persistence
-----------
`write_data` emits, in order::

    <LearnRateCoef> f  <MaxGrad> f  [<AffineAccus> accu_matrix accu_vector]  matrix  vector

`read_data` accepts any subset of the leading tagged entries.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
from typing_extensions import Self

from ...domain._errors import (
    ConfigError,
    CorruptStateError,
    LayerTypeMismatchError,
    ShapeMismatchError,
)
from ...domain._layer import LayerType
from ...domain._update import UpdateContext, UpdateRule
from ..diagnostics._moments import moment_statistics
from ..io._config_pairs import ConfigSource, parse_config_pairs, parse_float
from ..io._token_stream import TokenReader, TokenWriter
from ..ops import dense_cpu
from ._layer import TrainableLayer, register_layer

DEFAULT_PARAM_RANGE = 0.02
DEFAULT_LEARN_RATE_COEF = 1.0
DEFAULT_MAX_GRAD = 0.0

_INIT_OPTIONS = ("<ParamRange>", "<LearnRateCoef>", "<MaxGrad>")


def _read_only(arr: np.ndarray) -> np.ndarray:
    view = arr.view()
    view.flags.writeable = False
    return view


@dataclass
class _AdaptiveState:
    """Squared-gradient accumulators and their derived step scales."""

    linearity_accu: np.ndarray
    bias_accu: np.ndarray
    linearity_accu_scale: np.ndarray
    bias_accu_scale: np.ndarray

    @classmethod
    def zeros(cls, output_dim: int, input_dim: int) -> "_AdaptiveState":
        return cls(
            linearity_accu=dense_cpu.zeros((output_dim, input_dim)),
            bias_accu=dense_cpu.zeros((output_dim,)),
            linearity_accu_scale=dense_cpu.zeros((output_dim, input_dim)),
            bias_accu_scale=dense_cpu.zeros((output_dim,)),
        )


@register_layer(LayerType.AFFINE_TRANSFORM)
class AffineTransform(TrainableLayer):
    """
    Trainable affine transform `y = x @ W^T + b`.

    Parameters are not populated at construction. Populate them with
    `init_data` (uniform random), `read_data` (persisted state), or by calling
    both `set_linearity` and `set_bias`.

    Parameters
    ----------
    input_dim : int
        Number of input features.
    output_dim : int
        Number of output features.

    Attributes
    ----------
    learn_rate_coef : float
        Per-layer multiplier on the trainer's learning rate. Defaults to 1.0.
    max_grad : float
        Elementwise gradient clipping bound; 0 disables clipping.
        Defaults to 0.0.
    """

    def __init__(self, input_dim: int, output_dim: int) -> None:
        super().__init__(input_dim, output_dim)

        self._linearity: Optional[np.ndarray] = None
        self._bias: Optional[np.ndarray] = None

        self._linearity_corr = dense_cpu.zeros((self.output_dim, self.input_dim))
        self._bias_corr = dense_cpu.zeros((self.output_dim,))

        self._adaptive: Optional[_AdaptiveState] = None

        self.learn_rate_coef: float = DEFAULT_LEARN_RATE_COEF
        self.max_grad: float = DEFAULT_MAX_GRAD

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------
    @property
    def is_initialized(self) -> bool:
        return self._linearity is not None and self._bias is not None

    @property
    def ada_buffers_initialized(self) -> bool:
        """True once adaptive accumulators exist (and will be persisted)."""
        return self._adaptive is not None

    @property
    def linearity(self) -> Optional[np.ndarray]:
        """Read-only view of the weight matrix, or None if unpopulated."""
        return None if self._linearity is None else _read_only(self._linearity)

    @property
    def bias(self) -> Optional[np.ndarray]:
        """Read-only view of the bias vector, or None if unpopulated."""
        return None if self._bias is None else _read_only(self._bias)

    @property
    def linearity_corr(self) -> np.ndarray:
        """Read-only view of the last weight gradient buffer."""
        return _read_only(self._linearity_corr)

    @property
    def bias_corr(self) -> np.ndarray:
        """Read-only view of the last bias gradient buffer."""
        return _read_only(self._bias_corr)

    @property
    def linearity_accu(self) -> Optional[np.ndarray]:
        """Read-only view of the weight accumulator, or None if absent."""
        return None if self._adaptive is None else _read_only(self._adaptive.linearity_accu)

    @property
    def bias_accu(self) -> Optional[np.ndarray]:
        """Read-only view of the bias accumulator, or None if absent."""
        return None if self._adaptive is None else _read_only(self._adaptive.bias_accu)

    def _ensure_adaptive_state(self) -> _AdaptiveState:
        if self._adaptive is None:
            self._adaptive = _AdaptiveState.zeros(self.output_dim, self.input_dim)
        return self._adaptive

    def set_linearity(self, linearity: Any) -> None:
        """
        Replace the weight matrix with a copy of `linearity`.

        Raises
        ------
        ShapeMismatchError
            If `linearity` is not `(output_dim, input_dim)`.
        """
        w = np.asarray(linearity, dtype=dense_cpu.FLOAT_DTYPE)
        expected = (self.output_dim, self.input_dim)
        if w.shape != expected:
            raise ShapeMismatchError("linearity", expected, tuple(w.shape))
        self._linearity = np.array(w, copy=True)

    def set_bias(self, bias: Any) -> None:
        """
        Replace the bias vector with a copy of `bias`.

        Raises
        ------
        ShapeMismatchError
            If `bias` is not `(output_dim,)`.
        """
        b = np.asarray(bias, dtype=dense_cpu.FLOAT_DTYPE)
        expected = (self.output_dim,)
        if b.shape != expected:
            raise ShapeMismatchError("bias", expected, tuple(b.shape))
        self._bias = np.array(b, copy=True)

    def set_accumulators(self, linearity_accu: Any, bias_accu: Any) -> None:
        """
        Install squared-gradient accumulators, allocating adaptive state.

        Scale buffers are left for the next adaptive update to recompute.

        Raises
        ------
        ShapeMismatchError
            If either accumulator does not match its parameter's shape.
        """
        w = np.asarray(linearity_accu, dtype=dense_cpu.FLOAT_DTYPE)
        b = np.asarray(bias_accu, dtype=dense_cpu.FLOAT_DTYPE)
        if w.shape != (self.output_dim, self.input_dim):
            raise ShapeMismatchError(
                "linearity accumulator", (self.output_dim, self.input_dim), tuple(w.shape)
            )
        if b.shape != (self.output_dim,):
            raise ShapeMismatchError("bias accumulator", (self.output_dim,), tuple(b.shape))
        state = self._ensure_adaptive_state()
        state.linearity_accu = np.array(w, copy=True)
        state.bias_accu = np.array(b, copy=True)

    # ------------------------------------------------------------------
    # initialization
    # ------------------------------------------------------------------
    def init_data(self, config: ConfigSource = "") -> None:
        """
        Randomly initialize parameters from a config.

        Recognized options (any order, all optional):

        - ``<ParamRange>`` half-range of the uniform init, default 0.02
        - ``<LearnRateCoef>`` per-layer learning-rate multiplier, default 1.0
        - ``<MaxGrad>`` gradient clipping bound, default 0.0 (disabled)

        Parameters
        ----------
        config : str | Iterable[tuple[str, object]]
            Config string such as ``"<ParamRange> 0.1 <MaxGrad> 5"`` or an
            iterable of ``(key, value)`` pairs.

        Raises
        ------
        ConfigError
            On an unknown option, a malformed value, or a negative or
            non-finite ``<ParamRange>``.
        """
        param_range = DEFAULT_PARAM_RANGE
        learn_rate_coef = DEFAULT_LEARN_RATE_COEF
        max_grad = DEFAULT_MAX_GRAD

        for key, value in parse_config_pairs(config):
            match key:
                case "<ParamRange>":
                    param_range = parse_float(key, value)
                case "<LearnRateCoef>":
                    learn_rate_coef = parse_float(key, value)
                case "<MaxGrad>":
                    max_grad = parse_float(key, value)
                case _:
                    raise ConfigError(
                        f"Unknown token {key}, a typo in config?",
                        token=key,
                        expected=_INIT_OPTIONS,
                    )

        if not np.isfinite(param_range) or param_range < 0.0:
            raise ConfigError(
                f"<ParamRange> must be a finite value >= 0, got {param_range}",
                token="<ParamRange>",
            )
        if max_grad < 0.0:
            warnings.warn(
                f"<MaxGrad> {max_grad} is negative; gradient clipping is disabled.",
                UserWarning,
                stacklevel=2,
            )

        self._linearity = dense_cpu.rand_uniform(
            (self.output_dim, self.input_dim), param_range
        )
        self._bias = dense_cpu.rand_uniform((self.output_dim,), param_range)
        self.learn_rate_coef = learn_rate_coef
        self.max_grad = max_grad

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------
    def read_data(self, reader: TokenReader) -> None:
        """
        Restore parameters (and optional accumulators) from a token stream.

        Leading tagged entries are optional; missing ones take their
        defaults. Adaptive state is only kept when an ``<AffineAccus>`` block
        is present.

        The layer is modified only after the whole entry has been read and
        validated; on error it keeps its previous state.

        Raises
        ------
        CorruptStateError
            On an unknown tag, malformed data, or parameters whose shapes do
            not match `(output_dim, input_dim)`.
        """
        learn_rate_coef = DEFAULT_LEARN_RATE_COEF
        max_grad = DEFAULT_MAX_GRAD
        accus: Optional[Tuple[np.ndarray, np.ndarray]] = None

        while reader.peek() == "<":
            token = reader.read_token()
            match token:
                case "<LearnRateCoef>":
                    learn_rate_coef = reader.read_float()
                case "<MaxGrad>":
                    max_grad = reader.read_float()
                case "<AffineAccus>":
                    accus = (
                        self._checked_matrix(reader.read_matrix(), "linearity accumulator"),
                        self._checked_vector(reader.read_vector(), "bias accumulator"),
                    )
                case _:
                    raise CorruptStateError(
                        f"Unexpected token {token} in {type(self).__name__} data."
                    )

        linearity = self._checked_matrix(reader.read_matrix(), "linearity")
        bias = self._checked_vector(reader.read_vector(), "bias")

        self._linearity = linearity
        self._bias = bias
        self.learn_rate_coef = learn_rate_coef
        self.max_grad = max_grad
        self._adaptive = None
        if accus is not None:
            state = self._ensure_adaptive_state()
            state.linearity_accu, state.bias_accu = accus

    def _checked_matrix(self, mat: np.ndarray, what: str) -> np.ndarray:
        expected = (self.output_dim, self.input_dim)
        if mat.shape != expected:
            raise CorruptStateError(
                f"Dimension mismatch for {what}: expected {expected}, read {mat.shape}"
            )
        return mat

    def _checked_vector(self, vec: np.ndarray, what: str) -> np.ndarray:
        expected = (self.output_dim,)
        if vec.shape != expected:
            raise CorruptStateError(
                f"Dimension mismatch for {what}: expected {expected}, read {vec.shape}"
            )
        return vec

    def write_data(self, writer: TokenWriter) -> None:
        """
        Persist parameters (and accumulators, if allocated) to a token stream.
        """
        self._require_initialized("write_data")
        writer.write_token("<LearnRateCoef>")
        writer.write_float(self.learn_rate_coef)
        writer.write_token("<MaxGrad>")
        writer.write_float(self.max_grad)

        if self._adaptive is not None:
            writer.write_token("<AffineAccus>")
            writer.write_matrix(self._adaptive.linearity_accu)
            writer.write_vector(self._adaptive.bias_accu)

        writer.write_matrix(self._linearity)
        writer.write_vector(self._bias)

    # ------------------------------------------------------------------
    # forward / backward
    # ------------------------------------------------------------------
    def _propagate(self, x: np.ndarray) -> np.ndarray:
        out = np.empty((x.shape[0], self.output_dim), dtype=dense_cpu.FLOAT_DTYPE)
        # precopy bias, then multiply by weights^T
        dense_cpu.add_vec_to_rows(out, 1.0, self._bias, 0.0)
        dense_cpu.add_mat_mat(out, 1.0, x, False, self._linearity, True, 1.0)
        return out

    def _backpropagate(
        self, x: np.ndarray, y: np.ndarray, dy: np.ndarray
    ) -> np.ndarray:
        dx = np.empty((dy.shape[0], self.input_dim), dtype=dense_cpu.FLOAT_DTYPE)
        return dense_cpu.add_mat_mat(dx, 1.0, dy, False, self._linearity, False, 0.0)

    # ------------------------------------------------------------------
    # update
    # ------------------------------------------------------------------
    def update(
        self,
        x: Any,
        dy: Any,
        context: UpdateContext,
        rule: Union[UpdateRule, str] = UpdateRule.SGD,
    ) -> None:
        """
        Apply one parameter update from a minibatch.

        Parameters
        ----------
        x : array-like
            Forward input of the minibatch, `(batch, input_dim)`.
        dy : array-like
            Output gradient of the same minibatch, `(batch, output_dim)`.
        context : UpdateContext
            Trainer hyperparameters (learning rate, momentum).
        rule : UpdateRule | str, optional
            Update rule. Defaults to SGD.

        Raises
        ------
        LayerNotInitializedError
            If parameters were never populated.
        ShapeMismatchError
            If `x` / `dy` shapes do not match the layer or each other.
        ValueError
            If `rule` is not a supported update rule.
        """
        self._require_initialized("update")
        rule = UpdateRule.parse(rule)

        x = np.asarray(x, dtype=dense_cpu.FLOAT_DTYPE)
        dy = np.asarray(dy, dtype=dense_cpu.FLOAT_DTYPE)
        if x.ndim != 2 or x.shape[1] != self.input_dim:
            raise ShapeMismatchError("update input", (-1, self.input_dim), tuple(x.shape))
        if dy.ndim != 2 or dy.shape != (x.shape[0], self.output_dim):
            raise ShapeMismatchError(
                "update output gradient", (x.shape[0], self.output_dim), tuple(dy.shape)
            )

        mmt = context.momentum

        # compute gradient (incl. momentum)
        dense_cpu.add_mat_mat(self._linearity_corr, 1.0, dy, True, x, False, mmt)
        dense_cpu.add_row_sum_mat(self._bias_corr, 1.0, dy, mmt)

        if self.max_grad > 0:
            dense_cpu.clamp_(self._linearity_corr, self.max_grad)
            dense_cpu.clamp_(self._bias_corr, self.max_grad)

        lr = context.learn_rate * self.learn_rate_coef

        if rule is UpdateRule.SGD:
            dense_cpu.add_mat(self._linearity, -lr, self._linearity_corr)
            dense_cpu.add_mat(self._bias, -lr, self._bias_corr)
            return

        state = self._ensure_adaptive_state()
        if rule is UpdateRule.ADAGRAD:
            dense_cpu.adagrad_accu_update(state.linearity_accu, self._linearity_corr)
            dense_cpu.adagrad_accu_update(state.bias_accu, self._bias_corr)
        else:
            dense_cpu.rmsprop_accu_update(state.linearity_accu, self._linearity_corr)
            dense_cpu.rmsprop_accu_update(state.bias_accu, self._bias_corr)

        dense_cpu.adagrad_scale_compute(state.linearity_accu_scale, state.linearity_accu)
        dense_cpu.adagrad_scale_compute(state.bias_accu_scale, state.bias_accu)

        dense_cpu.add_mat_mat_elements(
            self._linearity, -lr, state.linearity_accu_scale, self._linearity_corr, 1.0
        )
        dense_cpu.add_mat_mat_elements(
            self._bias, -lr, state.bias_accu_scale, self._bias_corr, 1.0
        )

    # ------------------------------------------------------------------
    # model combination
    # ------------------------------------------------------------------
    def scale(self, factor: float) -> None:
        """Multiply weight and bias by `factor` in place."""
        self._require_initialized("scale")
        dense_cpu.scale_(self._linearity, factor)
        dense_cpu.scale_(self._bias, factor)

    def add(self, factor: float, other: TrainableLayer) -> None:
        """
        In-place `W += factor * other.W`, `b += factor * other.b`.

        Raises
        ------
        LayerTypeMismatchError
            If `other` is not an `AffineTransform`.
        ShapeMismatchError
            If `other` has different dimensions.
        """
        self._require_initialized("add")
        match other:
            case AffineTransform():
                pass
            case _:
                raise LayerTypeMismatchError(
                    "add", type(self).__name__, type(other).__name__
                )

        other._require_initialized("add")
        if (other.output_dim, other.input_dim) != (self.output_dim, self.input_dim):
            raise ShapeMismatchError(
                "add operand",
                (self.output_dim, self.input_dim),
                (other.output_dim, other.input_dim),
            )
        dense_cpu.add_mat(self._linearity, factor, other._linearity)
        dense_cpu.add_mat(self._bias, factor, other._bias)

    # ------------------------------------------------------------------
    # introspection
    # ------------------------------------------------------------------
    def num_params(self) -> int:
        return self.output_dim * self.input_dim + self.output_dim

    def get_params(self) -> np.ndarray:
        """
        Return weight (row-major) followed by bias as a new float32 vector.
        """
        self._require_initialized("get_params")
        return np.concatenate([self._linearity.ravel(order="C"), self._bias])

    def info(self) -> str:
        if not self.is_initialized:
            return "\n  (parameters not initialized)"
        return (
            "\n  linearity" + moment_statistics(self._linearity)
            + "\n  bias" + moment_statistics(self._bias)
        )

    def info_gradient(self) -> str:
        extra = ""
        if self._adaptive is not None:
            extra = (
                "\n  linearity_grad_accu" + moment_statistics(self._adaptive.linearity_accu)
                + "\n  bias_grad_accu" + moment_statistics(self._adaptive.bias_accu)
            )
        return (
            "\n  linearity_corr" + moment_statistics(self._linearity_corr)
            + "\n  bias_corr" + moment_statistics(self._bias_corr)
            + extra
        )

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg.update(
            {
                "learn_rate_coef": float(self.learn_rate_coef),
                "max_grad": float(self.max_grad),
            }
        )
        return cfg

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> Self:
        layer = cls(int(cfg["input_dim"]), int(cfg["output_dim"]))
        layer.learn_rate_coef = float(cfg.get("learn_rate_coef", DEFAULT_LEARN_RATE_COEF))
        layer.max_grad = float(cfg.get("max_grad", DEFAULT_MAX_GRAD))
        return layer


__all__ = [
    AffineTransform.__name__,
    "DEFAULT_PARAM_RANGE",
    "DEFAULT_LEARN_RATE_COEF",
    "DEFAULT_MAX_GRAD",
]
