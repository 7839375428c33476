from __future__ import annotations

from dataclasses import dataclass
from math import inf, prod, sqrt
from typing import Any, Callable, Optional
from warnings import warn

import numpy as np

from blobnet.tensor import Type, as_tensor_type, tensor_type2dtype
from blobnet.utils_shape import (
    _calc_fc_shape,
    _calc_softmax_loss_shapes,
    _flatten_2d_shape,
    _normalize_shape_arg,
)

Shape = tuple[int, ...]
Kernel = Callable[[tuple[np.ndarray, ...], dict[str, Any], np.random.Generator], tuple[np.ndarray, ...]]
ShapeFn = Callable[[list[Shape], dict[str, Any], int], list[Shape]]


@dataclass(frozen=True)
class OpSchema:
    type: str
    kernel: Kernel
    infer_shape: Optional[ShapeFn] = None
    min_inputs: int = 0
    max_inputs: float = inf
    min_outputs: int = 1
    max_outputs: float = 1

    def check_arity(self, num_inputs: int, num_outputs: int) -> None:
        if not self.min_inputs <= num_inputs <= self.max_inputs:
            raise ValueError(
                f"Op {self.type} takes between {self.min_inputs} and {self.max_inputs} inputs, got {num_inputs}"
            )
        if not self.min_outputs <= num_outputs <= self.max_outputs:
            raise ValueError(
                f"Op {self.type} produces between {self.min_outputs} and {self.max_outputs} outputs, got {num_outputs}"
            )


OPERATOR_SCHEMAS: dict[str, OpSchema] = {}


def register_operator(
    op_type: str,
    kernel: Kernel,
    infer_shape: Optional[ShapeFn] = None,
    num_inputs: tuple[int, float] = (0, inf),
    num_outputs: tuple[int, float] = (1, 1),
) -> OpSchema:
    schema = OpSchema(
        type=op_type,
        kernel=kernel,
        infer_shape=infer_shape,
        min_inputs=num_inputs[0],
        max_inputs=num_inputs[1],
        min_outputs=num_outputs[0],
        max_outputs=num_outputs[1],
    )
    OPERATOR_SCHEMAS[op_type] = schema
    return schema


def is_registered(op_type: str) -> bool:
    return op_type in OPERATOR_SCHEMAS


def get_schema(op_type: str) -> OpSchema:
    try:
        return OPERATOR_SCHEMAS[op_type]
    except KeyError:
        raise NotImplementedError(f"Exec func not implemented for op {op_type!r}")


def _fill_dtype(op_kwargs) -> np.dtype:
    return tensor_type2dtype(as_tensor_type(op_kwargs.get("dtype", Type.FLOAT32)))


def _fill_shape(inputs, op_kwargs) -> Shape:
    if inputs:
        return inputs[0].shape
    return _normalize_shape_arg(op_kwargs.get("shape"))


def _check_labels(label: np.ndarray, n: int, d: int) -> np.ndarray:
    if not np.issubdtype(label.dtype, np.integer):
        raise ValueError(f"Labels must be integers, got {label.dtype}")
    if label.shape not in ((n,), (n, 1)):
        raise ValueError(f"Label shape {label.shape} does not match batch size {n}")

    labels = label.reshape(n)
    if labels.size and (labels.min() < 0 or labels.max() >= d):
        raise ValueError(f"Label values must be in [0, {d}), got [{labels.min()}, {labels.max()}]")
    return labels


# fills


def _exec_constant_fill_np(inputs, op_kwargs, rng):
    value = op_kwargs.get("value", 0.0)
    return (np.full(_fill_shape(inputs, op_kwargs), value, dtype=_fill_dtype(op_kwargs)),)


def _exec_xavier_fill_np(inputs, op_kwargs, rng):
    shape = _fill_shape(inputs, op_kwargs)
    fan_in = prod(shape) / shape[0]
    scale = sqrt(3.0 / fan_in)
    return (rng.uniform(-scale, scale, size=shape).astype(np.float32),)


def _exec_uniform_fill_np(inputs, op_kwargs, rng):
    low = op_kwargs.get("min", 0.0)
    high = op_kwargs.get("max", 1.0)
    shape = _fill_shape(inputs, op_kwargs)
    return (rng.uniform(low, high, size=shape).astype(np.float32),)


def _exec_gaussian_fill_np(inputs, op_kwargs, rng):
    mean = op_kwargs.get("mean", 0.0)
    std = op_kwargs.get("std", 1.0)
    shape = _fill_shape(inputs, op_kwargs)
    return (rng.normal(mean, std, size=shape).astype(np.float32),)


def _exec_given_tensor_fill_np(inputs, op_kwargs, rng):
    shape = _fill_shape(inputs, op_kwargs)
    values = np.asarray(op_kwargs.get("values", []), dtype=_fill_dtype(op_kwargs))
    return (values.reshape(shape),)


def _infer_fill(in_shapes, op_kwargs, num_outputs):
    if in_shapes and "shape" in op_kwargs:
        warn("Fill op got both an input and a `shape` argument, the input shape wins")
    if in_shapes:
        return [in_shapes[0]]
    return [_normalize_shape_arg(op_kwargs.get("shape"))]


def _infer_xavier_fill(in_shapes, op_kwargs, num_outputs):
    (shape,) = _infer_fill(in_shapes, op_kwargs, num_outputs)
    if len(shape) == 0 or prod(shape) == 0:
        raise ValueError(f"XavierFill needs a non-empty shape, got {shape}")
    return [shape]


def _infer_given_tensor_fill(in_shapes, op_kwargs, num_outputs):
    (shape,) = _infer_fill(in_shapes, op_kwargs, num_outputs)
    num_values = len(op_kwargs.get("values", []))
    if prod(shape) != num_values:
        raise ValueError(f"GivenTensorFill got {num_values} values for shape {shape}")
    return [shape]


# fully connected


def _exec_fc_np(inputs, op_kwargs, rng):
    x, w, b = inputs
    axis = op_kwargs.get("axis", 1)
    axis_w = op_kwargs.get("axis_w", 1)

    out_shape = _calc_fc_shape(x.shape, w.shape, b.shape, axis, axis_w)
    m, k = _flatten_2d_shape(x.shape, axis)
    n, _ = _flatten_2d_shape(w.shape, axis_w)

    y = np.matmul(x.reshape(m, k), w.reshape(n, k).T) + b.reshape(n)
    return (y.reshape(out_shape).astype(x.dtype, copy=False),)


def _exec_fc_gradient_np(inputs, op_kwargs, rng):
    x, w, dy = inputs
    axis = op_kwargs.get("axis", 1)
    axis_w = op_kwargs.get("axis_w", 1)

    m, k = _flatten_2d_shape(x.shape, axis)
    n, _ = _flatten_2d_shape(w.shape, axis_w)
    x_2d = x.reshape(m, k)
    w_2d = w.reshape(n, k)
    dy_2d = dy.reshape(m, n)

    dw = np.matmul(dy_2d.T, x_2d).reshape(w.shape)
    db = np.sum(dy_2d, axis=0)
    dx = np.matmul(dy_2d, w_2d).reshape(x.shape)
    return dw.astype(w.dtype), db.astype(w.dtype), dx.astype(x.dtype)


def _infer_fc(in_shapes, op_kwargs, num_outputs):
    x_shape, w_shape, b_shape = in_shapes
    return [
        _calc_fc_shape(
            x_shape, w_shape, b_shape, op_kwargs.get("axis", 1), op_kwargs.get("axis_w", 1)
        )
    ]


def _infer_fc_gradient(in_shapes, op_kwargs, num_outputs):
    x_shape, w_shape, dy_shape = in_shapes
    axis = op_kwargs.get("axis", 1)
    m, _ = _flatten_2d_shape(x_shape, axis)
    n, _ = _flatten_2d_shape(w_shape, op_kwargs.get("axis_w", 1))
    if prod(dy_shape) != m * n:
        raise ValueError(f"FCGradient output gradient {dy_shape} does not match ({m}, {n})")
    return [w_shape, (n,), x_shape][:num_outputs]


# activations


def _exec_sigmoid_np(inputs, op_kwargs, rng):
    (x,) = inputs
    return ((1.0 / (1.0 + np.exp(-x))).astype(x.dtype, copy=False),)


def _exec_sigmoid_gradient_np(inputs, op_kwargs, rng):
    y, dy = inputs
    return ((dy * y * (1.0 - y)).astype(y.dtype, copy=False),)


def _exec_relu_np(inputs, op_kwargs, rng):
    (x,) = inputs
    return (np.maximum(0, x).astype(x.dtype, copy=False),)


def _exec_relu_gradient_np(inputs, op_kwargs, rng):
    y, dy = inputs
    return (np.where(y > 0, dy, 0).astype(dy.dtype, copy=False),)


def _infer_elementwise(in_shapes, op_kwargs, num_outputs):
    for shape in in_shapes[1:]:
        if shape != in_shapes[0]:
            raise ValueError(f"Elementwise op expects matching shapes, got {in_shapes}")
    return [in_shapes[0]]


# loss


def _softmax_rows(x: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    shifted = x - np.max(x, axis=1, keepdims=True)
    exp = np.exp(shifted)
    denom = np.sum(exp, axis=1, keepdims=True)
    return exp / denom, shifted - np.log(denom)


def _exec_softmax_with_loss_np(inputs, op_kwargs, rng):
    x, label = inputs[0], inputs[1]
    weights = inputs[2] if len(inputs) > 2 else None
    scale = op_kwargs.get("scale", 1.0)

    n, d = x.shape
    labels = _check_labels(label, n, d)
    probs, log_probs = _softmax_rows(x)
    picked = -log_probs[np.arange(n), labels]

    if weights is None:
        loss = np.sum(picked) / n if n else 0.0
    else:
        w = weights.reshape(n)
        total = np.sum(w)
        loss = np.sum(picked * w) / total if total > 0 else 0.0

    return probs.astype(x.dtype), np.array(loss * scale, dtype=x.dtype)


def _exec_softmax_with_loss_gradient_np(inputs, op_kwargs, rng):
    if len(inputs) == 5:
        x, label, weights, probs, dloss = inputs
    else:
        x, label, probs, dloss = inputs
        weights = None
    scale = op_kwargs.get("scale", 1.0)

    n, d = x.shape
    labels = _check_labels(label, n, d)

    dx = probs.astype(np.float64)
    dx[np.arange(n), labels] -= 1.0

    if weights is None:
        norm = n
    else:
        w = weights.reshape(n)
        dx *= w[:, np.newaxis]
        norm = np.sum(w)

    if norm > 0:
        dx *= float(np.asarray(dloss).reshape(-1)[0]) * scale / norm
    else:
        dx[...] = 0.0
    return (dx.astype(x.dtype),)


def _infer_softmax_with_loss(in_shapes, op_kwargs, num_outputs):
    weight_shape = in_shapes[2] if len(in_shapes) > 2 else None
    return list(_calc_softmax_loss_shapes(in_shapes[0], in_shapes[1], weight_shape))


def _infer_softmax_with_loss_gradient(in_shapes, op_kwargs, num_outputs):
    x_shape = in_shapes[0]
    if in_shapes[-2] != x_shape:
        raise ValueError(f"Softmax output {in_shapes[-2]} does not match input {x_shape}")
    if prod(in_shapes[-1]) != 1:
        raise ValueError(f"Loss gradient must be a scalar, got {in_shapes[-1]}")
    return [x_shape]


# reductions over blobs


def _exec_sum_np(inputs, op_kwargs, rng):
    out = np.array(inputs[0], copy=True)
    for tensor in inputs[1:]:
        out += tensor
    return (out,)


def _exec_weighted_sum_np(inputs, op_kwargs, rng):
    out = np.zeros_like(inputs[0])
    for tensor, weight in zip(inputs[0::2], inputs[1::2]):
        out += tensor * weight.reshape(-1)[0]
    return (out,)


def _infer_weighted_sum(in_shapes, op_kwargs, num_outputs):
    if len(in_shapes) % 2:
        raise ValueError("WeightedSum takes (tensor, weight) pairs")
    _infer_elementwise(in_shapes[0::2], op_kwargs, num_outputs)
    for shape in in_shapes[1::2]:
        if prod(shape) != 1:
            raise ValueError(f"WeightedSum weights must hold one element, got {shape}")
    return [in_shapes[0]]


register_operator("ConstantFill", _exec_constant_fill_np, _infer_fill, (0, 1))
register_operator("XavierFill", _exec_xavier_fill_np, _infer_xavier_fill, (0, 1))
register_operator("UniformFill", _exec_uniform_fill_np, _infer_fill, (0, 1))
register_operator("GaussianFill", _exec_gaussian_fill_np, _infer_fill, (0, 1))
register_operator("GivenTensorFill", _exec_given_tensor_fill_np, _infer_given_tensor_fill, (0, 1))
register_operator("FC", _exec_fc_np, _infer_fc, (3, 3))
register_operator("FCGradient", _exec_fc_gradient_np, _infer_fc_gradient, (3, 3), (2, 3))
register_operator("Sigmoid", _exec_sigmoid_np, _infer_elementwise, (1, 1))
register_operator("SigmoidGradient", _exec_sigmoid_gradient_np, _infer_elementwise, (2, 2))
register_operator("Relu", _exec_relu_np, _infer_elementwise, (1, 1))
register_operator("ReluGradient", _exec_relu_gradient_np, _infer_elementwise, (2, 2))
register_operator("SoftmaxWithLoss", _exec_softmax_with_loss_np, _infer_softmax_with_loss, (2, 3), (2, 2))
register_operator(
    "SoftmaxWithLossGradient",
    _exec_softmax_with_loss_gradient_np,
    _infer_softmax_with_loss_gradient,
    (4, 5),
)
register_operator("Sum", _exec_sum_np, _infer_elementwise, (1, inf))
register_operator("WeightedSum", _exec_weighted_sum_np, _infer_weighted_sum, (2, inf))
