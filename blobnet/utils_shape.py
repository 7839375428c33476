from math import prod
from typing import Any, Optional, Sequence


def _get_list_shape(data: Any) -> tuple[int, ...]:
    if not isinstance(data, list):
        if not isinstance(data, (int, float)):
            raise TypeError(f"Invalid type given: {type(data)}")
        return ()

    if not data:
        return (0,)

    try:
        first_element_shape = _get_list_shape(data[0])
    except (ValueError, TypeError) as e:
        raise type(e)(f"Error processing element at index 0: {e}") from e

    for i, element in enumerate(data[1:], start=1):
        try:
            element_shape = _get_list_shape(element)
            if element_shape != first_element_shape:
                raise ValueError(
                    f"Inconsistent shape: Element at index 0 implies sub-shape {first_element_shape}, "
                    f"but element at index {i} has sub-shape {element_shape}."
                )
        except (ValueError, TypeError) as e:
            raise type(e)(f"Error processing element at index {i}: {e}") from e
    return (len(data),) + first_element_shape


def _normalize_shape_arg(shape: Optional[int | Sequence[int]]) -> tuple[int, ...]:
    """
    Turns a `shape` argument (int, list or tuple) into a tuple of
    non-negative ints.
    """
    if shape is None:
        return tuple()

    if isinstance(shape, int):
        shape = (shape,)
    elif not isinstance(shape, (list, tuple)):
        raise TypeError(f"Shape must be `int`, `list` or `tuple`, got {type(shape)}")

    out = []
    for dim in shape:
        if not isinstance(dim, int) or isinstance(dim, bool):
            raise TypeError(f"Target dim must be `int`, got {type(dim)}")
        if dim < 0:
            raise ValueError(f"Target dim cannot be negative, got {dim} from {shape}")
        out.append(dim)
    return tuple(out)


def _canonical_axis(axis: int, ndim: int) -> int:
    if axis < -ndim or axis >= ndim:
        raise ValueError(f"Axis {axis} out of bounds for a tensor with {ndim} dims")
    return axis % ndim


def _flatten_2d_shape(shape: tuple[int, ...], axis: int) -> tuple[int, int]:
    """
    (M, K) view of `shape` split at `axis`: M is the product of the leading
    dims and K the product of the trailing ones.
    """
    if len(shape) == 0:
        raise ValueError("Cannot flatten a scalar into a matrix")

    axis = _canonical_axis(axis, len(shape))
    return prod(shape[:axis]), prod(shape[axis:])


def _calc_fc_shape(
    x_shape: tuple[int, ...],
    w_shape: tuple[int, ...],
    b_shape: tuple[int, ...],
    axis: int = 1,
    axis_w: int = 1,
) -> tuple[int, ...]:
    m, k = _flatten_2d_shape(x_shape, axis)
    n, k_w = _flatten_2d_shape(w_shape, axis_w)

    if k != k_w:
        raise ValueError(
            f"Shape incompatibility for `FC`: input {x_shape} flattens to ({m}, {k}) "
            f"but weight {w_shape} expects {k_w} input features"
        )

    if prod(b_shape) != n:
        raise ValueError(
            f"Shape incompatibility for `FC`: bias {b_shape} must hold {n} elements"
        )

    canonical = _canonical_axis(axis, len(x_shape))
    return tuple(x_shape[:canonical]) + (n,)


def _calc_softmax_loss_shapes(
    x_shape: tuple[int, ...],
    label_shape: tuple[int, ...],
    weight_shape: Optional[tuple[int, ...]] = None,
) -> tuple[tuple[int, ...], tuple[int, ...]]:
    if len(x_shape) != 2:
        raise ValueError(f"`SoftmaxWithLoss` expects a (N, D) input, got {x_shape}")

    n = x_shape[0]
    if label_shape not in ((n,), (n, 1)):
        raise ValueError(
            f"Label shape {label_shape} does not match batch size {n}, expected ({n},) or ({n}, 1)"
        )

    if weight_shape is not None and prod(weight_shape) != n:
        raise ValueError(f"Weight shape {weight_shape} does not match batch size {n}")

    return x_shape, ()
