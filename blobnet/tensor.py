from __future__ import annotations  # do not touch

from enum import Enum, IntEnum
from math import prod
from typing import Optional

import numpy as np

ArrayLike = int | float | np.ndarray | list


class FastEnum(IntEnum):
    def __str__(self):
        return Enum.__str__(self)


class Type(FastEnum):
    INT32 = 10
    INT64 = 20
    FLOAT32 = 30
    FLOAT64 = 40


def dtype2tensor_type(dtype: np.dtype) -> Type:
    if dtype == np.float32:
        return Type.FLOAT32
    if dtype == np.float64:
        return Type.FLOAT64
    elif dtype == np.int64:
        return Type.INT64
    elif dtype == np.int32:
        return Type.INT32
    else:
        raise TypeError(f"Invalid type taken from numpy: {dtype}")


def tensor_type2dtype(dtype: Type) -> np.dtype:
    if dtype == Type.FLOAT32:
        return np.dtype(np.float32)
    elif dtype == Type.FLOAT64:
        return np.dtype(np.float64)
    elif dtype == Type.INT64:
        return np.dtype(np.int64)
    elif dtype == Type.INT32:
        return np.dtype(np.int32)
    else:
        raise TypeError(f"Unsupported tensor type: {dtype}")


def as_tensor_type(dtype: Type | str | np.dtype | type) -> Type:
    """Accepts a `Type`, its name (`"float32"`, `"INT32"`...) or a numpy dtype."""
    if isinstance(dtype, Type):
        return dtype
    if isinstance(dtype, str):
        try:
            return Type[dtype.upper()]
        except KeyError:
            raise TypeError(f"Unknown tensor type name: {dtype!r}")
    return dtype2tensor_type(np.dtype(dtype))


class Tensor:
    """
    Dense, row-major tensor backed by a contiguous numpy buffer.

    The buffer is owned by the tensor. `resize` only reallocates when the
    number of elements changes, so refeeding data of the same shape keeps
    writing into the same storage.
    """

    def __init__(self, dtype: Type = Type.FLOAT32, shape: tuple[int, ...] = ()):
        self._dtype = as_tensor_type(dtype)
        self._data = np.zeros(shape, dtype=tensor_type2dtype(self._dtype))

    @property
    def shape(self) -> tuple[int, ...]:
        return self._data.shape

    @property
    def ndim(self) -> int:
        return self._data.ndim

    @property
    def size(self) -> int:
        return self._data.size

    @property
    def nbytes(self) -> int:
        return self._data.nbytes

    @property
    def dtype(self) -> Type:
        return self._dtype

    @property
    def data(self) -> np.ndarray:
        view = self._data.view()
        view.flags.writeable = False
        return view

    def numpy(self) -> np.ndarray:
        return self._data.copy()

    def resize(self, *dims: int) -> Tensor:
        if len(dims) == 1 and isinstance(dims[0], (tuple, list)):
            dims = tuple(dims[0])

        for dim in dims:
            if not isinstance(dim, (int, np.integer)) or dim < 0:
                raise ValueError(f"Invalid dim for resize: {dim!r} in {dims}")

        new_shape = tuple(int(d) for d in dims)
        if prod(new_shape) == self._data.size:
            self._data = self._data.reshape(new_shape)
        else:
            self._data = np.zeros(new_shape, dtype=self._data.dtype)
        return self

    def mutable_data(self, dtype: Optional[Type | str | np.dtype] = None) -> np.ndarray:
        if dtype is not None:
            tensor_type = as_tensor_type(dtype)
            if tensor_type != self._dtype:
                self._dtype = tensor_type
                self._data = np.zeros(self._data.shape, dtype=tensor_type2dtype(tensor_type))
        return self._data

    def copy_from(self, array: ArrayLike) -> Tensor:
        src = np.asarray(array)
        if src.size != self._data.size:
            raise ValueError(
                f"Cannot copy {src.size} elements into a tensor of shape {self.shape} "
                f"({self._data.size} elements)"
            )
        # bulk copy, the storage itself is kept
        self._data.reshape(-1)[...] = src.reshape(-1).astype(self._data.dtype, copy=False)
        return self

    def __repr__(self) -> str:
        return f"Tensor(dtype={self._dtype}, shape={self.shape})"


def format_tensor(name: str, tensor: Tensor) -> str:
    values = np.array2string(tensor.data, precision=4, suppress_small=True, threshold=200)
    return f"{name} ({tensor.dtype.name.lower()}, shape={tensor.shape}):\n{values}"
