from __future__ import annotations

from typing import Any, Hashable, Iterator, Optional, TypeVar

import numpy as np

from blobnet.engine import Net, create_net
from blobnet.proto import NetDef
from blobnet.tensor import ArrayLike, Tensor, Type, as_tensor_type, dtype2tensor_type
from blobnet.utils_shape import _get_list_shape

T = TypeVar("T")


class Blob:
    """Named, type-erased cell holding one object (a `Tensor` in practice)."""

    def __init__(self, name: Hashable):
        self.name = name
        self._content: Any = None

    @property
    def type_name(self) -> str:
        if self._content is None:
            return "nothing"
        return type(self._content).__name__

    def is_type(self, cls: type) -> bool:
        return isinstance(self._content, cls)

    def get(self, cls: type[T]) -> T:
        if not isinstance(self._content, cls):
            raise TypeError(
                f"Blob {self.name!r} holds {self.type_name}, requested {cls.__name__}"
            )
        return self._content

    def get_mutable(self, cls: type[T]) -> T:
        if not isinstance(self._content, cls):
            self._content = cls()
        return self._content

    def reset(self, content: Any = None) -> None:
        self._content = content

    def __repr__(self) -> str:
        return f"Blob(name={self.name!r}, holds={self.type_name})"


class Workspace:
    """
    Owns every blob of a run, and the nets created on top of them.

    A workspace is always passed around explicitly, there is no default
    instance.
    """

    def __init__(self, seed: Optional[int] = None, verbose: bool = False):
        self._blobs: dict[Hashable, Blob] = {}
        self._nets: dict[str, Net] = {}
        self.rng = np.random.default_rng(seed)
        self.verbose = verbose

    # blobs

    def create_blob(self, name: Hashable) -> Blob:
        if name not in self._blobs:
            if self.verbose:
                print(f"[Workspace] Creating blob {name!r}")
            self._blobs[name] = Blob(name)
        return self._blobs[name]

    def has_blob(self, name: Hashable) -> bool:
        return name in self._blobs

    def get_blob(self, name: Hashable) -> Blob:
        try:
            return self._blobs[name]
        except KeyError:
            raise KeyError(f"Blob {name!r} does not exist in the workspace")

    def remove_blob(self, name: Hashable) -> None:
        self.get_blob(name)
        del self._blobs[name]

    def blobs(self) -> list[Hashable]:
        return list(self._blobs)

    def blob_items(self) -> Iterator[tuple[Hashable, Blob]]:
        return iter(self._blobs.items())

    def feed_blob(
        self,
        name: Hashable,
        array: ArrayLike,
        dtype: Optional[Type | str | np.dtype] = None,
    ) -> Tensor:
        if isinstance(array, list):
            shape = _get_list_shape(array)
        elif isinstance(array, (np.ndarray, int, float, np.generic)):
            shape = np.shape(array)
        else:
            raise TypeError(
                f"Input to feed must be list, int, float or np.ndarray, got {type(array)}"
            )

        src = np.asarray(array)
        if dtype is None:
            tensor_type = dtype2tensor_type(src.dtype)
        else:
            tensor_type = as_tensor_type(dtype)

        tensor = self.create_blob(name).get_mutable(Tensor)
        tensor.resize(shape)
        tensor.mutable_data(tensor_type)
        tensor.copy_from(src)
        return tensor

    def fetch_blob(self, name: Hashable) -> np.ndarray:
        return self.get_blob(name).get(Tensor).numpy()

    # nets

    def create_net(self, net_def: NetDef, overwrite: bool = False) -> Net:
        if net_def.name in self._nets and not overwrite:
            raise ValueError(f"Net {net_def.name!r} already exists in the workspace")
        net = create_net(net_def, self)
        self._nets[net_def.name] = net
        return net

    def get_net(self, name: str) -> Net:
        try:
            return self._nets[name]
        except KeyError:
            raise KeyError(f"Net {name!r} has not been created in the workspace")

    def run_net(self, name: str, num_iter: int = 1) -> None:
        net = self.get_net(name)
        for _ in range(num_iter):
            net.run()

    def run_net_once(self, net_def: NetDef) -> None:
        create_net(net_def, self).run()

    def nets(self) -> list[str]:
        return list(self._nets)

    def __len__(self) -> int:
        return len(self._blobs)

    def __repr__(self) -> str:
        return f"Workspace(blobs={len(self._blobs)}, nets={self.nets()})"
