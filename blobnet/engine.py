from __future__ import annotations

from typing import TYPE_CHECKING, Hashable, Optional
from warnings import warn

import numpy as np

from blobnet.ops import get_schema
from blobnet.proto import NetDef, OperatorDef
from blobnet.tensor import Tensor, dtype2tensor_type

if TYPE_CHECKING:
    from blobnet.workspace import Workspace


def check_op(op: OperatorDef) -> None:
    schema = get_schema(op.type)
    schema.check_arity(len(op.input), len(op.output))


def infer_shapes(
    net_def: NetDef, known_shapes: dict[str, tuple[int, ...]]
) -> dict[str, tuple[int, ...]]:
    """
    Walks the net in declaration order and propagates shapes.

    Ops whose input shapes are not all known are skipped, and so are the
    blobs they write. Inconsistent shapes raise a `ValueError` naming the
    op that failed.
    """
    shapes = dict(known_shapes)

    for index, op in enumerate(net_def.op):
        schema = get_schema(op.type)

        if schema.infer_shape is None:
            for out in op.output:
                shapes.pop(out, None)
            continue

        if not all(name in shapes for name in op.input):
            for out in op.output:
                shapes.pop(out, None)
            continue

        in_shapes = [shapes[name] for name in op.input]
        try:
            out_shapes = schema.infer_shape(in_shapes, op.kwargs, len(op.output))
        except ValueError as e:
            raise ValueError(
                f"Shape inference failed for op #{index} ({op.type}) in net {net_def.name!r}: {e}"
            ) from e

        for out, shape in zip(op.output, out_shapes):
            shapes[out] = tuple(shape)

    return shapes


class Net:
    def __init__(self, net_def: NetDef, workspace: Workspace):
        self.net_def = net_def.copy()
        self.workspace = workspace
        self._schemas = [get_schema(op.type) for op in self.net_def.op]

    @property
    def name(self) -> str:
        return self.net_def.name

    @property
    def num_ops(self) -> int:
        return len(self.net_def.op)

    def run(self) -> None:
        for index, (op, schema) in enumerate(zip(self.net_def.op, self._schemas)):
            forward_input_tensor = [
                self.workspace.get_blob(in_id).get(Tensor).data for in_id in op.input
            ]

            try:
                results = schema.kernel(
                    tuple(forward_input_tensor), op.kwargs, self.workspace.rng
                )
            except Exception as e:
                raise RuntimeError(
                    f"Error on executor, op #{index} ({op.type}) in net {self.name!r}: {e}"
                ) from e

            if len(results) < len(op.output):
                raise RuntimeError(
                    f"Op {op.type} produced {len(results)} outputs, {len(op.output)} declared"
                )

            for out_id, result in zip(op.output, results):
                _write_output(self.workspace, out_id, result)

    def __repr__(self) -> str:
        return f"Net(name={self.name!r}, num_ops={self.num_ops})"


def _write_output(workspace: Workspace, name: Hashable, result: np.ndarray) -> None:
    result = np.asarray(result)
    tensor = workspace.create_blob(name).get_mutable(Tensor)
    tensor.resize(result.shape)
    tensor.mutable_data(dtype2tensor_type(result.dtype))
    tensor.copy_from(result)


def create_net(net_def: NetDef, workspace: Workspace, verbose: Optional[bool] = None) -> Net:
    for op in net_def.op:
        check_op(op)

    known_shapes = {
        name: blob.get(Tensor).shape
        for name, blob in workspace.blob_items()
        if blob.is_type(Tensor)
    }
    shapes = infer_shapes(net_def, known_shapes)

    produced = {out for op in net_def.op for out in op.output}
    for op in net_def.op:
        for name in op.input:
            if name not in produced and not workspace.has_blob(name):
                warn(
                    f"Input {name!r} of op {op.type} is neither in the workspace nor produced by net {net_def.name!r}"
                )

    if verbose is None:
        verbose = workspace.verbose
    if verbose:
        print(
            f"[Net] Created net {net_def.name!r} with {len(net_def.op)} ops "
            f"({sum(op.is_gradient_op for op in net_def.op)} gradient ops, "
            f"{len(set(shapes) - set(known_shapes))} new blob shapes inferred)"
        )

    return Net(net_def, workspace)
