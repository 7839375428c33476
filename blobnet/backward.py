from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional
from warnings import warn

from .proto import NetDef, OperatorDef, make_op


@dataclass
class GradientWrapper:
    dense: Optional[str] = None

    def is_empty(self) -> bool:
        return self.dense is None


@dataclass
class GradientOpsMeta:
    ops: list[OperatorDef] = field(default_factory=list)
    # gradient blob for each forward input, None when the input gets none
    g_input: list[Optional[str]] = field(default_factory=list)


GradientMaker = Callable[[OperatorDef, list[GradientWrapper]], GradientOpsMeta]

NO_GRADIENT = object()

GRADIENT_REGISTRY: dict[str, GradientMaker | object] = {}


def register_gradient(op_type: str):
    def decorator(maker: GradientMaker) -> GradientMaker:
        GRADIENT_REGISTRY[op_type] = maker
        return maker

    return decorator


def no_gradient(*op_types: str) -> None:
    for op_type in op_types:
        GRADIENT_REGISTRY[op_type] = NO_GRADIENT


def _lookup_maker(op_type: str):
    try:
        return GRADIENT_REGISTRY[op_type]
    except KeyError:
        raise NotImplementedError(
            f"No gradient registered for op {op_type!r}, it cannot be differentiated"
        )


def _go(op_def: OperatorDef, g_output: list[GradientWrapper], i: int) -> str:
    if g_output[i].is_empty():
        raise ValueError(
            f"Op {op_def.type} needs the gradient of output {op_def.output[i]!r}, none was given"
        )
    return g_output[i].dense


def _gi(op_def: OperatorDef, i: int) -> str:
    return f"{op_def.input[i]}_grad"


def get_gradient_for_op(
    op_def: OperatorDef, g_output: list[GradientWrapper]
) -> GradientOpsMeta:
    """
    Asks the gradient registry for the backward operators of `op_def`.

    `g_output` holds one wrapper per forward output naming the blob where
    the gradient of that output lives (empty when it gets no gradient).
    """
    maker = _lookup_maker(op_def.type)

    if len(g_output) != len(op_def.output):
        raise ValueError(
            f"Op {op_def.type} has {len(op_def.output)} outputs, got {len(g_output)} output gradients"
        )

    if maker is NO_GRADIENT:
        return GradientOpsMeta(ops=[], g_input=[None] * len(op_def.input))

    return maker(op_def, g_output)


def _forward_args(op_def: OperatorDef, *names: str) -> dict:
    return {name: op_def.get_arg(name) for name in names if op_def.has_arg(name)}


@register_gradient("FC")
def _grad_fc(op_def, g_output):
    outputs = [_gi(op_def, 1), _gi(op_def, 2), _gi(op_def, 0)]
    grad_op = make_op(
        "FCGradient",
        [op_def.input[0], op_def.input[1], _go(op_def, g_output, 0)],
        outputs,
        **_forward_args(op_def, "axis", "axis_w"),
    )
    return GradientOpsMeta(ops=[grad_op], g_input=[_gi(op_def, i) for i in range(3)])


@register_gradient("Sigmoid")
def _grad_sigmoid(op_def, g_output):
    grad_op = make_op(
        "SigmoidGradient",
        [op_def.output[0], _go(op_def, g_output, 0)],
        [_gi(op_def, 0)],
    )
    return GradientOpsMeta(ops=[grad_op], g_input=[_gi(op_def, 0)])


@register_gradient("Relu")
def _grad_relu(op_def, g_output):
    grad_op = make_op(
        "ReluGradient",
        [op_def.output[0], _go(op_def, g_output, 0)],
        [_gi(op_def, 0)],
    )
    return GradientOpsMeta(ops=[grad_op], g_input=[_gi(op_def, 0)])


@register_gradient("SoftmaxWithLoss")
def _grad_softmax_with_loss(op_def, g_output):
    if not g_output[0].is_empty():
        warn(
            f"Gradient {g_output[0].dense!r} flowing into {op_def.output[0]!r} is ignored by SoftmaxWithLoss"
        )

    inputs = list(op_def.input) + [op_def.output[0], _go(op_def, g_output, 1)]
    grad_op = make_op(
        "SoftmaxWithLossGradient",
        inputs,
        [_gi(op_def, 0)],
        **_forward_args(op_def, "scale"),
    )
    g_input = [_gi(op_def, 0)] + [None] * (len(op_def.input) - 1)
    return GradientOpsMeta(ops=[grad_op], g_input=g_input)


no_gradient("ConstantFill", "XavierFill", "UniformFill", "GaussianFill", "GivenTensorFill")


def _check_single_assignment(forward_ops: tuple[OperatorDef, ...], net_name: str) -> set[str]:
    produced: set[str] = set()
    for op in forward_ops:
        for out in op.output:
            if out in op.input or out in produced:
                raise ValueError(
                    f"Blob {out!r} is written more than once in net {net_name!r}, "
                    "gradients of rewritten blobs are not supported"
                )
            produced.add(out)
    return produced


def _find_writer(
    op_def: OperatorDef,
    grad_ops: list[OperatorDef],
    g_name: str,
    taken: list[tuple[OperatorDef, int]],
) -> tuple[OperatorDef, int]:
    for grad_op in grad_ops:
        for out_index, out_name in enumerate(grad_op.output):
            if out_name != g_name:
                continue
            if any(w is grad_op and i == out_index for w, i in taken):
                continue
            return grad_op, out_index
    raise ValueError(
        f"Gradient of op {op_def.type} names {g_name!r} but no backward operator writes it"
    )


def add_gradient_operators(net_def: NetDef, losses: str | Iterable[str]) -> dict[str, str]:
    """
    Appends the backward pass of `net_def` for the given loss blobs.

    One `ConstantFill` seeds `<loss>_grad` with 1.0 for every loss, then the
    forward operators are visited from last to first and every backward
    operator the registry returns is appended. A blob whose gradient comes
    from several backward operators gets its partial gradients renamed to
    `<blob>_grad_autosplit_<k>` and summed into `<blob>_grad`.

    Returns a map from forward blob to its gradient blob.
    """
    if isinstance(losses, str):
        losses = [losses]
    losses = list(losses)

    forward_ops = tuple(net_def.op)
    if any(op.is_gradient_op for op in forward_ops):
        raise ValueError(f"Net {net_def.name!r} already has gradient operators")

    produced = _check_single_assignment(forward_ops, net_def.name)
    for loss in losses:
        if loss not in produced:
            raise ValueError(f"Loss {loss!r} is not produced by net {net_def.name!r}")

    backward_ops: list[OperatorDef] = []
    grad_map: dict[str, str] = {}
    writers: dict[str, list[tuple[OperatorDef, int]]] = defaultdict(list)

    def finalize(blob: str) -> None:
        blob_writers = writers.pop(blob, [])
        if not blob_writers:
            return

        grad_name = f"{blob}_grad"
        if len(blob_writers) > 1:
            parts = []
            for k, (grad_op, out_index) in enumerate(blob_writers):
                part = f"{grad_name}_autosplit_{k}"
                grad_op.output[out_index] = part
                parts.append(part)
            backward_ops.append(make_op("Sum", parts, [grad_name], is_gradient_op=True))
        grad_map[blob] = grad_name

    for loss in losses:
        seed = make_op("ConstantFill", [loss], [f"{loss}_grad"], value=1.0, is_gradient_op=True)
        backward_ops.append(seed)
        writers[loss].append((seed, 0))

    for index in range(len(forward_ops) - 1, -1, -1):
        op = forward_ops[index]
        _lookup_maker(op.type)

        for out in op.output:
            finalize(out)

        g_output = [GradientWrapper(grad_map.get(out)) for out in op.output]
        if all(g.is_empty() for g in g_output):
            continue

        meta = get_gradient_for_op(op, g_output)
        for grad_op in meta.ops:
            grad_op.is_gradient_op = True
            backward_ops.append(grad_op)

        for in_name, g_name in zip(op.input, meta.g_input):
            if g_name is None:
                continue
            writers[in_name].append(_find_writer(op, meta.ops, g_name, writers[in_name]))

    # parameters and external inputs have no producer
    for blob in list(writers):
        finalize(blob)

    net_def.op.extend(backward_ops)
    return grad_map
