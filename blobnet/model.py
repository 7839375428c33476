from typing import Any, Iterable, Optional

from blobnet.backward import add_gradient_operators
from blobnet.ops import get_schema, is_registered
from blobnet.proto import NetDef, OperatorDef, make_op


class ModelHelper:
    """
    Builds the two nets of a model: `param_init_net` fills the parameters
    once, `net` holds the forward (and later backward) pass.
    """

    def __init__(self, name: str = "model"):
        self.name = name
        self.param_init_net = NetDef(name=f"{name}_init")
        self.net = NetDef(name=name)
        self.params: list[str] = []
        self.param_to_grad: dict[str, str] = {}
        self.grad_map: dict[str, str] = {}

    def add_operator(
        self,
        net: NetDef,
        op_type: str,
        inputs: Optional[Iterable[str]] = None,
        outputs: Optional[Iterable[str]] = None,
        **kwargs: Any,
    ) -> OperatorDef:
        inputs = list(inputs or [])
        outputs = list(outputs or [])

        if not is_registered(op_type):
            raise NotImplementedError(f"Op {op_type!r} is not registered, cannot add it to net {net.name!r}")
        get_schema(op_type).check_arity(len(inputs), len(outputs))

        # blobs read before any op of this net writes them come from outside
        produced = {out for op in net.op for out in op.output}
        for name in inputs:
            if name not in produced and name not in net.external_input:
                net.external_input.append(name)

        return net.add_op(make_op(op_type, inputs, outputs, **kwargs))

    # parameter initializers

    def _param_fill(self, op_type: str, output: str, shape, **kwargs) -> str:
        self.add_operator(self.param_init_net, op_type, [], [output], shape=list(shape), **kwargs)
        if output not in self.params:
            self.params.append(output)
        if output not in self.param_init_net.external_output:
            self.param_init_net.external_output.append(output)
        return output

    def XavierFill(self, output: str, shape) -> str:
        return self._param_fill("XavierFill", output, shape)

    def ConstantFill(self, output: str, shape, value: float = 0.0) -> str:
        return self._param_fill("ConstantFill", output, shape, value=value)

    def GaussianFill(self, output: str, shape, mean: float = 0.0, std: float = 1.0) -> str:
        return self._param_fill("GaussianFill", output, shape, mean=mean, std=std)

    # layers

    def FC(self, inputs: list[str], output: str, axis: int = 1) -> str:
        kwargs = {} if axis == 1 else {"axis": axis}
        self.add_operator(self.net, "FC", inputs, [output], **kwargs)
        return output

    def Sigmoid(self, input: str, output: str) -> str:
        self.add_operator(self.net, "Sigmoid", [input], [output])
        return output

    def Relu(self, input: str, output: str) -> str:
        self.add_operator(self.net, "Relu", [input], [output])
        return output

    def SoftmaxWithLoss(
        self, inputs: list[str], outputs: list[str], scale: Optional[float] = None
    ) -> list[str]:
        kwargs = {} if scale is None else {"scale": scale}
        self.add_operator(self.net, "SoftmaxWithLoss", inputs, outputs, **kwargs)
        return outputs

    def AddGradientOperators(self, losses: str | Iterable[str]) -> dict[str, str]:
        self.grad_map = add_gradient_operators(self.net, losses)
        self.param_to_grad = {
            param: self.grad_map[param] for param in self.params if param in self.grad_map
        }
        return self.grad_map

    def Proto(self) -> NetDef:
        return self.net

    def InitProto(self) -> NetDef:
        return self.param_init_net


def build_tutorial_model(
    name: str = "my first net",
    input_dim: int = 100,
    num_classes: int = 10,
    with_gradients: bool = True,
) -> ModelHelper:
    """
    data -> FC -> Sigmoid -> SoftmaxWithLoss, with `fc_w`/`fc_b` filled by
    the init net.
    """
    m = ModelHelper(name=name)

    m.XavierFill("fc_w", shape=[num_classes, input_dim])
    m.ConstantFill("fc_b", shape=[num_classes])

    fc_1 = m.FC(["data", "fc_w", "fc_b"], "fc1")
    pred = m.Sigmoid(fc_1, "pred")
    softmax, loss = m.SoftmaxWithLoss([pred, "label"], ["softmax", "loss"])

    if with_gradients:
        m.AddGradientOperators([loss])

    return m
