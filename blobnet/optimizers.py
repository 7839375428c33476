from blobnet.model import ModelHelper


class SGD:
    """
    Plain gradient descent expressed as operators:
    `param = 1.0 * param + (-lr) * grad`, one `WeightedSum` per parameter.
    """

    def __init__(self, learning_rate: float = 0.01):
        if learning_rate <= 0:
            raise ValueError(f"Learning rate must be positive, got {learning_rate}")
        self.lr = learning_rate

    def build(self, model: ModelHelper) -> list[str]:
        if not model.param_to_grad:
            raise ValueError(
                f"Model {model.name!r} has no parameter gradients, call AddGradientOperators first"
            )

        one = "ONE"
        lr = f"{model.name}_lr"
        model.add_operator(model.param_init_net, "ConstantFill", [], [one], shape=[1], value=1.0)
        model.add_operator(
            model.param_init_net, "ConstantFill", [], [lr], shape=[1], value=-self.lr
        )

        updated = []
        for param, grad in model.param_to_grad.items():
            model.add_operator(model.net, "WeightedSum", [param, one, grad, lr], [param])
            updated.append(param)
        return updated


def build_sgd(model: ModelHelper, base_learning_rate: float) -> list[str]:
    return SGD(learning_rate=base_learning_rate).build(model)
