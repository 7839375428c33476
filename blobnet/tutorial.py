"""
The intro tutorial: feed random data into a workspace, build an init net
and a FC -> Sigmoid -> SoftmaxWithLoss net with its gradients, then run
the training net over refreshed batches and print the final softmax and
loss.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np

from blobnet.config import TutorialConfig
from blobnet.model import build_tutorial_model
from blobnet.optimizers import build_sgd
from blobnet.proto import NetDef
from blobnet.tensor import Tensor, Type, format_tensor
from blobnet.workspace import Workspace


@dataclass
class TutorialResult:
    workspace: Workspace
    init_net: NetDef
    train_net: NetDef
    softmax: np.ndarray
    loss: np.ndarray
    # loss after each outer iteration
    losses: list[float] = field(default_factory=list)


def random_inputs(
    rng: np.random.Generator, config: TutorialConfig
) -> tuple[np.ndarray, np.ndarray]:
    data = rng.random((config.batch_size, config.input_dim), dtype=np.float32)
    label = (rng.random(config.batch_size) * config.num_classes).astype(np.int32)
    return data, label


def feed_inputs(workspace: Workspace, data: np.ndarray, label: np.ndarray) -> None:
    workspace.feed_blob("data", data, dtype=Type.FLOAT32)
    workspace.feed_blob("label", label, dtype=Type.INT32)


def print_blob(workspace: Workspace, name: str, out: Callable[[str], None] = print) -> None:
    out(format_tensor(name, workspace.get_blob(name).get(Tensor)))


def run_tutorial(
    config: Optional[TutorialConfig] = None,
    workspace: Optional[Workspace] = None,
    out: Callable[[str], None] = print,
) -> TutorialResult:
    """
    Runs the intro tutorial and returns its final state.

    A caller-supplied `workspace` keeps its own random generator and
    verbosity, so `config.seed` must be left unset in that case and
    `config.verbose` only controls the per-step loss lines.
    """
    config = (config or TutorialConfig()).validate()
    if workspace is not None and config.seed is not None:
        raise ValueError("config.seed cannot be applied to a caller-supplied workspace, seed the Workspace instead")
    if workspace is None:
        workspace = Workspace(seed=config.seed, verbose=config.verbose)
    rng = workspace.rng

    out("")
    out("## Intro Tutorial ##")
    out("")

    # feed and fetch back a blob
    x = rng.random((4, 3, 2), dtype=np.float32)
    out(f"x (shape={x.shape}):\n{x}")
    workspace.feed_blob("my_x", x)
    print_blob(workspace, "my_x", out)

    data, label = random_inputs(rng, config)
    feed_inputs(workspace, data, label)

    m = build_tutorial_model(
        name=config.model_name,
        input_dim=config.input_dim,
        num_classes=config.num_classes,
    )
    if config.learning_rate is not None:
        build_sgd(m, config.learning_rate)

    if config.print_nets:
        out("")
        out(str(m.Proto()))
        out("")
        out(str(m.InitProto()))

    workspace.run_net_once(m.param_init_net)
    workspace.create_net(m.net, overwrite=True)

    losses = []
    for step in range(config.outer_iterations):
        data, label = random_inputs(rng, config)
        feed_inputs(workspace, data, label)

        workspace.run_net(m.name, config.inner_runs)

        loss = float(workspace.fetch_blob("loss"))
        losses.append(loss)
        if config.verbose:
            out(f"step: {step} loss: {loss:.6f}")

    out("")
    print_blob(workspace, "softmax", out)
    out("")
    print_blob(workspace, "loss", out)

    return TutorialResult(
        workspace=workspace,
        init_net=m.param_init_net,
        train_net=m.net,
        softmax=workspace.fetch_blob("softmax"),
        loss=workspace.fetch_blob("loss"),
        losses=losses,
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="blobnet",
        description="Run the intro tutorial: init net once, then the training net over random batches.",
    )
    p.add_argument("--seed", type=int, default=None, help="Seed of the workspace random generator")
    p.add_argument("--outer-iterations", type=int, default=None, help="Number of data refreshes (default 100)")
    p.add_argument("--inner-runs", type=int, default=None, help="Net runs per refresh (default 10)")
    p.add_argument("--batch-size", type=int, default=None, help="Rows per batch (default 16)")
    p.add_argument(
        "--learning-rate",
        type=float,
        default=None,
        help="Apply SGD updates with this rate (default: gradients are computed only)",
    )
    p.add_argument("--print-nets", action="store_true", help="Print both net definitions")
    p.add_argument("--verbose", action="store_true", help="Print workspace/net events and per-step loss")
    p.add_argument("--graph", default=None, metavar="FILE", help="Render the training net with Graphviz to FILE")
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = TutorialConfig().with_overrides(
        seed=args.seed,
        outer_iterations=args.outer_iterations,
        inner_runs=args.inner_runs,
        batch_size=args.batch_size,
        learning_rate=args.learning_rate,
        print_nets=args.print_nets or None,
        verbose=args.verbose or None,
    )
    result = run_tutorial(config)

    if args.graph:
        from blobnet.graph import visualize_net

        visualize_net(result.train_net, filename=args.graph)
    return 0
