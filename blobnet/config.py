"""Run settings for the intro tutorial driver."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class TutorialConfig:
    batch_size: int = 16
    input_dim: int = 100
    num_classes: int = 10
    # 100 refeeds x 10 runs each
    outer_iterations: int = 100
    inner_runs: int = 10
    seed: Optional[int] = None
    # None: gradients are computed but never applied
    learning_rate: Optional[float] = None
    model_name: str = "my first net"
    print_nets: bool = False
    verbose: bool = False

    def validate(self) -> TutorialConfig:
        for field_name in ("batch_size", "input_dim", "num_classes", "outer_iterations", "inner_runs"):
            value = getattr(self, field_name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"{field_name} must be a positive int, got {value!r}")

        if self.learning_rate is not None and self.learning_rate <= 0:
            raise ValueError(f"learning_rate must be positive, got {self.learning_rate}")
        return self

    def with_overrides(self, **overrides) -> TutorialConfig:
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
