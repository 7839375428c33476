from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class Argument:
    name: str
    value: Any

    def _text_lines(self) -> list[str]:
        lines = [f'name: "{self.name}"']
        if isinstance(self.value, bool):
            lines.append(f"i: {int(self.value)}")
        elif isinstance(self.value, int):
            lines.append(f"i: {self.value}")
        elif isinstance(self.value, float):
            lines.append(f"f: {self.value}")
        elif isinstance(self.value, str):
            lines.append(f's: "{self.value}"')
        elif isinstance(self.value, (list, tuple)):
            for item in self.value:
                if isinstance(item, float):
                    lines.append(f"floats: {item}")
                else:
                    lines.append(f"ints: {item}")
        else:
            raise TypeError(f"Unsupported argument type for {self.name!r}: {type(self.value)}")
        return lines


@dataclass
class OperatorDef:
    type: str
    input: list[str] = field(default_factory=list)
    output: list[str] = field(default_factory=list)
    arg: list[Argument] = field(default_factory=list)
    name: str = ""
    is_gradient_op: bool = False

    def has_arg(self, name: str) -> bool:
        return any(a.name == name for a in self.arg)

    def get_arg(self, name: str, default: Any = None) -> Any:
        for a in self.arg:
            if a.name == name:
                return a.value
        return default

    @property
    def kwargs(self) -> dict[str, Any]:
        return {a.name: a.value for a in self.arg}

    def copy(self) -> OperatorDef:
        return deepcopy(self)

    def _text_lines(self) -> list[str]:
        lines = []
        lines.extend(f'input: "{i}"' for i in self.input)
        lines.extend(f'output: "{o}"' for o in self.output)
        if self.name:
            lines.append(f'name: "{self.name}"')
        lines.append(f'type: "{self.type}"')
        for a in self.arg:
            lines.append("arg {")
            lines.extend(f"  {line}" for line in a._text_lines())
            lines.append("}")
        if self.is_gradient_op:
            lines.append("is_gradient_op: true")
        return lines

    def __str__(self) -> str:
        return "\n".join(self._text_lines())


def make_op(
    op_type: str,
    inputs: Optional[list[str] | tuple[str, ...]] = None,
    outputs: Optional[list[str] | tuple[str, ...]] = None,
    name: str = "",
    is_gradient_op: bool = False,
    **kwargs: Any,
) -> OperatorDef:
    return OperatorDef(
        type=op_type,
        input=list(inputs or []),
        output=list(outputs or []),
        arg=[Argument(k, v) for k, v in kwargs.items()],
        name=name,
        is_gradient_op=is_gradient_op,
    )


@dataclass
class NetDef:
    name: str = ""
    op: list[OperatorDef] = field(default_factory=list)
    external_input: list[str] = field(default_factory=list)
    external_output: list[str] = field(default_factory=list)

    def add_op(self, op: OperatorDef) -> OperatorDef:
        self.op.append(op)
        return op

    def copy(self) -> NetDef:
        return deepcopy(self)

    def __len__(self) -> int:
        return len(self.op)

    def __str__(self) -> str:
        lines = [f'name: "{self.name}"']
        for op in self.op:
            lines.append("op {")
            lines.extend(f"  {line}" for line in op._text_lines())
            lines.append("}")
        lines.extend(f'external_input: "{i}"' for i in self.external_input)
        lines.extend(f'external_output: "{o}"' for o in self.external_output)
        return "\n".join(lines)
