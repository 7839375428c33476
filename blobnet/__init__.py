from .tensor import Tensor, Type  # Make the core types directly importable from blobnet
from .proto import Argument, NetDef, OperatorDef, make_op
from .workspace import Blob, Workspace
from .engine import Net, create_net
from .backward import add_gradient_operators, get_gradient_for_op
from .model import ModelHelper

__all__ = [
    "Tensor",
    "Type",
    "Argument",
    "NetDef",
    "OperatorDef",
    "make_op",
    "Blob",
    "Workspace",
    "Net",
    "create_net",
    "add_gradient_operators",
    "get_gradient_for_op",
    "ModelHelper",
]
