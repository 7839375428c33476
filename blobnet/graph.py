import graphviz

from blobnet.proto import NetDef


def net_to_dot(net_def: NetDef) -> graphviz.Digraph:
    """
    Builds the graphviz description of a net: blobs as ellipses, operators
    as boxes (gradient operators shaded), edges following data flow.
    """
    dot = graphviz.Digraph(comment=net_def.name or "net")
    dot.attr(rankdir="TB")  # Top-to-Bottom layout

    added_blobs = set()

    def blob_node(name: str) -> str:
        node_id = f"blob_{name}"
        if node_id not in added_blobs:
            added_blobs.add(node_id)
            dot.node(node_id, label=name, shape="ellipse")
        return node_id

    for index, op in enumerate(net_def.op):
        op_id = f"op_{index}"
        label = f"#{index} {op.type}"
        if op.arg:
            label += "\\n" + "\\n".join(f"{a.name}={a.value}" for a in op.arg)

        if op.is_gradient_op:
            dot.node(op_id, label=label, shape="box", style="filled", fillcolor="lightgrey")
        else:
            dot.node(op_id, label=label, shape="box")

        for name in op.input:
            dot.edge(blob_node(name), op_id)
        for name in op.output:
            dot.edge(op_id, blob_node(name))

    return dot


def visualize_net(
    net_def: NetDef,
    filename: str = "net.gv",
    view: bool = False,
    format: str = "png",
) -> str:
    """
    Renders a net with Graphviz.

    Args:
        net_def (NetDef): The net to draw.
        filename (str): The base name for the output file.
        view (bool): If True, try to open the rendered graph automatically.
        format (str): The output format (e.g., 'png', 'svg', 'pdf').

    Requires the Graphviz system library (`dot`) on the PATH. Returns the
    path of the rendered file.
    """
    dot = net_to_dot(net_def)
    rendered_path = dot.render(filename, view=view, format=format, cleanup=True)
    print(f"[Graph] Net {net_def.name!r} saved to {rendered_path}")
    return rendered_path
