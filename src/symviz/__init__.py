from enum import Enum
from colour import Color
import graphviz
from pyvis.network import Network
from IPython.display import display, HTML
import json
import logging
import re

log = logging.getLogger(__name__)

_COLORS = {
    "data": "#8dd3c7",
    "FullyConnected": "#fb8072",
    "Convolution": "#fb8072",
    "LeakyReLU": "#ffffb3",
    "Activation": "#ffffb3",
    "BatchNorm": "#bebada",
    "Pooling": "#80b1d3",
    "Flatten": "#fdb462",
    "Reshape": "#fdb462",
    "Concat": "#fdb462",
    "MakeLoss": "#fccde5",
}
_DEFAULT_COLOR = "#fccde5"

_OVAL_OPS = {"data", "Pooling", "Flatten", "Reshape", "Concat"}

# Graphviz and vis.js both call an oval an ellipse.
_BACKEND_SHAPES = {"oval": "ellipse", "box": "box"}

_SCREEN_DPI = 96
_UNBOUNDED_IN = 1000


class StrEnum(str, Enum):
    """Equivalent to :class:`enum.StrEnum` from Python 3.11."""

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"'{str(self)}'"


class Direction(StrEnum):
    TD = "TD"
    LR = "LR"


class Backend(StrEnum):
    graph = "graph"
    vis = "vis"


class ConfigurationError(ValueError):
    """Raised for render options outside their documented values."""


def _enum_option(enum_cls, value, option: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(repr(m.value) for m in enum_cls)
        raise ConfigurationError(
            f"Invalid {option} {value!r}; expected one of {allowed}"
        ) from None


def get_color(op: str) -> str:
    """Fill color for an operator type."""
    return _COLORS.get(op, _DEFAULT_COLOR)


def get_shape(op: str) -> str:
    """Node shape ("oval" or "box") for an operator type."""
    return "oval" if op in _OVAL_OPS else "box"


def classify(op: str) -> tuple[str, str]:
    """Return the (color, shape) pair used to draw a node of type ``op``."""
    return get_color(op), get_shape(op)


def _symbol_json(symbol):
    if isinstance(symbol, dict):
        return symbol
    if isinstance(symbol, (str, bytes)):
        return json.loads(symbol)
    for method in ("tojson", "as_json"):
        fn = getattr(symbol, method, None)
        if callable(fn):
            return json.loads(fn())
    raise TypeError(
        f"Cannot read a graph from {type(symbol).__name__}; "
        "expected a JSON string, a dict or a symbol with tojson()"
    )


def _producer(entry):
    if isinstance(entry, (list, tuple)):
        return int(entry[0])
    return int(entry)


def load_symbol(symbol):
    """Decode a symbol into node records and its head list.

    Node ids follow decode order, starting at 0. Only the producer id of
    each input entry is kept.
    """
    model = _symbol_json(symbol)
    nodes = []
    for idx, raw in enumerate(model["nodes"]):
        attrs = raw.get("attrs") or raw.get("attr") or raw.get("param") or {}
        nodes.append(
            {
                "id": idx,
                "op": raw["op"],
                "name": raw["name"],
                "attrs": dict(attrs),
                "inputs": [_producer(e) for e in raw.get("inputs") or []],
            }
        )
    heads = model.get("heads") or []
    log.debug("Decoded %d nodes, %d heads", len(nodes), len(heads))
    return nodes, heads


def promote_heads(nodes, heads):
    """Give placeholder output nodes their own name as operator type.

    Every id in the first head entry counts as an output, so a head of
    ``[[k, 0, 0]]`` also draws the input variable with id 0.
    """
    if not heads:
        return nodes
    first = heads[0]
    head_ids = {int(h) for h in (first if isinstance(first, (list, tuple)) else heads)}
    for n in nodes:
        if n["id"] in head_ids and n["op"] == "null":
            n["op"] = n["name"]
    return nodes


def _field(value):
    return "" if value is None else str(value)


def _tuple_str(value):
    if value is None:
        return ""
    return "X".join(re.findall(r"\d+", str(value)))


def build_label(node) -> str:
    """Multi-line node label: op, name, then the layer hyper-parameters."""
    attrs = node.get("attrs") or {}
    label = "".join(
        [
            node["op"],
            "\n",
            node["name"],
            "\n",
            _field(attrs.get("num_hidden")),
            _field(attrs.get("act_type")),
            _field(attrs.get("pool_type")),
            _tuple_str(attrs.get("kernel")),
            " / ",
            _tuple_str(attrs.get("stride")),
            ", ",
            _field(attrs.get("num_filter")),
        ]
    )
    # drop decorations left dangling by missing trailing fields
    label = re.sub(r"[\W_]+$", "", label)
    return label.strip()


def filter_nodes(nodes):
    """Split off placeholder nodes and number the rest 1..N."""
    visible = [n for n in nodes if n["op"] != "null"]
    id_remap = {n["id"]: rank for rank, n in enumerate(visible, start=1)}
    return visible, id_remap


def _shape_kwargs(shape):
    if isinstance(shape, dict):
        return dict(shape)
    if isinstance(shape, int):
        shape = (shape,)
    return {"data": tuple(shape)}


def infer_edge_labels(symbol, shape):
    """Map each internal output name to its inferred dims, joined with "x"."""
    if shape is None:
        return None
    get_internals = getattr(symbol, "get_internals", None)
    if not callable(get_internals):
        log.warning(
            "Shape %r given but %s cannot infer shapes; edges stay unlabelled",
            shape,
            type(symbol).__name__,
        )
        return None
    internals = get_internals()
    _, out_shapes, _ = internals.infer_shape(**_shape_kwargs(shape))
    if out_shapes is None:
        log.debug("Shape inference incomplete for %r", shape)
        return None
    labels = {}
    for name, dims in zip(internals.list_outputs(), out_shapes):
        if name == "data":
            name = "data_output"
        labels[name] = "x".join(str(d) for d in dims)
    return labels


def resolve_edges(nodes, id_remap, labels=None):
    """Edges between visible nodes, in display ids."""
    names = {n["id"]: n["name"] for n in nodes}
    edges = []
    for n in nodes:
        if n["id"] not in id_remap or not n["inputs"]:
            continue
        for src in dict.fromkeys(n["inputs"]):
            if src not in id_remap:
                continue
            label = None
            if labels:
                label = labels.get(f"{names[src]}_output")
            edges.append(
                {"from": id_remap[src], "to": id_remap[n["id"]], "label": label}
            )
    return edges


def build_graph(symbol, shape=None):
    """Run the whole translation and return (display_nodes, edges)."""
    nodes, heads = load_symbol(symbol)
    promote_heads(nodes, heads)
    visible, id_remap = filter_nodes(nodes)
    display_nodes = []
    for n in visible:
        color, shape_tag = classify(n["op"])
        display_nodes.append(
            {
                "id": id_remap[n["id"]],
                "label": build_label(n),
                "shape": shape_tag,
                "color": color,
            }
        )
    edges = resolve_edges(nodes, id_remap, infer_edge_labels(symbol, shape))
    log.debug(
        "Built graph: %d visible of %d nodes, %d edges",
        len(display_nodes),
        len(nodes),
        len(edges),
    )
    return display_nodes, edges


def _fill(color):
    return Color(color).hex_l


def _inches(px):
    return _UNBOUNDED_IN if px is None else round(px / _SCREEN_DPI, 2)


def _render_graphviz(nodes, edges, direction, width, height):
    graph_attr = {
        "layout": "dot",
        "rankdir": "TB" if direction == Direction.TD else "LR",
    }
    if width is not None or height is not None:
        graph_attr["dpi"] = str(_SCREEN_DPI)
        graph_attr["size"] = f"{_inches(width)},{_inches(height)}"
    dot = graphviz.Digraph(graph_attr=graph_attr)
    for n in nodes:
        fill = _fill(n["color"])
        dot.node(
            str(n["id"]),
            label=n["label"].replace("\n", "\\n"),
            shape=_BACKEND_SHAPES[n["shape"]],
            style="filled",
            penwidth="2",
            color=fill,
            fillcolor=fill,
            fontcolor="black",
        )
    for e in edges:
        attrs = {"color": "black", "fontcolor": "black"}
        if e.get("label"):
            attrs["label"] = e["label"]
        dot.edge(str(e["from"]), str(e["to"]), **attrs)
    return dot


def _render_vis(nodes, edges, direction, width, height):
    net = Network(
        height=f"{height}px" if height is not None else "600px",
        width=f"{width}px" if width is not None else "100%",
        directed=True,
        font_color="black",
        cdn_resources="remote",
    )
    for n in nodes:
        fill = _fill(n["color"])
        net.add_node(
            n["id"],
            label=n["label"],
            shape=_BACKEND_SHAPES[n["shape"]],
            color=fill,
            borderWidth=2,
        )
    for e in edges:
        attrs = {"arrows": "to", "color": "black"}
        if e.get("label"):
            attrs["label"] = e["label"]
        net.add_edge(e["from"], e["to"], **attrs)
    net.set_options(
        json.dumps(
            {
                "layout": {
                    "hierarchical": {
                        "enabled": True,
                        "direction": "UD" if direction == Direction.TD else "LR",
                        "sortMethod": "directed",
                    }
                }
            }
        )
    )
    return net


_RENDERERS = {
    Backend.graph: _render_graphviz,
    Backend.vis: _render_vis,
}


def render_graph(
    nodes, edges, direction="TD", backend="graph", width=None, height=None
):
    """Draw display nodes and edges with the chosen backend.

    ``backend="graph"`` returns a :class:`graphviz.Digraph`, ``backend="vis"``
    a :class:`pyvis.network.Network` with a hierarchical layout. Width and
    height are in pixels.
    """
    direction = _enum_option(Direction, direction, "direction")
    backend = _enum_option(Backend, backend, "backend")
    log.debug(
        "Rendering %d nodes, %d edges with %s backend", len(nodes), len(edges), backend
    )
    return _RENDERERS[backend](nodes, edges, direction, width, height)


def visualize(
    symbol, shape=None, direction="TD", backend="graph", width=None, height=None
):
    """Convert a symbol to a Graphviz or vis.js graph ready for display.

    ``shape`` is the input shape (of the input named "data") or a mapping of
    input name to shape; when given, edges are labelled with the inferred
    output dims of their source node.
    """
    nodes, edges = build_graph(symbol, shape)
    return render_graph(
        nodes, edges, direction=direction, backend=backend, width=width, height=height
    )


def show_graph(handle):
    """Display a rendered graph in a notebook."""
    if isinstance(handle, Network):
        html = HTML(handle.generate_html())
        display(html)
        return html
    display(handle)
    return handle


__all__ = [
    "Backend",
    "ConfigurationError",
    "Direction",
    "build_graph",
    "build_label",
    "classify",
    "filter_nodes",
    "get_color",
    "get_shape",
    "infer_edge_labels",
    "load_symbol",
    "promote_heads",
    "render_graph",
    "resolve_edges",
    "show_graph",
    "visualize",
]
