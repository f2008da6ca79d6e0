"""TreeRender: Box-drawing tree renderer for trace output.

Used by ``Tick.to_trace()`` and ``Model.to_trace()`` to print the
computation graph the way it was evaluated:

.. code-block:: text

    ───median(min_sources:2, pair:BTC/USD, price:100.5, time:...)
       ├──origin(origin:coinbase, pair:BTC/USD, price:100, time:...)
       └──origin(origin:kraken, pair:BTC/USD, price:101, time:...)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

RESET = "\033[0m"
RED = "\033[31m"
GREEN = "\033[32m"

FIRST = "┌──"
MIDDLE = "├──"
LAST = "└──"
VLINE = "│  "
HLINE = "───"
EMPTY = "   "


@dataclass
class NodeData:
    """Data for a single rendered node.

    :ivar name: Node label, usually the ``type`` meta field.
    :ivar params: Parameters printed inside the parentheses.
    :ivar children: Child items, rendered below the node.
    :ivar error: Optional error printed below the node in red.
    """

    name: str
    params: dict[str, Any] = field(default_factory=dict)
    children: Sequence[Any] = field(default_factory=list)
    error: Exception | None = None


def color(text: str, code: str) -> str:
    """Wrap every line of text in the given ANSI escape code."""
    return code + text.replace("\n", "\n" + RESET + code) + RESET


def _prepend_lines(text: str, first: str, rest: str) -> str:
    return first + text.rstrip("\n").replace("\n", "\n" + rest)


def _render_node(name: str, params: dict[str, Any], error: Exception | None) -> str:
    parts = [color(name, RED) if error is not None else name, "("]
    parts.append(
        ", ".join(f"{color(key, GREEN)}:{params[key]}" for key in sorted(params))
    )
    parts.append(")")
    if error is not None:
        parts.append("\n")
        parts.append(color(f"Error: {str(error).strip()}", RED))
    return "".join(parts)


def render_tree(
    callback: Callable[[Any], NodeData], items: Sequence[Any], level: int = 0
) -> str:
    """Render a tree of items.

    :param callback: Converts an item into the NodeData to render.
    :param items: Items at the current level.
    :param level: Recursion depth, callers should leave it at 0.
    :returns: Rendered tree, newline terminated.
    """
    out: list[str] = []
    for i, item in enumerate(items):
        data = callback(item)
        is_first = i == 0
        is_last = i == len(items) - 1
        has_children = len(data.children) > 0

        if level == 0 and is_first and is_last:
            first_prefix = color(HLINE, GREEN)
        elif level == 0 and is_first:
            first_prefix = color(FIRST, GREEN)
        elif is_last:
            first_prefix = color(LAST, GREEN)
        else:
            first_prefix = color(MIDDLE, GREEN)

        if is_last:
            rest_prefix = EMPTY + (VLINE if has_children else EMPTY)
        else:
            rest_prefix = VLINE + (VLINE if has_children else EMPTY)
        rest_prefix = color(rest_prefix, GREEN)

        node = _render_node(data.name, data.params, data.error)
        out.append(_prepend_lines(node, first_prefix, rest_prefix))
        out.append("\n")

        if has_children:
            subtree = render_tree(callback, data.children, level + 1)
            if is_last:
                subtree = _prepend_lines(subtree, EMPTY, EMPTY)
            else:
                subtree = _prepend_lines(subtree, color(VLINE, GREEN), color(VLINE, GREEN))
            out.append(subtree)
            out.append("\n")
    return "".join(out)
