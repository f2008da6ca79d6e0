"""Model: Structure of a price model, without prices."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .Pair import Pair
from .Tick import meta_to_json
from .TreeRender import NodeData, render_tree


@dataclass
class Model:
    """A node of a price model and the models it is computed from.

    :ivar pair: Pair the node returns a price for.
    :ivar meta: Node type and parameters.
    :ivar models: Sub models, one per branch.
    """

    pair: Pair
    meta: dict[str, Any] = field(default_factory=dict)
    models: list[Model] = field(default_factory=list)

    def to_plain(self) -> str:
        return str(self.pair)

    def to_json(self) -> dict[str, Any]:
        return {
            "pair": str(self.pair),
            "meta": meta_to_json(self.meta),
            "models": [m.to_json() for m in self.models],
        }

    def to_trace(self) -> str:
        """Render the model as a tree."""
        return render_tree(_model_node_data, [self])


def _model_node_data(model: Model) -> NodeData:
    params = dict(model.meta)
    name = params.pop("type", "node")
    params["pair"] = model.pair
    return NodeData(name=str(name), params=params, children=model.models)
