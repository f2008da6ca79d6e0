"""Provider: Named price models backed by computation graphs.

.. code-block:: python

    provider = Provider(models={"BTC/USD": btc_usd_root}, updater=Updater(origins))
    tick = await provider.tick("BTC/USD")
    tick.validate()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .Model import Model

if TYPE_CHECKING:
    from .graph import Node
    from .Tick import Tick
    from .Updater import Updater

logger = logging.getLogger(__name__)


class ModelNotFoundError(Exception):
    """Raised when a price model name is not configured."""

    def __init__(self, model: str) -> None:
        self.model = model
        super().__init__(f"model {model} not found")


class Provider:
    """Maps model names to graph roots.

    Reading ticks updates only the origin nodes of the requested models.

    :ivar graphs: Dict mapping model names to graph roots.
    :ivar updater: Updater used before reading ticks.
    """

    def __init__(self, models: dict[str, Node], updater: Updater) -> None:
        self.graphs = models
        self.updater = updater

    def model_names(self) -> list[str]:
        """Return sorted names of all models."""
        return sorted(self.graphs)

    def _nodes(self, names: tuple[str, ...]) -> dict[str, Node]:
        if not names:
            names = tuple(self.model_names())
        nodes = {}
        for name in names:
            if name not in self.graphs:
                raise ModelNotFoundError(name)
            nodes[name] = self.graphs[name]
        return nodes

    async def tick(self, name: str) -> Tick:
        """Update and return the tick of a single model.

        :param name: Model name.
        :returns: Model tick, validate before use.
        :raises ModelNotFoundError: If the model does not exist.
        """
        return (await self.ticks(name))[name]

    async def ticks(self, *names: str) -> dict[str, Tick]:
        """Update and return ticks of the given models (all if none given).

        :raises ModelNotFoundError: If any model does not exist.
        """
        nodes = self._nodes(names)
        await self.updater.update(list(nodes.values()))
        return {name: node.tick() for name, node in nodes.items()}

    def model(self, name: str) -> Model:
        """Return the structure of a single model.

        :raises ModelNotFoundError: If the model does not exist.
        """
        return self.models(name)[name]

    def models(self, *names: str) -> dict[str, Model]:
        """Return structures of the given models (all if none given).

        :raises ModelNotFoundError: If any model does not exist.
        """
        return {name: node_to_model(node) for name, node in self._nodes(names).items()}


def node_to_model(node: Node) -> Model:
    """Build the model tree mirroring a node and its branches."""
    return Model(
        pair=node.pair,
        meta=dict(node.meta),
        models=[node_to_model(branch) for branch in node.branches],
    )
