from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import TypeVar

from .config import RouteConfig, Tag, TravelMode, WayType
from .errors import UnknownNodeError
from .models import Node, Way

T = TypeVar("T")

# Weight (or below) indicating way is not usable
CANNOT_USE = 0.0

# One-way enforced in direction opposite the node order
_REVERSE = re.compile(r"^(-1|reverse)$")
# One-way in node order
_FORWARD = re.compile(r"^(yes|true|1)$")
# Any value meaning a one-way restriction is in effect
_IS_ONE_WAY = re.compile(r"^(yes|true|1|-1|reverse)$")
_NO_ACCESS = re.compile(r"^(no|private)$")
_CIRCULAR_JUNCTIONS = frozenset({"roundabout", "circular"})


def allow_travel_mode(tags: Mapping[str, str], access_types: Iterable[str]) -> bool:
    """Whether a travel mode may use a way, given its tags and the mode's
    access tags ordered general to specific."""
    allow = True
    for tag in access_types:
        if tag in tags:
            value = tags[tag]
            allow = value is None or not _NO_ACCESS.match(value)
    return allow


def _resolve_weight(tags: Mapping[str, str], config: RouteConfig) -> float:
    weight = CANNOT_USE
    road_type = tags.get(Tag.ROAD_TYPE)
    rail_type = tags.get(Tag.RAIL_TYPE)
    if road_type is not None:
        weight = float(config.weights.get(road_type, CANNOT_USE))
    if rail_type is not None and weight <= CANNOT_USE:
        weight = float(config.weights.get(rail_type, CANNOT_USE))
    return weight


def _resolve_one_way(tags: Mapping[str, str], travel_mode: str) -> str:
    one_way = tags.get(Tag.ONE_WAY) or ""
    if not one_way and (
        tags.get(Tag.JUNCTION_TYPE) in _CIRCULAR_JUNCTIONS
        or tags.get(Tag.ROAD_TYPE) == WayType.FREEWAY
    ):
        one_way = "yes"
    if travel_mode == TravelMode.WALK.value or (
        _IS_ONE_WAY.match(one_way) and tags.get(f"{Tag.ONE_WAY}:{travel_mode}") == "no"
    ):
        one_way = "no"
    return one_way


class EdgeGraph:
    """Weighted, directed connections between nodes for one mode of travel.

    ``edges.has(a, b)`` is true exactly when some way lets the configured mode
    travel directly from ``a`` to ``b``. Stored weights are always positive;
    higher weights are preferred by the search.
    """

    def __init__(self, config: RouteConfig, travel_mode: str | TravelMode) -> None:
        self._items: dict[int, dict[int, float]] = {}
        self._config = config
        self._travel_mode = travel_mode.value if isinstance(travel_mode, TravelMode) else str(travel_mode)

    def __len__(self) -> int:
        # Nodes with at least one outgoing connection.
        return len(self._items)

    def __contains__(self, node: object) -> bool:
        return node in self._items

    @property
    def edge_count(self) -> int:
        return sum(len(targets) for targets in self._items.values())

    def ensure(self, *nodes: int) -> None:
        for node in nodes:
            if not self.has(node):
                raise UnknownNodeError(
                    f"Node {node} does not exist in the graph",
                    details={"node_id": node},
                )

    def from_way(self, way: Way) -> list[Node]:
        """Add weighted edges for a way and return its routable nodes.

        Returns an empty list when the way is unusable for this mode.
        See https://wiki.openstreetmap.org/wiki/Key:oneway
        """
        if not way.tags:
            return []
        weight = _resolve_weight(way.tags, self._config)
        if weight <= CANNOT_USE or not allow_travel_mode(way.tags, self._config.can_use):
            return []
        one_way = _resolve_one_way(way.tags, self._travel_mode)
        forward_allowed = not _REVERSE.match(one_way)
        reverse_allowed = not _FORWARD.match(one_way)

        for n1, n2 in zip(way.nodes, way.nodes[1:]):
            if n1.id == n2.id:
                continue
            if forward_allowed:
                self.add(n1, n2, weight)
            if reverse_allowed:
                self.add(n2, n1, weight)
        return list(way.nodes)

    def get(self, node: int) -> dict[int, float] | None:
        return self._items.get(node)

    def has(self, from_node: int, to_node: int | None = None) -> bool:
        targets = self._items.get(from_node)
        if targets is None:
            return False
        return True if to_node is None else to_node in targets

    def weight(self, from_node: int, to_node: int) -> float:
        targets = self._items.get(from_node)
        if targets is None:
            return CANNOT_USE
        return targets.get(to_node, CANNOT_USE)

    def add(self, from_node: Node, to_node: Node, weight: float) -> None:
        if weight <= CANNOT_USE:
            return
        # First weight stored for a connection wins; graph entries never change.
        self._items.setdefault(from_node.id, {}).setdefault(to_node.id, weight)

    def neighbors(self, node: int) -> Iterator[tuple[float, int]]:
        for to_node, weight in self._items.get(node, {}).items():
            yield weight, to_node

    def each(self, node: int, fn: Callable[[float, int], object]) -> None:
        for weight, to_node in self.neighbors(node):
            fn(weight, to_node)

    def map(self, node: int, fn: Callable[[float, int], T]) -> list[T]:
        return [fn(weight, to_node) for weight, to_node in self.neighbors(node)]
