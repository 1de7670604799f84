from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .config import RouteConfig, TravelMode, get_route_config
from .edges import EdgeGraph
from .geo import Point, haversine_m
from .logging_utils import log_event
from .models import AreaData, Node, RouteResult, Status
from .plan import SearchPlan
from .protocols import CoverageLoader
from .restriction import RestrictionIndex
from .settings import settings
from .tiles import TileStore


@dataclass
class RoutingSession:
    """Graph state accumulated for one travel mode as map data arrives."""

    config: RouteConfig
    travel_mode: str
    # Nodes that belong to routable ways, keyed by ID
    nodes: dict[int, Node] = field(default_factory=dict)
    edges: EdgeGraph = field(init=False)
    rules: RestrictionIndex = field(init=False)

    def __post_init__(self) -> None:
        self.edges = EdgeGraph(self.config, self.travel_mode)
        self.rules = RestrictionIndex(self.config, self.travel_mode)

    @classmethod
    def for_mode(cls, config_or_mode: RouteConfig | TravelMode | str) -> RoutingSession:
        if isinstance(config_or_mode, RouteConfig):
            config = config_or_mode.model_copy(deep=True)
        else:
            config = get_route_config(config_or_mode)
        return cls(config=config, travel_mode=config.name)

    def add_data(self, area: AreaData) -> None:
        for way in area.ways.values():
            for node in self.edges.from_way(way):
                self.nodes[node.id] = node
        for relation in area.relations:
            self.rules.from_relation(relation)


class Router:
    """Finds routes for one travel mode, loading map data as needed.

    See https://jakobmiksch.eu/post/openstreetmap_routing/
    """

    def __init__(
        self,
        config_or_mode: RouteConfig | TravelMode | str | None = None,
        *,
        loader: CoverageLoader | None = None,
        max_iterations: int | None = None,
    ) -> None:
        self.session = RoutingSession.for_mode(
            config_or_mode if config_or_mode is not None else settings.default_travel_mode
        )
        self.loader: CoverageLoader = loader if loader is not None else TileStore()
        self._owns_loader = loader is None
        self.max_iterations = int(max_iterations if max_iterations is not None else settings.route_max_iterations)
        self._plan: SearchPlan | None = None

    async def aclose(self) -> None:
        # loaders passed in belong to the caller
        if self._owns_loader and isinstance(self.loader, TileStore):
            await self.loader.aclose()

    @property
    def travel_mode(self) -> str:
        return self.session.travel_mode

    @property
    def nodes(self) -> dict[int, Node]:
        return self.session.nodes

    @property
    def edges(self) -> EdgeGraph:
        return self.session.edges

    @property
    def rules(self) -> RestrictionIndex:
        return self.session.rules

    def add_data(self, area: AreaData) -> None:
        self.session.add_data(area)
        log_event(
            "router_data_added",
            travel_mode=self.travel_mode,
            ways=len(area.ways),
            relations=len(area.relations),
            routable_nodes=len(self.session.nodes),
            connected_nodes=len(self.session.edges),
        )

    async def nearest_node(self, lat: float, lon: float) -> int | None:
        """Nearest routable node to a coordinate, loading data around it first."""
        if not await self.loader.ensure_coverage(lat, lon, self):
            log_event("nearest_node_unavailable", level=logging.WARNING, lat=lat, lon=lon)
            return None

        found_node: int | None = None
        found_distance = float("inf")
        for node_id, node in self.session.nodes.items():
            dist = haversine_m(lat, lon, node.lat, node.lon)
            if dist < found_distance:
                found_distance = dist
                found_node = node_id
        return found_node

    async def find(self, start_point: Point, end_point: Point) -> RouteResult:
        """Route between two ``(lat, lon)`` coordinates."""
        start_node, end_node = await asyncio.gather(
            self.nearest_node(start_point[0], start_point[1]),
            self.nearest_node(end_point[0], end_point[1]),
        )
        if start_node is None or end_node is None:
            return RouteResult(status=Status.NO_ROUTE)
        return await self.execute(start_node, end_node)

    async def execute(self, start_node: int, end_node: int) -> RouteResult:
        """Route between two known node IDs."""
        if self._plan is None:
            self._plan = SearchPlan(
                self.session.nodes,
                self.session.edges,
                self.session.rules,
                self.loader,
                listener=self,
            )
        valid = await self._plan.prepare(start_node, end_node)
        if not valid:
            return RouteResult(status=Status.NO_ROUTE)
        result = await self._plan.find(self.max_iterations)
        log_event(
            "route_executed",
            travel_mode=self.travel_mode,
            start_node=start_node,
            end_node=end_node,
            status=result.status.value,
            node_count=len(result.nodes or ()),
        )
        return result
