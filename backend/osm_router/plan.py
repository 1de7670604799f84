from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from .edges import CANNOT_USE, EdgeGraph
from .errors import DataUnavailableError, UnknownNodeError
from .geo import Point, distance
from .logging_utils import log_event
from .models import Node, RouteResult, Status
from .protocols import CoverageLoader, DataListener
from .restriction import RestrictionIndex
from .sequence import next_to_last


@dataclass
class Route:
    # Sequence of node IDs leading to end_node
    nodes: list[int]
    # Cost of connecting start and end nodes based on road type weighting
    cost: float = 0.0
    heuristic_cost: float = 0.0
    # Nodes that must be traversed next, derived from only_* relations
    required: list[int] = field(default_factory=list)
    # Final route node; only the goal once the route is complete
    end_node: int | None = None

    def __post_init__(self) -> None:
        if self.end_node is None and self.nodes:
            self.end_node = self.nodes[-1]

    @classmethod
    def starting_at(cls, node: int) -> Route:
        return cls(nodes=[node], end_node=node)

    def extend(self, node: int) -> Route:
        """Copy of this route ending at ``node``. Costs are copied, not updated."""
        return Route(
            nodes=[*self.nodes, node],
            cost=self.cost,
            heuristic_cost=self.heuristic_cost,
            required=list(self.required),
            end_node=node,
        )


class _OpenSet:
    """Candidate routes ordered by heuristic cost, at most one per end node.

    Replaced routes stay in the heap and are skipped when they surface.
    """

    def __init__(self) -> None:
        self._heap: list[tuple[float, int, Route]] = []
        self._by_end_node: dict[int, Route] = {}
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._by_end_node)

    def get(self, end_node: int) -> Route | None:
        return self._by_end_node.get(end_node)

    def push(self, route: Route) -> None:
        self._by_end_node[route.end_node] = route
        heapq.heappush(self._heap, (route.heuristic_cost, next(self._counter), route))

    def discard(self, route: Route) -> None:
        if self._by_end_node.get(route.end_node) is route:
            del self._by_end_node[route.end_node]

    def pop(self) -> Route | None:
        while self._heap:
            _cost, _seq, route = heapq.heappop(self._heap)
            if self._by_end_node.get(route.end_node) is route:
                del self._by_end_node[route.end_node]
                return route
        return None


class SearchPlan:
    """Incremental best-first route planner.

    Expands the graph one node at a time, asking the loader for map data
    around every node it adds so the graph can grow while the search runs.
    Forbidden node runs are never admitted and mandatory runs are followed
    one node per iteration before normal expansion resumes.

    See https://en.wikipedia.org/wiki/Dijkstra%27s_algorithm
    """

    def __init__(
        self,
        nodes: Mapping[int, Node],
        edges: EdgeGraph,
        rules: RestrictionIndex,
        loader: CoverageLoader,
        listener: DataListener | None = None,
    ) -> None:
        self.edges = edges
        self._rules = rules
        self._nodes = nodes
        self._loader = loader
        self._listener = listener
        self._routes = _OpenSet()
        # Nodes whose connections have all been evaluated
        self._known: set[int] = set()
        self._end_node: int | None = None
        self.end_point: Point | None = None

    def __len__(self) -> int:
        return len(self._routes)

    def is_known(self, node: int) -> bool:
        return node in self._known

    def route_to(self, node: int) -> Route | None:
        """Open route currently ending at ``node``, if any."""
        return self._routes.get(node)

    async def prepare(self, start_node: int, end_node: int) -> bool:
        """Reset the search and seed one route per connection leaving the start node.

        Returns False when start and end are the same, the start node has no
        connections, the end node is unknown or map data for a seeded node
        could not be loaded.
        """
        self._routes = _OpenSet()
        self._known = {start_node}
        self._end_node = None
        self.end_point = None

        if start_node == end_node:
            return False
        try:
            self.edges.ensure(start_node)
        except UnknownNodeError as exc:
            log_event(
                "route_prepare_invalid",
                level=logging.WARNING,
                reason=exc.reason_code,
                start_node=start_node,
                end_node=end_node,
            )
            return False

        end = self._nodes.get(end_node)
        if end is None:
            log_event(
                "route_prepare_invalid",
                level=logging.WARNING,
                reason="unknown_node",
                start_node=start_node,
                end_node=end_node,
            )
            return False

        self._end_node = end_node
        self.end_point = end.point()

        seed = Route.starting_at(start_node)
        outcomes = await asyncio.gather(
            *self.edges.map(start_node, lambda weight, linked: self.admit(start_node, linked, seed, weight)),
            return_exceptions=True,
        )
        failures = _load_failures(outcomes)
        if failures:
            log_event(
                "route_prepare_failed",
                level=logging.WARNING,
                start_node=start_node,
                end_node=end_node,
                failures=len(failures),
                error_message=str(failures[0]),
            )
            return False
        return True

    async def find(self, max_iterations: int) -> RouteResult:
        """Find the lowest cost route to the end node within ``max_iterations``."""
        count = 0
        while count < max_iterations:
            route = self._routes.pop()
            if route is None:
                # exhausted options without reaching the end node
                return RouteResult(status=Status.NO_ROUTE)
            count += 1
            to_node = route.end_node

            if to_node in self._known:
                continue
            if to_node == self._end_node:
                log_event("route_found", iterations=count, node_count=len(route.nodes), cost=round(route.cost, 3))
                return RouteResult(status=Status.SUCCESS, nodes=list(route.nodes))

            # to_node is only fully evaluated once all of its connections were
            evaluated = True
            if route.required:
                # mandatory nodes keep the route open for re-expansion
                evaluated = False
                required_node = route.required.pop(0)
                if self.edges.has(to_node, required_node):
                    try:
                        await self.admit(to_node, required_node, route, self.edges.weight(to_node, required_node))
                    except DataUnavailableError as exc:
                        log_event(
                            "route_admit_failed",
                            level=logging.WARNING,
                            from_node=to_node,
                            to_node=required_node,
                            error_message=str(exc),
                        )
            elif self.edges.has(to_node):
                outcomes = await asyncio.gather(
                    *(
                        self.admit(to_node, next_node, route, weight)
                        for weight, next_node in list(self.edges.neighbors(to_node))
                        if next_node not in self._known
                    ),
                    return_exceptions=True,
                )
                failures = _load_failures(outcomes)
                for exc in failures:
                    log_event(
                        "route_admit_failed",
                        level=logging.WARNING,
                        from_node=to_node,
                        error_message=str(exc),
                    )
                evaluated = not failures and all(outcome is True for outcome in outcomes)

            if evaluated:
                self._known.add(to_node)

        log_event("route_search_gave_up", level=logging.WARNING, iterations=count, open_routes=len(self._routes))
        return RouteResult(status=Status.GAVE_UP)

    async def admit(self, from_node: int, to_node: int, so_far: Route, weight: float = 1.0) -> bool:
        """Add a route option one segment at a time.

        Returns whether ``to_node`` was fully evaluated. This is False when a
        forbidden or required node sequence took precedence.
        """
        if (
            weight <= CANNOT_USE
            or not self._has_nodes(from_node, to_node)
            or next_to_last(so_far.nodes) == to_node
        ):
            # ignore non-traversable segments, missing nodes and reversal at a node (a->b->a)
            return True

        route = so_far.extend(to_node)
        if self._rules.forbids(route.nodes):
            return False

        to_point = self._nodes[to_node].point()
        from_point = self._nodes[from_node].point()
        route.cost += distance(from_point, to_point) / weight
        route.heuristic_cost = route.cost + distance(to_point, self._goal_point())

        existing = self._routes.get(to_node)
        if existing is not None and existing.cost <= route.cost:
            return True

        await self._ensure_data(to_point)

        # the open set may have changed while data was loading
        existing = self._routes.get(to_node)
        if existing is not None:
            if existing.cost <= route.cost:
                return True
            self._routes.discard(existing)

        evaluated = True
        if not route.required:
            required = self._rules.get_required(route.nodes)
            if required:
                route.required = required
                evaluated = False

        self._routes.push(route)
        return evaluated

    def _goal_point(self) -> Point:
        if self.end_point is None:
            raise RuntimeError("SearchPlan.prepare() must succeed before routes are admitted")
        return self.end_point

    def _has_nodes(self, *nodes: int) -> bool:
        return all(node in self._nodes for node in nodes)

    async def _ensure_data(self, point: Point) -> None:
        lat, lon = point
        if not await self._loader.ensure_coverage(lat, lon, self._listener):
            raise DataUnavailableError(
                f"Unable to load data for point {lat}, {lon}",
                details={"lat": lat, "lon": lon},
            )


def _load_failures(outcomes: list[object]) -> list[DataUnavailableError]:
    failures: list[DataUnavailableError] = []
    for outcome in outcomes:
        if isinstance(outcome, DataUnavailableError):
            failures.append(outcome)
        elif isinstance(outcome, BaseException):
            raise outcome
    return failures
