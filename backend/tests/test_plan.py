from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from osm_router.config import TravelMode, get_route_config
from osm_router.edges import EdgeGraph
from osm_router.models import AreaData, Node, Status, Way
from osm_router.osm_xml import load_osm_file
from osm_router.plan import Route, SearchPlan
from osm_router.restriction import RestrictionIndex
from osm_router.router import RoutingSession

FIXTURE = Path(__file__).resolve().parent / "fixtures" / "sample_area.osm"


class RecordingLoader:
    def __init__(self, fail_at: set[tuple[float, float]] | None = None) -> None:
        self.calls: list[tuple[float, float]] = []
        self.fail_at = fail_at or set()

    async def ensure_coverage(self, lat: float, lon: float, listener=None) -> bool:
        self.calls.append((lat, lon))
        return (lat, lon) not in self.fail_at


def _session(mode: TravelMode = TravelMode.CAR) -> RoutingSession:
    session = RoutingSession.for_mode(mode)
    session.add_data(load_osm_file(FIXTURE))
    return session


def _plan(mode: TravelMode = TravelMode.CAR, loader: RecordingLoader | None = None) -> SearchPlan:
    session = _session(mode)
    return SearchPlan(session.nodes, session.edges, session.rules, loader or RecordingLoader())


def _route(plan: SearchPlan, start: int, end: int, max_iterations: int = 100_000):
    async def _run():
        if not await plan.prepare(start, end):
            return None
        return await plan.find(max_iterations)

    return asyncio.run(_run())


def test_route_extend_copies_nodes_and_required() -> None:
    route = Route(nodes=[1, 2], cost=5.0, heuristic_cost=9.0, required=[3], end_node=2)
    extended = route.extend(3)

    assert extended.nodes == [1, 2, 3]
    assert extended.end_node == 3
    assert extended.cost == 5.0
    extended.required.pop()
    assert route.required == [3]
    assert route.nodes == [1, 2]
    assert Route.starting_at(7).nodes == [7]


def test_prepare_rejects_same_or_unknown_nodes() -> None:
    plan = _plan()

    async def _run() -> list[bool]:
        return [
            await plan.prepare(5, 5),
            await plan.prepare(11, 1),
            await plan.prepare(1, 11),
            await plan.prepare(1, 12345),
        ]

    assert asyncio.run(_run()) == [False, False, False, False]
    assert len(plan) == 0


def test_prepare_seeds_one_route_per_connection_and_requests_data() -> None:
    loader = RecordingLoader()
    plan = _plan(loader=loader)

    assert asyncio.run(plan.prepare(2, 8)) is True

    assert len(plan) == 3
    assert {plan.route_to(node).nodes[-1] for node in (1, 3, 6)} == {1, 3, 6}
    assert plan.route_to(3).nodes == [2, 3]
    assert plan.is_known(2)
    assert set(loader.calls) == {(53.800, 21.570), (53.800, 21.572), (53.799, 21.571)}


def test_finds_route_around_forbidden_turn() -> None:
    plan = _plan()
    result = _route(plan, 1, 6)

    assert result is not None
    assert result.status is Status.SUCCESS
    assert result.ok
    assert result.nodes == [1, 2, 3, 7, 6]
    assert all(plan.edges.has(a, b) for a, b in zip(result.nodes, result.nodes[1:]))
    # node 2 is never fully evaluated because one of its connections is forbidden
    assert not plan.is_known(2)
    assert plan.is_known(3)


def test_mandatory_turn_is_followed_even_into_a_dead_end() -> None:
    plan = _plan()
    result = _route(plan, 5, 3)

    assert result is not None
    assert result.status is Status.NO_ROUTE
    assert not plan.is_known(6)

    through = _route(_plan(), 5, 8)
    assert through is not None
    assert through.nodes == [5, 6, 7, 8]


def test_exempt_mode_routes_through_restricted_turn() -> None:
    result = _route(_plan(TravelMode.BUS), 5, 3)

    assert result is not None
    assert result.status is Status.SUCCESS
    assert result.nodes == [5, 6, 7, 3]


def test_walking_ignores_vehicle_turn_restrictions() -> None:
    result = _route(_plan(TravelMode.WALK), 1, 6)

    assert result is not None
    assert result.nodes == [1, 2, 6]


def test_train_only_uses_rail() -> None:
    plan = _plan(TravelMode.TRAIN)
    result = _route(plan, 9, 10)

    assert result is not None
    assert result.nodes == [9, 10]
    assert asyncio.run(plan.prepare(1, 2)) is False


def test_gives_up_when_iteration_budget_runs_out() -> None:
    result = _route(_plan(), 1, 6, max_iterations=1)

    assert result is not None
    assert result.status is Status.GAVE_UP
    assert result.nodes is None


def test_unavailable_data_leaves_node_unevaluated_but_search_continues() -> None:
    loader = RecordingLoader(fail_at={(53.800, 21.573)})
    plan = _plan(loader=loader)
    result = _route(plan, 1, 6)

    assert result is not None
    assert result.nodes == [1, 2, 3, 7, 6]
    assert not plan.is_known(3)
    assert (53.800, 21.573) in loader.calls


def test_prepare_fails_when_seed_data_cannot_be_loaded() -> None:
    loader = RecordingLoader(fail_at={(53.800, 21.571)})
    plan = _plan(loader=loader)

    assert asyncio.run(plan.prepare(1, 6)) is False


def test_readmitting_a_route_is_idempotent() -> None:
    plan = _plan()

    async def _run() -> None:
        assert await plan.prepare(1, 6)
        before = plan.route_to(2)
        size = len(plan)
        assert await plan.admit(1, 2, Route.starting_at(1), 2.0) is True
        assert len(plan) == size
        assert plan.route_to(2) is before

    asyncio.run(_run())


def test_admit_ignores_reversal_and_unusable_segments() -> None:
    plan = _plan()

    async def _run() -> None:
        assert await plan.prepare(1, 6)
        size = len(plan)
        back = Route(nodes=[1, 2], end_node=2)
        assert await plan.admit(2, 1, back, 2.0) is True
        assert await plan.admit(2, 3, back, 0.0) is True
        assert await plan.admit(2, 424242, back, 2.0) is True
        assert len(plan) == size

    asyncio.run(_run())


def test_admit_reports_forbidden_and_required_sequences() -> None:
    plan = _plan()

    async def _run() -> None:
        assert await plan.prepare(3, 6)
        assert await plan.admit(2, 6, Route(nodes=[1, 2], end_node=2), 1.0) is False
        assert plan.route_to(6) is None
        assert await plan.admit(5, 6, Route(nodes=[5], end_node=5), 0.7) is False
        assert plan.route_to(6).required == [7]

    asyncio.run(_run())


def test_start_without_resident_neighbours_yields_no_route() -> None:
    config = get_route_config(TravelMode.CAR)
    edges = EdgeGraph(config, TravelMode.CAR)
    a = Node(id=1, lat=0.0, lon=0.0)
    b = Node(id=2, lat=0.0, lon=0.001)
    goal = Node(id=3, lat=0.0, lon=0.002)
    edges.from_way(Way(id=1, nodes=[a, b], tags={"highway": "primary"}))
    # b is connected but its data is not resident yet
    plan = SearchPlan({1: a, 3: goal}, edges, RestrictionIndex(config, TravelMode.CAR), RecordingLoader())

    async def _run():
        assert await plan.prepare(1, 3)
        assert len(plan) == 0
        return await plan.find(10)

    assert asyncio.run(_run()).status is Status.NO_ROUTE


def test_data_delivered_mid_search_extends_the_graph() -> None:
    area = load_osm_file(FIXTURE)
    initial = AreaData(
        nodes=area.nodes,
        ways={way_id: area.ways[way_id] for way_id in (100, 101, 102)},
        relations=[relation for relation in area.relations if relation.id == 200],
    )
    extra = AreaData(nodes=area.nodes, ways={way_id: area.ways[way_id] for way_id in (106, 107, 108)})
    session = RoutingSession.for_mode(TravelMode.CAR)
    session.add_data(initial)

    class DeliveringLoader:
        def __init__(self) -> None:
            self.delivered = False

        async def ensure_coverage(self, lat: float, lon: float, listener=None) -> bool:
            if listener is not None and not self.delivered:
                self.delivered = True
                listener.add_data(extra)
            return True

    plan = SearchPlan(session.nodes, session.edges, session.rules, DeliveringLoader(), listener=session)
    result = _route(plan, 1, 6)

    assert result is not None
    assert result.nodes == [1, 2, 3, 7, 6]


def test_prepare_requires_seed_before_admit() -> None:
    plan = _plan()

    with pytest.raises(RuntimeError):
        asyncio.run(plan.admit(1, 2, Route.starting_at(1), 2.0))


def test_route_end_node_defaults_to_last_node() -> None:
    assert Route(nodes=[1, 2]).end_node == 2
    assert Route(nodes=[4, 0]).end_node == 0
    assert Route(nodes=[1, 2], end_node=2).end_node == 2
    assert Route(nodes=[]).end_node is None


def test_cheaper_extension_replaces_open_route() -> None:
    plan = _plan()

    async def _run():
        assert await plan.prepare(1, 6)
        before = plan.route_to(2)
        size = len(plan)
        assert await plan.admit(1, 2, Route.starting_at(1), 1000.0) is True
        after = plan.route_to(2)
        assert len(plan) == size
        assert after is not before
        assert after.nodes == [1, 2]
        assert after.cost < before.cost
        # the superseded heap entry is skipped once it surfaces
        return await plan.find(100)

    result = asyncio.run(_run())
    assert result.status is Status.SUCCESS
    assert result.nodes == [1, 2, 3, 7, 6]


def test_route_made_cheaper_while_data_loads_is_kept() -> None:
    session = _session()

    class ReentrantLoader:
        def __init__(self) -> None:
            self.armed = False

        async def ensure_coverage(self, lat: float, lon: float, listener=None) -> bool:
            if self.armed:
                self.armed = False
                # another admission lands a cheaper route while this one waits
                assert await plan.admit(1, 2, Route.starting_at(1), 1000.0) is True
            return True

    loader = ReentrantLoader()
    plan = SearchPlan(session.nodes, session.edges, session.rules, loader)

    async def _run() -> None:
        assert await plan.prepare(1, 6)
        seeded = plan.route_to(2)
        loader.armed = True
        assert await plan.admit(1, 2, Route.starting_at(1), 10.0) is True
        kept = plan.route_to(2)
        assert kept is not seeded
        assert kept.cost < seeded.cost / 100
        assert len(plan) == 1

    asyncio.run(_run())


def test_routes_to_known_nodes_are_skipped_and_use_an_iteration() -> None:
    plan = _plan()

    async def _run():
        assert await plan.prepare(1, 6)
        assert plan.is_known(1)
        # cheap route back into the start node, popped before the seeded route
        stale = Route(nodes=[3, 2], end_node=2)
        assert await plan.admit(2, 1, stale, 1000.0) is True
        assert plan.route_to(1).nodes == [3, 2, 1]
        assert len(plan) == 2

        gave_up = await plan.find(1)
        assert gave_up.status is Status.GAVE_UP
        assert plan.route_to(1) is None
        # the seeded route was not expanded
        assert plan.route_to(2).nodes == [1, 2]
        assert len(plan) == 1
        return await plan.find(100)

    result = asyncio.run(_run())
    assert result.nodes == [1, 2, 3, 7, 6]


def test_unavailable_data_on_mandatory_turn_is_tolerated() -> None:
    node_7 = (53.799, 21.572)
    loader = RecordingLoader(fail_at={node_7})
    plan = _plan(loader=loader)
    result = _route(plan, 5, 8)

    assert result is not None
    assert result.status is Status.NO_ROUTE
    assert node_7 in loader.calls
    assert not plan.is_known(6)
