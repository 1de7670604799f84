from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .geo import Point


class Role(str, Enum):
    FROM = "from"
    VIA = "via"
    TO = "to"


class Status(str, Enum):
    """Outcome of a routing request."""

    # Found series of nodes connecting start to end
    SUCCESS = "success"
    # Start and end nodes are not connected
    NO_ROUTE = "no_route"
    # Iteration budget exhausted before start and end were connected
    GAVE_UP = "gave_up"


@dataclass(frozen=True)
class Node:
    id: int
    lat: float
    lon: float
    tags: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def point(self) -> Point:
        return (self.lat, self.lon)


@dataclass
class Way:
    id: int
    nodes: list[Node]
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class Member:
    role: Role
    nodes: list[Node]


@dataclass
class Relation:
    id: int
    members: list[Member]
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class AreaData:
    """Nodes, ways and relations parsed from one OSM extract."""

    nodes: dict[int, Node] = field(default_factory=dict)
    ways: dict[int, Way] = field(default_factory=dict)
    relations: list[Relation] = field(default_factory=list)


@dataclass(frozen=True)
class RouteResult:
    status: Status
    # OSM node IDs traversed to connect start and end nodes
    nodes: list[int] | None = None

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS
