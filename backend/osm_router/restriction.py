from __future__ import annotations

import logging
from collections.abc import Callable, Sequence as SequenceT

from .config import RouteConfig, Tag, TravelMode
from .logging_utils import log_event
from .models import Relation
from .sequence import Sequence

FORBID_PREFIX = "no_"
REQUIRE_PREFIX = "only_"


def contains_run(nodes: SequenceT[int], pattern: SequenceT[int]) -> bool:
    """Whether ``pattern`` occurs as a contiguous run anywhere in ``nodes``."""
    size = len(pattern)
    if size == 0 or size > len(nodes):
        return False
    first = pattern[0]
    for start in range(len(nodes) - size + 1):
        if nodes[start] == first and tuple(nodes[start : start + size]) == tuple(pattern):
            return True
    return False


def ends_with(nodes: SequenceT[int], suffix: SequenceT[int]) -> bool:
    size = len(suffix)
    if size == 0 or size > len(nodes):
        return False
    return tuple(nodes[-size:]) == tuple(suffix)


class RestrictionIndex:
    """Required or forbidden node sequences for one mode of transportation.

    ``no_*`` relations become forbidden runs of node IDs: any route whose
    node list contains the run is rejected. ``only_*`` relations map the two
    nodes that enter the restriction to the nodes a route must follow next.

    See https://wiki.openstreetmap.org/wiki/Relation:restriction
    """

    def __init__(self, config: RouteConfig, travel_mode: str | TravelMode) -> None:
        self._config = config
        self._travel_mode = travel_mode.value if isinstance(travel_mode, TravelMode) else str(travel_mode)
        self._forbidden: set[tuple[int, ...]] = set()
        # Forbidden runs grouped by their first node so lookups scan only candidates
        self._forbidden_by_head: dict[int, set[tuple[int, ...]]] = {}
        self._required: dict[tuple[int, ...], list[int]] = {}

    @property
    def forbidden_count(self) -> int:
        return len(self._forbidden)

    @property
    def required_count(self) -> int:
        return len(self._required)

    def from_relation(self, relation: Relation) -> None:
        restriction_type = self.restriction_type(relation)
        if restriction_type is None:
            return

        sequence = Sequence(relation).sort()
        if not sequence.valid:
            log_event(
                "relation_skipped",
                level=logging.WARNING,
                relation_id=relation.id,
                reason="relation_unsortable",
                travel_mode=self._travel_mode,
            )
            return

        if restriction_type.startswith(FORBID_PREFIX):
            pattern = tuple(sequence.all_nodes)
            self._forbidden.add(pattern)
            self._forbidden_by_head.setdefault(pattern[0], set()).add(pattern)
        elif restriction_type.startswith(REQUIRE_PREFIX):
            self._required[tuple(sequence.from_nodes)] = [*sequence.via_nodes, sequence.to_node]

    def restriction_type(self, relation: Relation) -> str | None:
        """Restriction keyword that applies to this travel mode, if any.

        e.g. no_right_turn, no_u_turn, only_straight_on, no_entry
        """
        tags = relation.tags
        exceptions = [item.strip() for item in (tags.get(Tag.EXCEPTION) or "").split(";") if item.strip()]

        # ignore restrictions this mode is specifically exempted from
        if set(exceptions) & set(self._config.can_use):
            return None

        mode_restriction = f"{Tag.RESTRICTION}:{self._travel_mode}"

        if (
            self._travel_mode == TravelMode.WALK.value
            and tags.get(Tag.TYPE) != mode_restriction
            and mode_restriction not in tags
        ):
            # walking restrictions apply only when explicit
            return None

        restriction_type = tags.get(mode_restriction) or tags.get(Tag.RESTRICTION)
        if not restriction_type or not restriction_type.startswith((FORBID_PREFIX, REQUIRE_PREFIX)):
            return None
        return restriction_type

    def each_forbidden(self, fn: Callable[[list[int]], object]) -> None:
        for pattern in self._forbidden:
            fn(list(pattern))

    def each_mandatory(self, fn: Callable[[list[int], list[int]], object]) -> None:
        for pattern, required in self._required.items():
            fn(list(required), list(pattern))

    def forbids(self, nodes: SequenceT[int]) -> bool:
        """Whether the node list contains a run forbidden by a ``no_*`` relation."""
        if not self._forbidden:
            return False
        for index, node in enumerate(nodes):
            for pattern in self._forbidden_by_head.get(node, ()):
                if contains_run(nodes[index : index + len(pattern)], pattern):
                    return True
        return False

    def get_required(self, nodes: SequenceT[int]) -> list[int]:
        """Nodes that must follow a node list ending with the entry of an
        ``only_*`` relation, or an empty list."""
        for pattern, required in self._required.items():
            if ends_with(nodes, pattern):
                return list(required)
        return []
