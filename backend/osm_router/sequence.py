from __future__ import annotations

import logging
from collections.abc import Sequence as SequenceT
from typing import TypeVar

from .logging_utils import log_event
from .models import Relation, Role

T = TypeVar("T")


def shared_node(nodes1: SequenceT[T], nodes2: SequenceT[T]) -> T | None:
    """First item of ``nodes1`` that also appears in ``nodes2``."""
    others = set(nodes2)
    for node in nodes1:
        if node in others:
            return node
    return None


def next_to_last(nodes: SequenceT[T]) -> T:
    """Item immediately before the last one, or the only item of a single-item list."""
    return nodes[len(nodes) - (2 if len(nodes) > 1 else 1)]


def last(nodes: SequenceT[T]) -> T:
    return nodes[-1]


def sort_node_sets(
    groups: SequenceT[SequenceT[int]],
    relation_id: int | None = None,
) -> list[list[int]] | None:
    """Orient node groups so each adjacent pair meets at a shared node.

    e.g. ``[[a, b], [c, b], [c], [e, d, c], [e, f]]`` becomes
    ``[[a, b], [b, c], [c], [c, d, e], [e, f]]``.

    Returns ``None`` when the groups cannot be chained.
    """
    out = [list(group) for group in groups]
    for i in range(len(out) - 1):
        j = i + 1
        common = shared_node(out[i], out[j])
        if common is None:
            log_event(
                "relation_members_unconnected",
                level=logging.WARNING,
                relation_id=relation_id,
                group_index=i,
            )
            return None
        if out[j][0] != common:
            out[j].reverse()
        # Only the "from" group may be reversed; any later group already had
        # its orientation fixed as the second half of the previous pair.
        if i == 0 and out[i][-1] != common:
            out[i].reverse()
        if out[i][-1] != out[j][0]:
            log_event(
                "relation_members_not_adjacent",
                level=logging.WARNING,
                relation_id=relation_id,
                group_index=i,
            )
            return None
    return out


class Sequence:
    """Node IDs of a restriction relation grouped into ``from``, ``via`` and
    ``to`` sets. There is exactly one ``from`` and one ``to`` set, with any
    number of ``via`` sets between them."""

    def __init__(self, relation: Relation) -> None:
        self.relation_id = relation.id
        self.valid = False
        self._groups: list[list[int]] = []

        from_member = next((m for m in relation.members if m.role == Role.FROM), None)
        to_member = next((m for m in relation.members if m.role == Role.TO), None)
        if from_member is None or to_member is None:
            return

        self._groups.append([n.id for n in from_member.nodes])
        self._groups.extend([n.id for n in m.nodes] for m in relation.members if m.role == Role.VIA)
        self._groups.append([n.id for n in to_member.nodes])
        self.valid = all(self._groups) and len(self._groups[-1]) > 1

    def __len__(self) -> int:
        return len(self._groups)

    def sort(self) -> Sequence:
        if self.valid:
            sorted_groups = sort_node_sets(self._groups, relation_id=self.relation_id)
            if sorted_groups is None:
                self.valid = False
            else:
                self._groups = sorted_groups
        return self

    @property
    def from_nodes(self) -> list[int]:
        """Last unique node of the ``from`` set and the node joining it to the next set."""
        return [next_to_last(self._groups[0]), self._groups[1][0]]

    @property
    def via_nodes(self) -> list[int]:
        """Nodes of the ``via`` sets, without the connector that opens each set."""
        via: list[int] = []
        for group in self._groups[1:-1]:
            via.extend(group[1:])
        return via

    @property
    def to_node(self) -> int:
        """First unique node of the ``to`` set."""
        return last(self._groups)[1]

    @property
    def all_nodes(self) -> list[int]:
        return [*self.from_nodes, *self.via_nodes, self.to_node]
