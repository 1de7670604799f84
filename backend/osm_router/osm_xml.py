from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path

from .config import Tag, WayType
from .models import AreaData, Member, Node, Relation, Role, Way

# Road and rail type values folded into the types the preference tables know
WAY_TYPE_SYNONYMS: dict[str, str] = {
    "motorway_link": WayType.FREEWAY,
    "trunk_link": WayType.TRUNK,
    "primary_link": WayType.PRIMARY,
    "secondary_link": WayType.SECONDARY,
    "tertiary_link": WayType.TERTIARY,
    "minor": WayType.MINOR,
    "pedestrian": WayType.FOOT_PATH,
    "platform": WayType.FOOT_PATH,
}

_WAY_TYPE_TAGS = (Tag.ROAD_TYPE, Tag.RAIL_TYPE)
_ROLES = {role.value: role for role in Role}


def _tags(elem: ET.Element) -> dict[str, str]:
    tags: dict[str, str] = {}
    for child in elem.findall("tag"):
        key = str(child.attrib.get("k", "")).strip()
        if key:
            tags[key] = str(child.attrib.get("v", ""))
    return tags


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _parse_nodes(root: ET.Element) -> dict[int, Node]:
    nodes: dict[int, Node] = {}
    for elem in root.findall("node"):
        node_id = _parse_int(elem.attrib.get("id"))
        if node_id is None:
            continue
        try:
            lat = float(elem.attrib["lat"])
            lon = float(elem.attrib["lon"])
        except (KeyError, ValueError):
            continue
        nodes[node_id] = Node(id=node_id, lat=lat, lon=lon, tags=_tags(elem))
    return nodes


def _parse_ways(root: ET.Element, nodes: dict[int, Node]) -> dict[int, Way]:
    ways: dict[int, Way] = {}
    for elem in root.findall("way"):
        way_id = _parse_int(elem.attrib.get("id"))
        if way_id is None:
            continue
        tags = _tags(elem)
        # only ways with a road or rail type can be routed
        if not any(key in tags for key in _WAY_TYPE_TAGS):
            continue
        for key in _WAY_TYPE_TAGS:
            if key in tags:
                tags[key] = WAY_TYPE_SYNONYMS.get(tags[key], tags[key])
        refs = (_parse_int(nd.attrib.get("ref")) for nd in elem.findall("nd"))
        ways[way_id] = Way(
            id=way_id,
            nodes=[nodes[ref] for ref in refs if ref is not None and ref in nodes],
            tags=tags,
        )
    return ways


def _member_nodes(elem: ET.Element, nodes: dict[int, Node], ways: dict[int, Way]) -> list[Node]:
    ref = _parse_int(elem.attrib.get("ref"))
    if ref is None:
        return []
    member_type = elem.attrib.get("type")
    if member_type == "way":
        way = ways.get(ref)
        return list(way.nodes) if way is not None else []
    if member_type == "node" and ref in nodes:
        return [nodes[ref]]
    return []


def _parse_relations(root: ET.Element, nodes: dict[int, Node], ways: dict[int, Way]) -> list[Relation]:
    relations: list[Relation] = []
    for elem in root.findall("relation"):
        relation_id = _parse_int(elem.attrib.get("id"))
        if relation_id is None:
            continue
        tags = _tags(elem)
        # only restriction relations matter for routing
        if not tags.get(Tag.TYPE, "").startswith(Tag.RESTRICTION):
            continue
        members: list[Member] = []
        for member in elem.findall("member"):
            role = _ROLES.get(str(member.attrib.get("role", "")).strip())
            if role is None:
                continue
            members.append(Member(role=role, nodes=_member_nodes(member, nodes, ways)))
        relations.append(Relation(id=relation_id, members=members, tags=tags))
    return relations


def parse_osm_xml(text: str | bytes) -> AreaData:
    """Parse an OSM API 0.6 XML document into routable area data.

    Raises ``xml.etree.ElementTree.ParseError`` for malformed XML.
    """
    root = ET.fromstring(text)
    nodes = _parse_nodes(root)
    ways = _parse_ways(root, nodes)
    relations = _parse_relations(root, nodes, ways)
    return AreaData(nodes=nodes, ways=ways, relations=relations)


def load_osm_file(path: Path | str) -> AreaData:
    return parse_osm_xml(Path(path).read_bytes())
