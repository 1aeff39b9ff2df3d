"""Zone clusters and road networks over a resolved tile map.

Both passes are pure: they read the tile map and allocate fresh structures on
every call, so nothing survives a board change.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

from .tiles import (
    EDGE_OFFSETS,
    Coord,
    Placement,
    RoadSegment,
    Tile,
    TileMap,
    build_tile_map,
    opposite_edge,
    scan_order,
)


@dataclass(frozen=True)
class Cluster:
    zone_type: str
    tiles: Tuple[Coord, ...]

    @property
    def size(self) -> int:
        return len(self.tiles)

    @property
    def type(self) -> str:
        return self.zone_type

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.zone_type,
            'size': self.size,
            'tiles': [{'x': c.x, 'y': c.y} for c in self.tiles],
        }


class SegmentRef(NamedTuple):
    """A road segment pinned to the tile that carries it."""

    coord: Coord
    segment: RoadSegment


@dataclass(frozen=True)
class RoadNetwork:
    segments: Tuple[SegmentRef, ...]
    dead_ends: Tuple[Tuple[Coord, int], ...] = ()

    @property
    def size(self) -> int:
        return len(self.segments)

    @property
    def tiles(self) -> Tuple[Coord, ...]:
        seen: Dict[Coord, None] = {}
        for ref in self.segments:
            seen.setdefault(ref.coord, None)
        return tuple(seen)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'size': self.size,
            'segments': [
                {'x': ref.coord.x, 'y': ref.coord.y, 'segment': list(ref.segment)}
                for ref in self.segments
            ],
            'tiles': [{'x': c.x, 'y': c.y} for c in self.tiles],
            'deadEnds': [{'x': c.x, 'y': c.y, 'edge': edge} for c, edge in self.dead_ends],
        }


def _neighbors(coord: Coord) -> Iterable[Coord]:
    # N/E/S/W only; corner contact never connects.
    for dx, dy in EDGE_OFFSETS.values():
        yield Coord(coord.x + dx, coord.y + dy)


def find_clusters(tile_map: TileMap) -> List[Cluster]:
    """Flood fill every maximal 4-connected group of same-type tiles."""
    visited: Set[Coord] = set()
    clusters: List[Cluster] = []
    for start in scan_order(tile_map):
        if start in visited:
            continue
        zone_type = tile_map[start].zone_type
        members: List[Coord] = []
        queue = deque([start])
        visited.add(start)
        while queue:
            current = queue.popleft()
            members.append(current)
            for nxt in _neighbors(current):
                if nxt in visited:
                    continue
                tile = tile_map.get(nxt)
                if tile is not None and tile.zone_type == zone_type:
                    visited.add(nxt)
                    queue.append(nxt)
        clusters.append(Cluster(zone_type, tuple(scan_order(members))))
    return clusters


def clusters_by_type(clusters: Iterable[Cluster]) -> Dict[str, List[Cluster]]:
    grouped: Dict[str, List[Cluster]] = {}
    for cluster in clusters:
        grouped.setdefault(cluster.zone_type, []).append(cluster)
    return grouped


def largest_clusters(clusters: Iterable[Cluster]) -> Dict[str, Cluster]:
    """Largest cluster per zone type; the first one discovered wins a tie."""
    largest: Dict[str, Cluster] = {}
    for cluster in clusters:
        best = largest.get(cluster.zone_type)
        if best is None or cluster.size > best.size:
            largest[cluster.zone_type] = cluster
    return largest


# ---- Road networks ----

Node = Tuple[Coord, int]


class _DisjointSet:
    def __init__(self):
        self.parent: Dict[Node, Node] = {}

    def add(self, node: Node) -> None:
        self.parent.setdefault(node, node)

    def find(self, node: Node) -> Node:
        root = node
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[node] != root:
            self.parent[node], node = root, self.parent[node]
        return root

    def union(self, a: Node, b: Node) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            self.parent[rb] = ra


def find_road_networks(tile_map: TileMap) -> List[RoadNetwork]:
    """Connected components of the (tile, edge) road graph.

    Nodes are tile edges where a segment ends. A segment joins its two edges
    inside the tile; across a boundary, edge E of one tile joins the opposite
    edge of the neighbour only when both carry a road end.
    """
    nodes = _DisjointSet()
    refs: List[SegmentRef] = []
    for coord in scan_order(tile_map):
        for segment in tile_map[coord].roads:
            refs.append(SegmentRef(coord, segment))
            nodes.add((coord, segment.start))
            nodes.add((coord, segment.end))
            nodes.union((coord, segment.start), (coord, segment.end))

    dead_ends: Dict[Node, bool] = {}
    for node in list(nodes.parent):
        coord, edge = node
        partner = (coord.neighbor(edge), opposite_edge(edge))
        if partner in nodes.parent:
            nodes.union(node, partner)
        else:
            dead_ends[node] = True

    members: Dict[Node, List[SegmentRef]] = {}
    order: List[Node] = []
    for ref in refs:
        root = nodes.find((ref.coord, ref.segment.start))
        if root not in members:
            members[root] = []
            order.append(root)
        members[root].append(ref)

    ends_by_root: Dict[Node, List[Node]] = {}
    for node in dead_ends:
        ends_by_root.setdefault(nodes.find(node), []).append(node)

    return [
        RoadNetwork(
            segments=tuple(members[root]),
            dead_ends=tuple(sorted(ends_by_root.get(root, []), key=lambda n: (n[0].y, n[0].x, n[1]))),
        )
        for root in order
    ]


@dataclass
class BoardAnalysis:
    """Everything derived from one board, computed together."""

    tile_map: TileMap
    clusters: List[Cluster] = field(default_factory=list)
    largest: Dict[str, Cluster] = field(default_factory=dict)
    road_networks: List[RoadNetwork] = field(default_factory=list)

    def tile_at(self, x: int, y: int) -> Optional[Tile]:
        return self.tile_map.get(Coord(x, y))

    def zone_types(self) -> List[str]:
        seen: Dict[str, None] = {}
        for coord in scan_order(self.tile_map):
            seen.setdefault(self.tile_map[coord].zone_type, None)
        return list(seen)

    def snapshot(self) -> Dict[str, Any]:
        """Payload for the rendering layer."""
        grouped = clusters_by_type(self.clusters)
        return {
            'tiles': [self.tile_map[c].to_dict() for c in scan_order(self.tile_map)],
            'clusters': {
                zone_type: [[{'x': c.x, 'y': c.y} for c in cl.tiles] for cl in items]
                for zone_type, items in grouped.items()
            },
            'largestClusters': {t: cl.to_dict() for t, cl in self.largest.items()},
            'roadNetworks': [net.to_dict() for net in self.road_networks],
        }


def analyze_tile_map(tile_map: TileMap) -> BoardAnalysis:
    clusters = find_clusters(tile_map)
    return BoardAnalysis(
        tile_map=tile_map,
        clusters=clusters,
        largest=largest_clusters(clusters),
        road_networks=find_road_networks(tile_map),
    )


def analyze_board(placements: Iterable[Placement]) -> BoardAnalysis:
    return analyze_tile_map(build_tile_map(placements))
