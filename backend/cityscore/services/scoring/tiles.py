"""Board value types and the tile grid builder.

A board is the ordered placement log kept by the game-state machine. Folding
it in order gives one tile per coordinate; later placements cover earlier ones.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

from .errors import ValidationError


CARD_SIZE = 2

TOP, RIGHT, BOTTOM, LEFT = 0, 1, 2, 3
EDGE_NAMES = ('top', 'right', 'bottom', 'left')
VALID_ROTATIONS = (0, 180)


class Coord(NamedTuple):
    x: int
    y: int

    def neighbor(self, edge: int) -> 'Coord':
        dx, dy = EDGE_OFFSETS[edge]
        return Coord(self.x + dx, self.y + dy)


# Screen coordinates: y grows downwards, so "top" is y - 1.
EDGE_OFFSETS = {
    TOP: (0, -1),
    RIGHT: (1, 0),
    BOTTOM: (0, 1),
    LEFT: (-1, 0),
}


def opposite_edge(edge: int) -> int:
    return (edge + 2) % 4


class RoadSegment(NamedTuple):
    start: int
    end: int

    @property
    def edges(self) -> Tuple[int, int]:
        return (self.start, self.end)

    def rotated(self) -> 'RoadSegment':
        return RoadSegment(opposite_edge(self.start), opposite_edge(self.end))


@dataclass(frozen=True)
class Cell:
    zone_type: str
    roads: Tuple[RoadSegment, ...] = ()


@dataclass(frozen=True)
class Placement:
    x: int
    y: int
    cells: Tuple[Tuple[Cell, Cell], Tuple[Cell, Cell]]
    rotation: int = 0
    card_id: Optional[str] = None

    def resolved_cells(self) -> Tuple[Tuple[Cell, ...], ...]:
        """Cells as they lie on the board once rotation is applied."""
        if self.rotation == 0:
            return self.cells
        rows = []
        for row in range(CARD_SIZE):
            rotated_row = []
            for col in range(CARD_SIZE):
                original = self.cells[CARD_SIZE - 1 - row][CARD_SIZE - 1 - col]
                rotated_row.append(Cell(
                    zone_type=original.zone_type,
                    roads=tuple(seg.rotated() for seg in original.roads),
                ))
            rows.append(tuple(rotated_row))
        return tuple(rows)


@dataclass(frozen=True)
class Tile:
    x: int
    y: int
    zone_type: str
    roads: Tuple[RoadSegment, ...]
    card_id: Optional[str]
    placement_index: int

    @property
    def coord(self) -> Coord:
        return Coord(self.x, self.y)

    @property
    def type(self) -> str:
        return self.zone_type

    def to_dict(self) -> Dict[str, Any]:
        return {
            'x': self.x,
            'y': self.y,
            'type': self.zone_type,
            'roads': [list(seg) for seg in self.roads],
            'cardId': self.card_id,
        }


TileMap = Dict[Coord, Tile]


def build_tile_map(placements: Iterable[Placement]) -> TileMap:
    """Fold the placement log into one tile per coordinate (last write wins)."""
    tile_map: TileMap = {}
    for index, placement in enumerate(placements):
        cells = placement.resolved_cells()
        for row in range(CARD_SIZE):
            for col in range(CARD_SIZE):
                cell = cells[row][col]
                coord = Coord(placement.x + col, placement.y + row)
                tile_map[coord] = Tile(
                    x=coord.x,
                    y=coord.y,
                    zone_type=cell.zone_type,
                    roads=cell.roads,
                    card_id=placement.card_id,
                    placement_index=index,
                )
    return tile_map


def scan_order(coords: Iterable[Coord]) -> List[Coord]:
    """Top-to-bottom, left-to-right."""
    return sorted(coords, key=lambda c: (c.y, c.x))


def make_card(x: int, y: int, rows, rotation: int = 0, card_id: Optional[str] = None) -> Placement:
    """Build a placement from ``[[zone, zone], [zone, zone]]`` shorthand.

    Each entry is either a zone type string or a ``(zone_type, [(a, b), ...])`` pair.
    """
    built = []
    for row in rows:
        built_row = []
        for entry in row:
            if isinstance(entry, str):
                built_row.append(Cell(entry))
            else:
                zone_type, roads = entry
                built_row.append(Cell(zone_type, tuple(RoadSegment(a, b) for a, b in roads)))
        built.append(tuple(built_row))
    return Placement(x=x, y=y, cells=tuple(built), rotation=rotation, card_id=card_id)


# ---- Data entry (JSON) ----

def _require_int(data: Dict[str, Any], key: str, default: Optional[int] = None) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"'{key}' must be an integer")
    return value


def _segment_from_data(raw: Any) -> RoadSegment:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        raise ValidationError('Road segments must be pairs of edge indices')
    for edge in raw:
        if isinstance(edge, bool) or not isinstance(edge, int) or not 0 <= edge <= 3:
            raise ValidationError(f'Road edge index out of range: {edge!r}')
    return RoadSegment(raw[0], raw[1])


def _cell_from_data(raw: Any) -> Cell:
    if not isinstance(raw, dict):
        raise ValidationError('Cells must be objects')
    zone_type = raw.get('type')
    if not isinstance(zone_type, str) or not zone_type:
        raise ValidationError("Each cell needs a non-empty 'type'")
    roads = raw.get('roads') or []
    if not isinstance(roads, list):
        raise ValidationError("'roads' must be a list")
    return Cell(zone_type, tuple(_segment_from_data(seg) for seg in roads))


def placement_from_dict(data: Any) -> Placement:
    if not isinstance(data, dict):
        raise ValidationError('Placement must be an object')
    rotation = _require_int(data, 'rotation', 0)
    if rotation not in VALID_ROTATIONS:
        raise ValidationError(f'Rotation must be 0 or 180, got {rotation}')
    cells = data.get('cells')
    if (not isinstance(cells, list) or len(cells) != CARD_SIZE
            or any(not isinstance(row, list) or len(row) != CARD_SIZE for row in cells)):
        raise ValidationError('Cards must have a 2x2 grid of cells')
    card_id = data.get('id')
    return Placement(
        x=_require_int(data, 'x'),
        y=_require_int(data, 'y'),
        cells=tuple(tuple(_cell_from_data(c) for c in row) for row in cells),
        rotation=rotation,
        card_id=str(card_id) if card_id is not None else None,
    )


def placement_to_dict(placement: Placement) -> Dict[str, Any]:
    return {
        'id': placement.card_id,
        'x': placement.x,
        'y': placement.y,
        'rotation': placement.rotation,
        'cells': [
            [{'type': c.zone_type, 'roads': [list(s) for s in c.roads]} for c in row]
            for row in placement.cells
        ],
    }


def board_from_data(data: Any) -> List[Placement]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValidationError("'board' must be a list of placements")
    return [placement_from_dict(item) for item in data]
