import pytest

from cityscore.services.scoring.errors import ValidationError
from cityscore.services.scoring.tiles import (
    Coord,
    RoadSegment,
    build_tile_map,
    board_from_data,
    make_card,
    placement_from_dict,
    placement_to_dict,
    scan_order,
)


def test_single_card_resolves_four_tiles():
    card = make_card(3, 5, [['residential', 'commercial'], ['park', 'industrial']], card_id='c1')
    tiles = build_tile_map([card])
    assert len(tiles) == 4
    assert tiles[Coord(3, 5)].zone_type == 'residential'
    assert tiles[Coord(4, 5)].zone_type == 'commercial'
    assert tiles[Coord(3, 6)].zone_type == 'park'
    assert tiles[Coord(4, 6)].zone_type == 'industrial'
    assert all(t.card_id == 'c1' for t in tiles.values())


def test_later_placement_overwrites_overlap():
    first = make_card(0, 0, [['residential'] * 2] * 2, card_id='first')
    second = make_card(1, 1, [['park'] * 2] * 2, card_id='second')
    tiles = build_tile_map([first, second])
    # (1, 1) is covered by both; the later card owns it
    assert tiles[Coord(1, 1)].zone_type == 'park'
    assert tiles[Coord(1, 1)].placement_index == 1
    assert tiles[Coord(0, 0)].zone_type == 'residential'
    assert len(tiles) == 7

    # Order matters, and is deterministic
    swapped = build_tile_map([second, first])
    assert swapped[Coord(1, 1)].zone_type == 'residential'
    assert build_tile_map([second, first]) == swapped


def test_empty_board_has_no_tiles():
    assert build_tile_map([]) == {}


def test_rotation_180_flips_cells_and_roads():
    card = make_card(
        0, 0,
        [[('residential', [(0, 1)]), 'commercial'], ['park', 'industrial']],
        rotation=180,
    )
    tiles = build_tile_map([card])
    assert tiles[Coord(0, 0)].zone_type == 'industrial'
    assert tiles[Coord(1, 0)].zone_type == 'park'
    assert tiles[Coord(0, 1)].zone_type == 'commercial'
    # top-left cell moved to bottom-right; top/right became bottom/left
    moved = tiles[Coord(1, 1)]
    assert moved.zone_type == 'residential'
    assert moved.roads == (RoadSegment(2, 3),)


def test_scan_order_is_top_to_bottom_then_left_to_right():
    coords = [Coord(1, 1), Coord(0, 1), Coord(5, 0), Coord(2, 0)]
    assert scan_order(coords) == [Coord(2, 0), Coord(5, 0), Coord(0, 1), Coord(1, 1)]


def test_placement_dict_round_trip():
    data = {
        'id': 'card-7',
        'x': -2,
        'y': 4,
        'rotation': 180,
        'cells': [
            [{'type': 'residential', 'roads': [[1, 3]]}, {'type': 'park', 'roads': []}],
            [{'type': 'commercial', 'roads': []}, {'type': 'industrial', 'roads': [[0, 2]]}],
        ],
    }
    placement = placement_from_dict(data)
    assert placement.card_id == 'card-7'
    assert placement.cells[0][0].roads == (RoadSegment(1, 3),)
    assert placement_to_dict(placement) == data


@pytest.mark.parametrize('patch, message', [
    ({'rotation': 90}, 'Rotation'),
    ({'x': 'a'}, "'x'"),
    ({'cells': [[{'type': 'park'}]]}, '2x2'),
    ({'cells': [[{'type': 'park', 'roads': [[0, 4]]}, {'type': 'park'}],
                [{'type': 'park'}, {'type': 'park'}]]}, 'out of range'),
    ({'cells': [[{'type': ''}, {'type': 'park'}],
                [{'type': 'park'}, {'type': 'park'}]]}, 'type'),
])
def test_malformed_placements_are_rejected(patch, message):
    data = {
        'x': 0,
        'y': 0,
        'cells': [[{'type': 'park'}, {'type': 'park'}], [{'type': 'park'}, {'type': 'park'}]],
    }
    data.update(patch)
    with pytest.raises(ValidationError) as info:
        placement_from_dict(data)
    assert message in str(info.value)


def test_board_from_data():
    assert board_from_data(None) == []
    with pytest.raises(ValidationError):
        board_from_data({'x': 0})
