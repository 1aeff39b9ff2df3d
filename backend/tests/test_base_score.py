from cityscore.services.scoring.base_score import ScoringPolicy, score_base
from cityscore.services.scoring.connectivity import analyze_board
from cityscore.services.scoring.harness import FIXTURE_BOARDS
from cityscore.services.scoring.tiles import make_card

ZONES = ('residential', 'commercial', 'industrial', 'park')


def test_empty_board_scores_zero():
    base = score_base(analyze_board([]), ScoringPolicy(zone_types=ZONES))
    assert base.base_score == 0
    assert base.road_penalty == 0
    assert base.cluster_scores == {z: 0 for z in ZONES}


def test_largest_cluster_per_type():
    board = [
        make_card(0, 0, [['residential', 'residential'], ['park', 'residential']]),
        make_card(4, 0, [['park', 'park'], ['park', 'park']]),
    ]
    base = score_base(analyze_board(board))
    # park: the 2x2 card beats the single tile
    assert base.cluster_scores == {'residential': 3, 'park': 4}
    assert base.base_score == 7


def test_multiplier_and_road_penalty_policy():
    policy = ScoringPolicy(cluster_multipliers={'park': 2}, road_network_penalty=3)
    base = score_base(analyze_board(list(FIXTURE_BOARDS['roads'].board)), policy)
    assert base.cluster_scores['park'] == 4
    assert base.network_penalties == [-3, -3]
    assert base.road_penalty == -6


def test_road_fixture_totals():
    base = score_base(analyze_board(list(FIXTURE_BOARDS['roads'].board)))
    assert base.cluster_scores == {
        'residential': 1, 'commercial': 2, 'park': 2, 'industrial': 1,
    }
    assert base.base_score == 6
    assert base.road_penalty == -2


def test_unknown_zone_types_are_scored():
    board = [make_card(0, 0, [['harbor', 'harbor'], ['park', 'park']])]
    base = score_base(analyze_board(board), ScoringPolicy(zone_types=ZONES))
    assert base.cluster_scores['harbor'] == 2
    assert base.cluster_scores['industrial'] == 0


def test_policy_from_config_strings():
    policy = ScoringPolicy.from_config({
        'CLUSTER_MULTIPLIERS': '{"park": 1.5}',
        'ROAD_NETWORK_PENALTY': 2,
        'ZONE_TYPES': 'residential, park',
    })
    assert policy.multiplier_for('park') == 1.5
    assert policy.multiplier_for('residential') == 1
    assert policy.road_network_penalty == 2
    assert policy.zone_types == ('residential', 'park')
