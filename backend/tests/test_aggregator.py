import copy

from cityscore.services.scoring.aggregator import ScoringConfig, compute_score
from cityscore.services.scoring.base_score import ScoringPolicy
from cityscore.services.scoring.conditions import ScoringCondition
from cityscore.services.scoring.harness import FIXTURE_BOARDS
from cityscore.services.scoring.tiles import make_card

ZONES = ('residential', 'commercial', 'industrial', 'park')
POLICY = ScoringPolicy(zone_types=ZONES)


def _condition(cid, body, target=0):
    condition = ScoringCondition(
        id=cid,
        name=cid.title(),
        source='def calculate_score(context):\n' + body,
        target_contribution=target,
    )
    assert condition.compile().success
    return condition


def test_scenario_empty_board(executor):
    result = compute_score([], ScoringConfig(policy=POLICY), executor)
    assert result.base_score == 0
    assert result.cluster_scores == {z: 0 for z in ZONES}
    assert result.road_penalty == 0
    assert result.total_score == 0
    assert result.condition_scores == []


def test_scenario_single_card(executor):
    board = list(FIXTURE_BOARDS['simple'].board)
    result = compute_score(board, ScoringConfig(policy=POLICY), executor)
    assert result.cluster_scores == {z: 1 for z in ZONES}
    assert all(c.size == 1 for c in result.largest_clusters.values())
    assert result.road_penalty == 0
    assert result.total_score == 4


def test_scenario_adjacent_residential_cards(executor):
    solid = [['residential', 'residential'], ['residential', 'residential']]
    board = [make_card(0, 0, solid), make_card(2, 0, solid)]
    result = compute_score(board, ScoringConfig(policy=POLICY), executor)
    assert result.cluster_scores['residential'] == 8
    assert result.largest_clusters['residential'].size == 8


def test_failing_condition_scores_zero_without_blocking_others(executor):
    board = list(FIXTURE_BOARDS['roads'].board)
    good = _condition('good', '    return 5\n')
    bad = _condition('bad', '    raise ValueError("boom")\n')
    also_good = _condition('also-good', '    return 2.5\n')
    config = ScoringConfig(active_conditions=[good, bad, also_good], policy=POLICY)

    result = compute_score(board, config, executor)
    assert [cs.condition_id for cs in result.condition_scores] == ['good', 'bad', 'also-good']
    assert result.condition_scores[1].points == 0
    assert result.condition_scores[1].error == 'ValueError: boom'
    assert result.condition_total == 7.5
    assert result.base_score == 6
    assert result.road_penalty == -2
    assert result.total_score == 6 - 2 + 7.5


def test_every_condition_failing_still_returns_a_result(executor):
    bad = _condition('bad', '    return "x"\n')
    uncompiled = ScoringCondition(id='raw', name='Raw', source='def calculate_score(context):\n    return 1\n')
    result = compute_score(list(FIXTURE_BOARDS['simple'].board),
                           ScoringConfig(active_conditions=[bad, uncompiled], policy=POLICY), executor)
    assert result.condition_total == 0
    assert all(cs.error for cs in result.condition_scores)
    assert result.total_score == 4


def test_reordering_conditions_keeps_the_total(executor):
    board = list(FIXTURE_BOARDS['roads'].board)
    conditions = [
        _condition('a', '    return 0.1\n'),
        _condition('b', '    return 0.2\n'),
        _condition('c', '    return 0.3\n'),
        _condition('d', '    return len(context.find_road_networks())\n'),
    ]
    forward = compute_score(board, ScoringConfig(active_conditions=conditions), executor)
    backward = compute_score(board, ScoringConfig(active_conditions=conditions[::-1]), executor)
    assert forward.condition_total == backward.condition_total
    assert [cs.condition_id for cs in forward.condition_scores] == ['a', 'b', 'c', 'd']
    assert [cs.condition_id for cs in backward.condition_scores] == ['d', 'c', 'b', 'a']


def test_compute_score_is_idempotent_and_pure(executor):
    board = list(FIXTURE_BOARDS['roads'].board)
    config = ScoringConfig(active_conditions=[_condition('parks', '    return context.count_zones_of_type("park") * 1.5\n')],
                           target_score=20, policy=POLICY)
    board_before = copy.deepcopy(board)
    first = compute_score(board, config, executor)
    second = compute_score(board, config, executor)
    assert first.to_json() == second.to_json()
    assert board == board_before
    assert config.active_conditions[0].compiled is not None


def test_target_score_is_informational(executor):
    board = list(FIXTURE_BOARDS['simple'].board)
    conditions = [_condition('x', '    return 1\n', target=3), _condition('y', '    return 1\n', target=4)]
    implicit = compute_score(board, ScoringConfig(active_conditions=conditions), executor)
    explicit = compute_score(board, ScoringConfig(active_conditions=conditions, target_score=50), executor)
    assert implicit.target_score == 7
    assert explicit.target_score == 50
    assert implicit.total_score == explicit.total_score


def test_result_payload_keys(executor):
    result = compute_score(list(FIXTURE_BOARDS['roads'].board), ScoringConfig(policy=POLICY), executor)
    payload = result.to_dict()
    assert set(payload) == {
        'baseScore', 'clusterScores', 'roadPenalty', 'conditionScores', 'conditionTotal',
        'totalScore', 'targetScore', 'largestClusters', 'roadNetworks',
    }
    assert len(payload['roadNetworks']) == 2
    assert 'executionTimeMs' not in result.to_json()


def test_huge_score_is_a_condition_error_not_a_crash(executor):
    board = list(FIXTURE_BOARDS['simple'].board)
    conditions = [_condition('huge', '    return 10 ** 400\n'), _condition('half', '    return 0.5\n')]
    result = compute_score(board, ScoringConfig(active_conditions=conditions, policy=POLICY), executor)
    assert result.condition_scores[0].points == 0
    assert 'between' in result.condition_scores[0].error
    assert result.condition_scores[1].error is None
    assert result.condition_total == 0.5
    assert result.total_score == 4.5
