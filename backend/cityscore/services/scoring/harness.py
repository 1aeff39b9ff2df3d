"""Rule test harness: run a condition's formula against fixture and author boards."""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .conditions import ScoringCondition, TestCase
from .sandbox import SandboxExecutor
from .tiles import Placement, build_tile_map, make_card, placement_to_dict


logger = logging.getLogger(__name__)

REFERENCE_BOARD_CARDS = 8


@dataclass(frozen=True)
class BoardFixture:
    id: str
    name: str
    description: str
    board: tuple

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'board': [placement_to_dict(p) for p in self.board],
        }


FIXTURE_BOARDS = {
    'empty': BoardFixture('empty', 'Empty Board', 'Start with a clean slate', ()),
    'simple': BoardFixture(
        'simple', 'Single Card', 'One card with four different zones',
        (make_card(0, 0, [['residential', 'commercial'], ['park', 'industrial']], card_id='simple-1'),),
    ),
    'roads': BoardFixture(
        'roads', 'Road Layout', 'Three cards; one long road, one isolated stretch',
        (
            make_card(0, 0, [[('residential', [(1, 3)]), ('commercial', [(3, 1)])],
                             ['park', 'industrial']], card_id='roads-a'),
            make_card(2, 0, [[('commercial', [(3, 2)]), 'residential'],
                             [('park', [(0, 2)]), 'industrial']], card_id='roads-b'),
            make_card(0, 2, [['industrial', ('residential', [(1, 3)])],
                             ['park', 'park']], card_id='roads-c'),
        ),
    ),
}


def get_fixture(fixture_id: str) -> Optional[BoardFixture]:
    return FIXTURE_BOARDS.get(fixture_id)


def fixture_test_cases() -> List[TestCase]:
    """One expectation-free test case per built-in fixture."""
    return [
        TestCase(id=f'fixture-{f.id}', name=f.name, board=list(f.board),
                 description=f.description, fixture=f.id)
        for f in FIXTURE_BOARDS.values()
    ]


@dataclass
class TestRunResult:
    test_case_id: str
    score: float = 0
    execution_time_ms: float = 0.0
    error: Optional[str] = None
    expected_score: Optional[float] = None
    passed: Optional[bool] = None
    output: Optional[List[str]] = None

    __test__ = False

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            'testCaseId': self.test_case_id,
            'score': self.score,
            'executionTimeMs': round(self.execution_time_ms, 3),
            'error': self.error,
            'expectedScore': self.expected_score,
            'passed': self.passed,
        }
        if self.output:
            payload['output'] = list(self.output)
        return payload


def resolve_board(test_case: TestCase) -> List[Placement]:
    if test_case.board or not test_case.fixture:
        return list(test_case.board)
    fixture = get_fixture(test_case.fixture)
    if fixture is None:
        raise KeyError(test_case.fixture)
    return list(fixture.board)


def _scores_match(score, expected) -> bool:
    try:
        return math.isclose(score, expected, rel_tol=1e-9, abs_tol=1e-9)
    except OverflowError:
        # expected lies outside float range, so no bounded score can equal it
        return False


def run_test(condition: ScoringCondition, test_case: TestCase,
             executor: Optional[SandboxExecutor] = None) -> TestRunResult:
    """Compile if needed, execute against the test board, compare with the expectation."""
    executor = executor or SandboxExecutor()
    outcome = TestRunResult(test_case_id=test_case.id, expected_score=test_case.expected_score)

    if condition.compiled is None:
        compilation = condition.compile()
        if not compilation.success:
            outcome.error = compilation.error
            outcome.passed = False if test_case.expected_score is not None else None
            return outcome

    try:
        board = resolve_board(test_case)
    except KeyError:
        outcome.error = f"Unknown fixture '{test_case.fixture}'"
        outcome.passed = False if test_case.expected_score is not None else None
        return outcome

    result = executor.execute(condition.compiled, board)
    outcome.score = result.score
    outcome.execution_time_ms = result.execution_time_ms
    outcome.error = result.error
    outcome.output = result.output or None
    if test_case.expected_score is not None:
        outcome.passed = result.error is None and _scores_match(result.score, test_case.expected_score)
    logger.info(
        f'[rule-test] condition={condition.id} case={test_case.id} score={outcome.score} '
        f'passed={outcome.passed} time={outcome.execution_time_ms:.1f}ms'
    )
    return outcome


def run_all_tests(condition: ScoringCondition,
                  executor: Optional[SandboxExecutor] = None) -> List[TestRunResult]:
    """Every case runs on its own; one failure never stops the rest."""
    executor = executor or SandboxExecutor()
    return [run_test(condition, case, executor) for case in condition.test_cases]


def board_stats(placements: List[Placement]) -> Dict[str, Any]:
    tile_map = build_tile_map(placements)
    zone_counts: Dict[str, int] = {}
    road_segments = 0
    for tile in tile_map.values():
        zone_counts[tile.zone_type] = zone_counts.get(tile.zone_type, 0) + 1
        road_segments += len(tile.roads)
    expected_cells = REFERENCE_BOARD_CARDS * 4
    return {
        'cardCount': len(placements),
        'zoneCount': zone_counts,
        'roadSegments': road_segments,
        'coverage': round(len(tile_map) / expected_cells * 100) if tile_map else 0,
    }
