"""Combines the base score with every active condition into one ScoreResult."""

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .base_score import ScoringPolicy, score_base
from .conditions import ScoringCondition
from .connectivity import Cluster, RoadNetwork, analyze_board
from .sandbox import SandboxExecutor
from .tiles import Placement


logger = logging.getLogger(__name__)


@dataclass
class ScoringConfig:
    active_conditions: List[ScoringCondition] = field(default_factory=list)
    target_score: Optional[float] = None
    policy: ScoringPolicy = field(default_factory=ScoringPolicy)

    def resolved_target(self) -> float:
        if self.target_score is not None:
            return self.target_score
        return sum(c.target_contribution or 0 for c in self.active_conditions)


@dataclass(frozen=True)
class ConditionScore:
    condition_id: str
    name: str
    points: float
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'conditionId': self.condition_id,
            'name': self.name,
            'points': self.points,
            'error': self.error,
        }


@dataclass(frozen=True)
class ScoreResult:
    base_score: float
    cluster_scores: Dict[str, float]
    road_penalty: float
    condition_scores: List[ConditionScore]
    condition_total: float
    total_score: float
    target_score: float
    largest_clusters: Dict[str, Cluster] = field(default_factory=dict)
    road_networks: List[RoadNetwork] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'baseScore': self.base_score,
            'clusterScores': dict(self.cluster_scores),
            'roadPenalty': self.road_penalty,
            'conditionScores': [cs.to_dict() for cs in self.condition_scores],
            'conditionTotal': self.condition_total,
            'totalScore': self.total_score,
            'targetScore': self.target_score,
            'largestClusters': {t: c.to_dict() for t, c in self.largest_clusters.items()},
            'roadNetworks': [n.to_dict() for n in self.road_networks],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'))


def _order_free_total(points: List[float]) -> float:
    # fsum is exactly rounded, so the total does not depend on condition order.
    if all(isinstance(p, int) for p in points):
        return sum(points)
    return math.fsum(points)


def compute_score(placements: Sequence[Placement], config: ScoringConfig,
                  executor: Optional[SandboxExecutor] = None) -> ScoreResult:
    """Score a board. Pure over its inputs; a failing condition scores 0 and keeps its error."""
    board = list(placements)
    executor = executor or SandboxExecutor()
    analysis = analyze_board(board)
    base = score_base(analysis, config.policy)

    condition_scores: List[ConditionScore] = []
    for condition in config.active_conditions:
        result = executor.execute(condition.compiled, board)
        if result.error is not None:
            logger.info(f'[condition-failed] condition={condition.id} error={result.error}')
            condition_scores.append(ConditionScore(condition.id, condition.name, 0, result.error))
        else:
            condition_scores.append(ConditionScore(condition.id, condition.name, result.score))

    condition_total = _order_free_total([cs.points for cs in condition_scores])
    return ScoreResult(
        base_score=base.base_score,
        cluster_scores=base.cluster_scores,
        road_penalty=base.road_penalty,
        condition_scores=condition_scores,
        condition_total=condition_total,
        total_score=base.base_score + base.road_penalty + condition_total,
        target_score=config.resolved_target(),
        largest_clusters=dict(analysis.largest),
        road_networks=list(analysis.road_networks),
    )
