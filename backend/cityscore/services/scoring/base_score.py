"""Cluster and road-network portion of the score."""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

from .connectivity import BoardAnalysis


@dataclass(frozen=True)
class ScoringPolicy:
    cluster_multipliers: Mapping[str, float] = field(default_factory=dict)
    road_network_penalty: float = 1
    zone_types: Tuple[str, ...] = ()

    def multiplier_for(self, zone_type: str) -> float:
        return self.cluster_multipliers.get(zone_type, 1)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'ScoringPolicy':
        multipliers = config.get('CLUSTER_MULTIPLIERS') or {}
        if isinstance(multipliers, str):
            multipliers = json.loads(multipliers) if multipliers.strip() else {}
        zone_types = config.get('ZONE_TYPES') or ()
        if isinstance(zone_types, str):
            zone_types = [z.strip() for z in zone_types.split(',') if z.strip()]
        return cls(
            cluster_multipliers=dict(multipliers),
            road_network_penalty=config.get('ROAD_NETWORK_PENALTY', 1),
            zone_types=tuple(zone_types),
        )


@dataclass(frozen=True)
class BaseScore:
    cluster_scores: Dict[str, float]
    road_penalty: float
    base_score: float
    network_penalties: List[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'clusterScores': dict(self.cluster_scores),
            'roadPenalty': self.road_penalty,
            'baseScore': self.base_score,
            'networkPenalties': list(self.network_penalties),
        }


def score_base(analysis: BoardAnalysis, policy: ScoringPolicy = ScoringPolicy()) -> BaseScore:
    """Largest cluster per zone type, minus a penalty per road network.

    Known zone types from the policy are always reported, at 0 when absent.
    """
    cluster_scores: Dict[str, float] = {zone_type: 0 for zone_type in policy.zone_types}
    for zone_type in analysis.zone_types():
        cluster_scores.setdefault(zone_type, 0)
    for zone_type, cluster in analysis.largest.items():
        cluster_scores[zone_type] = cluster.size * policy.multiplier_for(zone_type)

    network_penalties = [-policy.road_network_penalty for _ in analysis.road_networks]
    road_penalty = sum(network_penalties) if network_penalties else 0
    return BaseScore(
        cluster_scores=cluster_scores,
        road_penalty=road_penalty,
        base_score=sum(cluster_scores.values()) if cluster_scores else 0,
        network_penalties=network_penalties,
    )
