"""Starter formulas offered in the rule editor."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FormulaTemplate:
    id: str
    name: str
    category: str
    description: str
    source: str
    target_contribution: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'description': self.description,
            'source': self.source,
            'targetContribution': self.target_contribution,
        }

    def as_condition_data(self) -> Dict[str, Any]:
        """Shape accepted by ``ScoringCondition.from_dict``."""
        return {
            'id': f'template-{self.id}',
            'name': self.name,
            'description': self.description,
            'source': self.source,
            'targetContribution': self.target_contribution,
            'isGlobal': True,
            'testCases': [],
        }


ADJACENCY_BONUS = '''\
def calculate_score(context):
    # +1 for every residential tile touching a park
    score = 0
    for tile in context.get_all_tiles():
        if tile.zone_type != 'residential':
            continue
        neighbours = context.get_adjacent_tiles(tile.x, tile.y)
        if any(n.zone_type == 'park' for n in neighbours):
            score += 1
    return score
'''

CLUSTER_BONUS = '''\
def calculate_score(context):
    # +2 for each commercial cluster of three or more tiles
    clusters = context.find_clusters('commercial')['commercial']
    return 2 * context.count(clusters, lambda c: c.size >= 3)
'''

ROAD_NETWORK = '''\
def calculate_score(context):
    # Reward long roads: one point per segment in the longest network
    networks = context.find_road_networks()
    return context.max([n.size for n in networks])
'''

ZONE_DIVERSITY = '''\
def calculate_score(context):
    # +3 when all four zone types appear on the board
    wanted = ['residential', 'commercial', 'industrial', 'park']
    present = [z for z in wanted if context.count_zones_of_type(z) > 0]
    return 3 if len(present) == len(wanted) else 0
'''

BALANCED_DEVELOPMENT = '''\
def calculate_score(context):
    # Penalise the gap between the most and least common zone types
    wanted = ['residential', 'commercial', 'industrial', 'park']
    counts = [context.count_zones_of_type(z) for z in wanted]
    if context.sum(counts) == 0:
        return 0
    return -(context.max(counts) - context.min(counts))
'''

GEOMETRIC_PATTERN = '''\
def calculate_score(context):
    # +1 for each industrial tile with no residential tile within two steps
    score = 0
    for tile in context.get_all_tiles():
        if tile.zone_type != 'industrial':
            continue
        nearby = context.get_tiles_in_radius(tile, 2)
        if not any(t.zone_type == 'residential' for t in nearby):
            score += 1
    return score
'''


TEMPLATES: List[FormulaTemplate] = [
    FormulaTemplate('adjacency-bonus', 'Adjacency Bonus', 'adjacency',
                    'Score bonus for zones adjacent to specific types', ADJACENCY_BONUS, 2),
    FormulaTemplate('cluster-bonus', 'Cluster Scoring', 'cluster',
                    'Score based on connected zone clusters', CLUSTER_BONUS, 2),
    FormulaTemplate('road-network', 'Road Network', 'road',
                    'Score based on road connectivity', ROAD_NETWORK, 3),
    FormulaTemplate('zone-diversity', 'Zone Diversity', 'diversity',
                    'Score for having diverse zone types', ZONE_DIVERSITY, 3),
    FormulaTemplate('balanced-development', 'Balanced Development', 'diversity',
                    'Score for balanced zone distribution', BALANCED_DEVELOPMENT, 0),
    FormulaTemplate('geometric-pattern', 'Geometric Pattern', 'geometric',
                    'Score for specific spatial arrangements', GEOMETRIC_PATTERN, 1),
]


def get_template(template_id: str) -> Optional[FormulaTemplate]:
    for template in TEMPLATES:
        if template.id == template_id:
            return template
    return None
