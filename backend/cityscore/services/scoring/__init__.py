"""Scoring domain services: board analysis, formulas and rule testing.

Everything here is transport-free. HTTP routes and socket handlers import
from this package and only translate requests and responses.
"""

from .aggregator import ConditionScore, ScoreResult, ScoringConfig, compute_score
from .base_score import BaseScore, ScoringPolicy, score_base
from .compiler import CompilationResult, CompiledFormula, Diagnostic, compile_formula
from .conditions import ScoringCondition, TestCase
from .connectivity import BoardAnalysis, Cluster, RoadNetwork, analyze_board, find_clusters, find_road_networks
from .errors import CompilationError, ExecutionError, ScoringError, SecurityViolation, ValidationError
from .harness import TestRunResult, board_stats, run_all_tests, run_test
from .sandbox import ExecutionResult, SandboxExecutor, ScoringContext
from .tiles import Placement, Tile, build_tile_map, placement_from_dict, placement_to_dict
