"""Sandboxed execution of compiled scoring formulas.

Every execution gets its own child process and a brand new namespace whose
builtins are a short allow-list. The formula only ever sees a
``ScoringContext``: read-only queries over the board plus a few numeric
helpers. The host waits for the result under a wall-clock budget and kills the
child when the budget runs out, so a runaway formula costs one condition its
points and nothing else.
"""

import logging
import marshal
import math
import multiprocessing
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .compiler import ENTRY_POINT, FORMULA_FILENAME, CompiledFormula
from .connectivity import BoardAnalysis, Cluster, RoadNetwork, analyze_board, clusters_by_type
from .errors import ExecutionError
from .tiles import EDGE_OFFSETS, Coord, Placement, Tile, scan_order


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 1000
# Allowance for process start-up; the formula budget starts once the child reports ready.
STARTUP_GRACE_SEC = 10.0
NOT_A_NUMBER = 'Formula must return a finite number'
# Per-condition bound; totals of bounded scores stay well inside float range.
MAX_ABS_SCORE = 10 ** 15
OUT_OF_RANGE = f'Formula score must be between -{MAX_ABS_SCORE} and {MAX_ABS_SCORE}'


class ScoringContext:
    """The capability handed to ``calculate_score``.

    Queries only; every call returns fresh containers so a formula can never
    change what the next query (or the next formula) sees.
    """

    def __init__(self, analysis: BoardAnalysis):
        self._analysis = analysis
        self.tiles = tuple(analysis.tile_map[c] for c in scan_order(analysis.tile_map))

    # board utilities

    def get_all_tiles(self) -> List[Tile]:
        return list(self.tiles)

    def get_tile_at(self, x: int, y: int) -> Optional[Tile]:
        return self._analysis.tile_at(x, y)

    def get_adjacent_tiles(self, x: int, y: int) -> List[Tile]:
        found = []
        for dx, dy in EDGE_OFFSETS.values():
            tile = self._analysis.tile_at(x + dx, y + dy)
            if tile is not None:
                found.append(tile)
        return found

    # zone analysis

    def find_clusters(self, *zone_types: str) -> Dict[str, List[Cluster]]:
        grouped = clusters_by_type(self._analysis.clusters)
        if not zone_types:
            return {t: list(items) for t, items in grouped.items()}
        return {t: list(grouped.get(t, [])) for t in zone_types}

    def find_largest_cluster(self, zone_type: str) -> Cluster:
        return self._analysis.largest.get(zone_type) or Cluster(zone_type, ())

    def count_zones_of_type(self, zone_type: str) -> int:
        return sum(1 for tile in self.tiles if tile.zone_type == zone_type)

    # roads

    def find_road_networks(self) -> List[RoadNetwork]:
        return list(self._analysis.road_networks)

    # geometry

    def get_distance(self, a, b) -> float:
        return math.hypot(a.x - b.x, a.y - b.y)

    def is_adjacent(self, a, b) -> bool:
        return abs(a.x - b.x) + abs(a.y - b.y) == 1

    def get_tiles_in_radius(self, center, radius: float) -> List[Tile]:
        return [t for t in self.tiles if self.get_distance(center, t) <= radius]

    # numeric helpers

    def sum(self, numbers: Iterable[float]) -> float:
        total = 0
        for n in numbers:
            total += n
        return total

    def max(self, numbers: Iterable[float]) -> float:
        values = list(numbers)
        return max(values) if values else 0

    def min(self, numbers: Iterable[float]) -> float:
        values = list(numbers)
        return min(values) if values else 0

    def count(self, items: Iterable[Any], predicate: Callable[[Any], bool]) -> int:
        return sum(1 for item in items if predicate(item))


_ALLOWED_BUILTINS = (
    abs, all, any, bool, dict, divmod, enumerate, filter, float, frozenset, int,
    isinstance, len, list, map, max, min, pow, range, reversed, round, set, sorted,
    str, sum, tuple, zip,
    ArithmeticError, Exception, IndexError, KeyError, LookupError, TypeError,
    ValueError, ZeroDivisionError,
)


def _sandbox_builtins(output: List[str], capture: bool) -> Dict[str, Any]:
    def _print(*args, sep=' ', end=''):
        if capture:
            output.append(sep.join(str(a) for a in args) + end)

    allowed = {fn.__name__: fn for fn in _ALLOWED_BUILTINS}
    allowed['print'] = _print
    return allowed


def _coerce_score(value: Any):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ExecutionError(NOT_A_NUMBER)
    if isinstance(value, float) and not math.isfinite(value):
        raise ExecutionError(NOT_A_NUMBER)
    if abs(value) > MAX_ABS_SCORE:
        raise ExecutionError(OUT_OF_RANGE)
    return value


def _line_tracer(counts: Dict[int, int]):
    def tracer(frame, event, arg):
        if frame.f_code.co_filename != FORMULA_FILENAME:
            return None
        if event == 'line':
            counts[frame.f_lineno] = counts.get(frame.f_lineno, 0) + 1
        return tracer
    return tracer


def run_formula(code, placements: Sequence[Placement], debug: bool = False) -> Dict[str, Any]:
    """Run one formula in the current process and return a result payload.

    Called inside the sandbox child; exposed for the child entry point only.
    """
    output: List[str] = []
    line_counts: Dict[int, int] = {}
    namespace = {'__builtins__': _sandbox_builtins(output, debug)}
    started = time.perf_counter()
    try:
        context = ScoringContext(analyze_board(placements))
        if debug:
            sys.settrace(_line_tracer(line_counts))
        try:
            exec(code, namespace)
            entry = namespace.get(ENTRY_POINT)
            if not callable(entry):
                raise ExecutionError(f"'{ENTRY_POINT}' is not defined")
            score = _coerce_score(entry(context))
        finally:
            if debug:
                sys.settrace(None)
        error = None
    except ExecutionError as exc:
        score, error = 0, str(exc)
    except Exception as exc:
        score, error = 0, f'{type(exc).__name__}: {exc}'
    return {
        'score': score,
        'error': error,
        'execution_time_ms': (time.perf_counter() - started) * 1000.0,
        'output': output,
        'line_counts': line_counts,
    }


def _child_main(code_bytes: bytes, placements, debug: bool, conn) -> None:
    try:
        conn.send(('ready', None))
        conn.send(('done', run_formula(marshal.loads(code_bytes), placements, debug)))
    finally:
        conn.close()


@dataclass
class ExecutionResult:
    score: float = 0
    execution_time_ms: float = 0.0
    error: Optional[str] = None
    output: List[str] = field(default_factory=list)
    line_counts: Dict[int, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            'score': self.score,
            'executionTimeMs': round(self.execution_time_ms, 3),
            'error': self.error,
        }
        if self.output or self.line_counts:
            payload['output'] = list(self.output)
            payload['lineCounts'] = {str(k): v for k, v in sorted(self.line_counts.items())}
        return payload


def _default_start_method() -> str:
    methods = multiprocessing.get_all_start_methods()
    return 'fork' if 'fork' in methods else 'spawn'


class SandboxExecutor:
    """Runs compiled formulas in throwaway child processes."""

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS, debug: bool = False,
                 start_method: Optional[str] = None):
        self.timeout_ms = timeout_ms
        self.debug = debug
        self.start_method = start_method or _default_start_method()

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'SandboxExecutor':
        return cls(
            timeout_ms=int(config.get('SANDBOX_TIMEOUT_MS', DEFAULT_TIMEOUT_MS)),
            debug=bool(config.get('SANDBOX_DEBUG', False)),
            start_method=config.get('SANDBOX_START_METHOD') or None,
        )

    def execute(self, artifact: Optional[CompiledFormula],
                placements: Sequence[Placement]) -> ExecutionResult:
        """Execute ``artifact`` against a board. Never raises for formula faults."""
        if artifact is None:
            return ExecutionResult(error='Formula has not been compiled')
        started = time.perf_counter()
        try:
            payload = self._run_child(artifact, list(placements))
        except ExecutionError as exc:
            elapsed = (time.perf_counter() - started) * 1000.0
            logger.warning(f'[sandbox-error] {exc}')
            return ExecutionResult(execution_time_ms=elapsed, error=str(exc))
        return ExecutionResult(
            score=payload['score'],
            execution_time_ms=payload['execution_time_ms'],
            error=payload['error'],
            output=payload['output'],
            line_counts=payload['line_counts'],
        )

    def _run_child(self, artifact: CompiledFormula, placements: List[Placement]) -> Dict[str, Any]:
        ctx = multiprocessing.get_context(self.start_method)
        receiver, sender = ctx.Pipe(duplex=False)
        process = ctx.Process(
            target=_child_main,
            args=(marshal.dumps(artifact.code), placements, self.debug, sender),
            daemon=True,
        )
        process.start()
        sender.close()
        try:
            if not receiver.poll(STARTUP_GRACE_SEC):
                raise ExecutionError('Sandbox failed to start')
            receiver.recv()
            if not receiver.poll(self.timeout_ms / 1000.0):
                raise ExecutionError(f'Formula execution timed out after {self.timeout_ms} ms')
            _, payload = receiver.recv()
            return payload
        except EOFError:
            process.join(1)
            raise ExecutionError(
                f'Sandbox process exited unexpectedly (exit code {process.exitcode})'
            ) from None
        finally:
            receiver.close()
            if process.is_alive():
                process.terminate()
            process.join(1)
            if process.is_alive():
                process.kill()
                process.join()
