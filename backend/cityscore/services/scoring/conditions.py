"""Scoring conditions and their test cases.

The JSON shape is the one decks are imported and exported with::

    {id, name, description, source, compiledSource?, targetContribution,
     isGlobal, testCases[]}

A condition only carries a compiled artifact after its source passed both
compilation and security validation. Loading never trusts a persisted
``compiledSource``: the source is always recompiled.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .compiler import CompilationResult, CompiledFormula, compile_formula
from .errors import ValidationError
from .tiles import Placement, board_from_data, placement_to_dict


logger = logging.getLogger(__name__)


@dataclass
class TestCase:
    id: str
    name: str
    board: List[Placement] = field(default_factory=list)
    expected_score: Optional[float] = None
    description: str = ''
    fixture: Optional[str] = None

    __test__ = False  # not a pytest test class

    @classmethod
    def from_dict(cls, data: Any) -> 'TestCase':
        if not isinstance(data, dict):
            raise ValidationError('Test cases must be objects')
        test_id = data.get('id')
        if not test_id:
            raise ValidationError("Test cases need an 'id'")
        expected = data.get('expectedScore')
        if expected is not None and (isinstance(expected, bool) or not isinstance(expected, (int, float))):
            raise ValidationError("'expectedScore' must be a number")
        fixture = data.get('fixture')
        board = data.get('board')
        if fixture is not None and board is None:
            # Resolved lazily by the harness.
            placements: List[Placement] = []
        else:
            placements = board_from_data(board)
        return cls(
            id=str(test_id),
            name=str(data.get('name') or test_id),
            board=placements,
            expected_score=expected,
            description=str(data.get('description') or ''),
            fixture=fixture,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'board': [placement_to_dict(p) for p in self.board],
            'expectedScore': self.expected_score,
        }
        if self.fixture:
            payload['fixture'] = self.fixture
        return payload


@dataclass
class ScoringCondition:
    id: str
    name: str
    source: str
    description: str = ''
    compiled: Optional[CompiledFormula] = None
    target_contribution: float = 0
    is_global: bool = False
    test_cases: List[TestCase] = field(default_factory=list)
    last_compilation: Optional[CompilationResult] = field(default=None, repr=False, compare=False)

    def compile(self, **limits) -> CompilationResult:
        """Recompile from ``source``; the artifact is cleared when compilation fails."""
        result = compile_formula(self.source, **limits)
        self.compiled = result.artifact if result.success else None
        self.last_compilation = result
        return result

    @property
    def is_compiled(self) -> bool:
        return self.compiled is not None

    @classmethod
    def from_dict(cls, data: Any, **limits) -> 'ScoringCondition':
        if not isinstance(data, dict):
            raise ValidationError('Scoring conditions must be objects')
        missing = [key for key in ('id', 'name', 'source') if not data.get(key)]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}")
        if not isinstance(data['source'], str):
            raise ValidationError("'source' must be a string")
        target = data.get('targetContribution', 0)
        if isinstance(target, bool) or not isinstance(target, (int, float)):
            raise ValidationError("'targetContribution' must be a number")
        test_cases = data.get('testCases') or []
        if not isinstance(test_cases, list):
            raise ValidationError("'testCases' must be a list")

        condition = cls(
            id=str(data['id']),
            name=str(data['name']),
            source=data['source'],
            description=str(data.get('description') or ''),
            target_contribution=target,
            is_global=bool(data.get('isGlobal', False)),
            test_cases=[TestCase.from_dict(tc) for tc in test_cases],
        )
        result = condition.compile(**limits)
        stored = data.get('compiledSource')
        if stored and stored != result.compiled_source:
            logger.warning(f'[stale-artifact] condition={condition.id} persisted compiledSource discarded')
        return condition

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'source': self.source,
            'compiledSource': self.compiled.compiled_source if self.compiled else None,
            'targetContribution': self.target_contribution,
            'isGlobal': self.is_global,
            'testCases': [tc.to_dict() for tc in self.test_cases],
        }
