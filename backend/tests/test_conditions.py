import logging

import pytest

from cityscore.models import ScoringConditionRecord
from cityscore.services.scoring.conditions import ScoringCondition, TestCase
from cityscore.services.scoring.errors import ValidationError

SOURCE = 'def calculate_score(context):\n    return context.count_zones_of_type("park")\n'


def _data(**overrides):
    data = {
        'id': 'parks',
        'name': 'Parks',
        'description': 'One point per park tile',
        'source': SOURCE,
        'targetContribution': 4,
        'isGlobal': False,
        'testCases': [
            {'id': 'empty', 'name': 'Empty', 'fixture': 'empty', 'expectedScore': 0},
            {
                'id': 'one-card',
                'name': 'One card',
                'description': '',
                'board': [{
                    'id': 'c1', 'x': 0, 'y': 0, 'rotation': 0,
                    'cells': [[{'type': 'park', 'roads': []}, {'type': 'park', 'roads': []}],
                              [{'type': 'park', 'roads': []}, {'type': 'residential', 'roads': []}]],
                }],
                'expectedScore': 3,
            },
        ],
    }
    data.update(overrides)
    return data


def test_from_dict_compiles_and_round_trips():
    condition = ScoringCondition.from_dict(_data())
    assert condition.is_compiled
    exported = condition.to_dict()
    assert exported['compiledSource'] == condition.compiled.compiled_source
    assert exported['testCases'][0]['fixture'] == 'empty'
    again = ScoringCondition.from_dict(exported)
    assert again.to_dict() == exported


def test_invalid_source_leaves_no_artifact():
    condition = ScoringCondition.from_dict(_data(source='def calculate_score(context):\n    return eval("1")\n'))
    assert not condition.is_compiled
    assert condition.last_compilation.error_type == 'SecurityViolation'
    assert condition.to_dict()['compiledSource'] is None


def test_stale_compiled_source_is_discarded(caplog):
    caplog.set_level(logging.WARNING)
    condition = ScoringCondition.from_dict(_data(compiledSource='def calculate_score(context):\n    return 999'))
    assert 'return 999' not in condition.compiled.compiled_source
    assert any('[stale-artifact]' in r.getMessage() for r in caplog.records)


def test_recompiling_a_broken_edit_clears_the_artifact():
    condition = ScoringCondition.from_dict(_data())
    condition.source = 'def calculate_score(context):\n    return (\n'
    assert not condition.compile().success
    assert condition.compiled is None


@pytest.mark.parametrize('overrides', [
    {'id': ''},
    {'source': None},
    {'source': 42},
    {'targetContribution': 'lots'},
    {'testCases': {'id': 'x'}},
    {'testCases': [{'name': 'no id'}]},
    {'testCases': [{'id': 't', 'expectedScore': 'ten'}]},
])
def test_malformed_conditions_raise_validation_error(overrides):
    with pytest.raises(ValidationError):
        ScoringCondition.from_dict(_data(**overrides))


def test_test_case_round_trip():
    case = TestCase.from_dict(_data()['testCases'][1])
    assert case.expected_score == 3
    assert len(case.board) == 1
    assert case.to_dict() == _data()['testCases'][1]


def test_record_round_trip(flask_app):
    from cityscore import db

    condition = ScoringCondition.from_dict(_data())
    db.session.add(ScoringConditionRecord.from_condition(condition))
    db.session.commit()

    record = db.session.get(ScoringConditionRecord, 'parks')
    assert record.created_at is not None
    assert record.to_dict() == condition.to_dict()
    restored = record.to_condition()
    assert restored.is_compiled
    assert [tc.id for tc in restored.test_cases] == ['empty', 'one-card']
