from flask import Blueprint, jsonify, request, current_app
from cityscore import db
from cityscore.models import ScoringConditionRecord
from cityscore.services.scoring.aggregator import ScoringConfig, compute_score
from cityscore.services.scoring.base_score import ScoringPolicy, score_base
from cityscore.services.scoring.compiler import compile_formula, limits_from_config
from cityscore.services.scoring.conditions import ScoringCondition, TestCase
from cityscore.services.scoring.connectivity import analyze_board
from cityscore.services.scoring.errors import ValidationError
from cityscore.services.scoring.harness import FIXTURE_BOARDS, board_stats, run_all_tests, run_test
from cityscore.services.scoring.sandbox import SandboxExecutor
from cityscore.services.scoring.templates import TEMPLATES
from cityscore.services.scoring.tiles import board_from_data
from typing import Any, Dict, List


scoring = Blueprint('scoring', __name__)


@scoring.errorhandler(ValidationError)
def handle_validation_error(exc):
    return jsonify({'error': str(exc)}), 400


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _executor() -> SandboxExecutor:
    return SandboxExecutor.from_config(current_app.config)


def _limits() -> Dict[str, int]:
    return limits_from_config(current_app.config)


def _rejected(condition: ScoringCondition):
    """400 response carrying the failed CompilationResult."""
    payload = condition.last_compilation.to_dict()
    current_app.logger.info(f"[condition-rejected] id={condition.id} error={payload['error']}")
    return jsonify(payload), 400


def _summary(results) -> Dict[str, Any]:
    return {
        'results': [r.to_dict() for r in results],
        'passed': sum(1 for r in results if r.passed is True),
        'failed': sum(1 for r in results if r.passed is False),
        'total': len(results),
    }


# ---- Stateless engine endpoints ----

@scoring.route('/compile', methods=['POST'])
def compile_source():
    data = _json_body()
    source = data.get('source')
    if not isinstance(source, str):
        return jsonify({'error': "'source' must be a string"}), 400
    result = compile_formula(source, **_limits())
    return jsonify(result.to_dict()), 200


@scoring.route('/score', methods=['POST'])
def score_board():
    data = _json_body()
    board = board_from_data(data.get('board'))

    target = data.get('targetScore')
    if target is not None and (isinstance(target, bool) or not isinstance(target, (int, float))):
        return jsonify({'error': "'targetScore' must be a number"}), 400

    active: List[ScoringCondition] = []
    inline = data.get('conditions') or []
    if not isinstance(inline, list):
        return jsonify({'error': "'conditions' must be a list"}), 400
    limits = _limits()
    for item in inline:
        active.append(ScoringCondition.from_dict(item, **limits))

    ids = data.get('conditionIds') or []
    if not isinstance(ids, list):
        return jsonify({'error': "'conditionIds' must be a list"}), 400
    for condition_id in ids:
        record = db.session.get(ScoringConditionRecord, str(condition_id))
        if record is None:
            return jsonify({'error': f'Condition {condition_id} not found'}), 404
        active.append(record.to_condition(**limits))

    config = ScoringConfig(
        active_conditions=active,
        target_score=target,
        policy=ScoringPolicy.from_config(current_app.config),
    )
    result = compute_score(board, config, _executor())
    current_app.logger.info(
        f"[score] cards={len(board)} conditions={len(active)} total={result.total_score}"
    )
    return current_app.response_class(result.to_json(), mimetype='application/json')


@scoring.route('/analyze', methods=['POST'])
def analyze():
    data = _json_body()
    board = board_from_data(data.get('board'))
    analysis = analyze_board(board)
    payload = analysis.snapshot()
    payload['base'] = score_base(analysis, ScoringPolicy.from_config(current_app.config)).to_dict()
    payload['stats'] = board_stats(board)
    return jsonify(payload)


@scoring.route('/fixtures', methods=['GET'])
def list_fixtures():
    return jsonify([fixture.to_dict() for fixture in FIXTURE_BOARDS.values()])


@scoring.route('/templates', methods=['GET'])
def list_templates():
    return jsonify([template.to_dict() for template in TEMPLATES])


# ---- Condition library ----

@scoring.route('/conditions', methods=['GET'])
def list_conditions():
    records = ScoringConditionRecord.query.order_by(ScoringConditionRecord.created_at).all()
    return jsonify([r.to_dict() for r in records])


@scoring.route('/conditions', methods=['POST'])
def create_condition():
    data = _json_body()
    condition = ScoringCondition.from_dict(data, **_limits())
    if not condition.is_compiled:
        return _rejected(condition)
    if db.session.get(ScoringConditionRecord, condition.id) is not None:
        return jsonify({'error': f'Condition {condition.id} already exists'}), 409
    db.session.add(ScoringConditionRecord.from_condition(condition))
    db.session.commit()
    current_app.logger.info(f"[condition-created] id={condition.id}")
    return jsonify(condition.to_dict()), 201


@scoring.route('/conditions/<string:condition_id>', methods=['GET'])
def get_condition(condition_id):
    record = db.get_or_404(ScoringConditionRecord, condition_id)
    return jsonify(record.to_dict())


@scoring.route('/conditions/<string:condition_id>', methods=['PUT'])
def update_condition(condition_id):
    record = db.get_or_404(ScoringConditionRecord, condition_id)
    data = _json_body()
    merged = record.to_dict()
    merged.update(data)
    merged['id'] = record.id
    # The client's compiledSource is never trusted; from_dict recompiles.
    merged.pop('compiledSource', None)
    condition = ScoringCondition.from_dict(merged, **_limits())
    if not condition.is_compiled:
        return _rejected(condition)
    record.update_from(condition)
    db.session.commit()
    current_app.logger.info(f"[condition-updated] id={condition.id}")
    return jsonify(condition.to_dict())


@scoring.route('/conditions/<string:condition_id>', methods=['DELETE'])
def delete_condition(condition_id):
    record = db.get_or_404(ScoringConditionRecord, condition_id)
    db.session.delete(record)
    db.session.commit()
    current_app.logger.info(f"[condition-deleted] id={condition_id}")
    return jsonify({'deleted': condition_id})


# ---- Rule testing ----

@scoring.route('/conditions/<string:condition_id>/tests/run', methods=['POST'])
def run_condition_tests(condition_id):
    record = db.get_or_404(ScoringConditionRecord, condition_id)
    condition = record.to_condition(**_limits())
    results = run_all_tests(condition, _executor())
    payload = _summary(results)
    payload['conditionId'] = condition.id
    return jsonify(payload)


@scoring.route('/conditions/<string:condition_id>/tests/<string:test_id>/run', methods=['POST'])
def run_condition_test(condition_id, test_id):
    record = db.get_or_404(ScoringConditionRecord, condition_id)
    condition = record.to_condition(**_limits())
    test_case = next((tc for tc in condition.test_cases if tc.id == test_id), None)
    if test_case is None:
        return jsonify({'error': f'Test case {test_id} not found'}), 404
    return jsonify(run_test(condition, test_case, _executor()).to_dict())


@scoring.route('/tests/run', methods=['POST'])
def run_adhoc_test():
    data = _json_body()
    raw_condition = data.get('condition')
    raw_case = data.get('testCase')
    if not isinstance(raw_condition, dict) or not isinstance(raw_case, dict):
        return jsonify({'error': "'condition' and 'testCase' objects are required"}), 400
    raw_condition = dict(raw_condition)
    raw_condition.setdefault('id', 'draft')
    raw_condition.setdefault('name', 'Draft formula')
    condition = ScoringCondition.from_dict(raw_condition, **_limits())
    test_case = TestCase.from_dict(raw_case)
    result = run_test(condition, test_case, _executor())
    payload = result.to_dict()
    if condition.last_compilation is not None and not condition.last_compilation.success:
        payload['compilation'] = condition.last_compilation.to_dict()
    return jsonify(payload)
