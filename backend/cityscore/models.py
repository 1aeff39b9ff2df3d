from cityscore import db
from cityscore.services.scoring.conditions import ScoringCondition
from datetime import datetime
import json


class ScoringConditionRecord(db.Model):
    __tablename__ = 'scoring_condition'
    id = db.Column(db.String(128), primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    source = db.Column(db.Text, nullable=False)
    compiled_source = db.Column(db.Text, nullable=True)
    target_contribution = db.Column(db.Float, nullable=False, default=0)
    is_global = db.Column(db.Boolean, nullable=False, default=False)
    test_cases = db.Column(db.Text, nullable=True)  # JSON-encoded list of test cases
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @classmethod
    def from_condition(cls, condition: ScoringCondition) -> 'ScoringConditionRecord':
        record = cls(id=condition.id)
        record.update_from(condition)
        return record

    def update_from(self, condition: ScoringCondition) -> None:
        data = condition.to_dict()
        self.name = data['name']
        self.description = data['description']
        self.source = data['source']
        self.compiled_source = data['compiledSource']
        self.target_contribution = data['targetContribution']
        self.is_global = data['isGlobal']
        self.test_cases = json.dumps(data['testCases'])

    def to_dict(self):
        target = self.target_contribution or 0
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description or '',
            'source': self.source,
            'compiledSource': self.compiled_source,
            'targetContribution': int(target) if float(target).is_integer() else target,
            'isGlobal': bool(self.is_global),
            'testCases': json.loads(self.test_cases) if self.test_cases else [],
        }

    def to_condition(self, **limits) -> ScoringCondition:
        """Rebuild the domain object; the stored source is always recompiled."""
        return ScoringCondition.from_dict(self.to_dict(), **limits)
