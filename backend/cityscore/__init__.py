from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from cityscore.config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from cityscore.main import main
    flask_app.register_blueprint(main)

    from cityscore.api.scoring import scoring
    # Mount scoring routes under /api to match the editor's API client
    flask_app.register_blueprint(scoring, url_prefix='/api/scoring')

    from cityscore.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Ensure the table is known to create_all / migrations
    from cityscore import models  # noqa: F401

    @click.command('seed-templates')
    def seed_templates_command():
        """Stores the built-in formula templates as global conditions."""
        from cityscore.models import ScoringConditionRecord
        from cityscore.services.scoring.compiler import limits_from_config
        from cityscore.services.scoring.conditions import ScoringCondition
        from cityscore.services.scoring.templates import TEMPLATES

        with flask_app.app_context():
            limits = limits_from_config(flask_app.config)
            seeded = 0
            for template in TEMPLATES:
                condition = ScoringCondition.from_dict(template.as_condition_data(), **limits)
                if not condition.is_compiled:
                    print(f'Skipping {template.id}: {condition.last_compilation.error}')
                    continue
                record = db.session.get(ScoringConditionRecord, condition.id)
                if record is None:
                    db.session.add(ScoringConditionRecord.from_condition(condition))
                else:
                    record.update_from(condition)
                seeded += 1
            db.session.commit()
            print(f'Seeded {seeded} formula templates!')

    flask_app.cli.add_command(seed_templates_command)

    return flask_app
