"""
ExamCore - Application Factory
"""
import os
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from dotenv import load_dotenv

from examcore.config import config
from examcore.logging_config import configure_logging

# Load environment variables
load_dotenv()

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()


def create_app(config_name=None, **overrides):
    """Create and configure the Flask application"""
    app = Flask(__name__)

    if config_name is None:
        config_name = os.getenv('FLASK_CONFIG', 'default')
    app.config.from_object(config[config_name])
    app.config.update(overrides)

    logger = configure_logging(app.config['LOG_LEVEL'])

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db)

    # Timer stores are shared by every request of this process
    from examcore.services.kv_store import create_kv_store
    from examcore.services.timer_store import TimerStore, TimerPresetStore

    kv_store = create_kv_store(app.config)
    app.extensions['timer_store'] = TimerStore(
        kv_store,
        key_prefix=app.config['TIMER_KEY_PREFIX'],
        default_total_seconds=app.config['TIMER_DEFAULT_TOTAL_SECONDS']
    )
    app.extensions['timer_presets'] = TimerPresetStore(kv_store)

    with app.app_context():
        from examcore import models  # noqa: F401  (register tables)
        db.create_all()

    # Register blueprints
    from examcore.assessment import assessment_bp

    app.register_blueprint(assessment_bp, url_prefix='/assessments')

    logger.info("[ExamCore] Application created with config '%s'", config_name)
    return app
