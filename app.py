from flask import Flask, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from config import Config
from models import db
from admin_routes import admin_bp
from student_routes import student_bp
from teacher_routes import teacher_bp
from utils import local_now

# Columns added after the first release; older SQLite files get them at startup
_LATE_COLUMNS = {
    'assessment_answers': {
        'awarded_marks': 'INTEGER NOT NULL DEFAULT 0',
        'graded_at': 'DATETIME',
    },
    'assessment_submissions': {
        'auto_submitted': 'BOOLEAN NOT NULL DEFAULT 0',
    },
    'classrooms': {
        'logo_url': 'VARCHAR(512)',
    },
}

def init_database(app):
    """Create tables and handle lightweight SQLite migrations"""
    db.create_all()

    # Only run for SQLite to avoid accidental DDL on other DBs.
    if not app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite'):
        return
    for table, columns in _LATE_COLUMNS.items():
        try:
            res = db.session.execute(text(f"PRAGMA table_info('{table}');")).fetchall()
            existing = {r[1] for r in res}  # r[1] is column name
            for name, ddl in columns.items():
                if name not in existing:
                    db.session.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl};"))
                    db.session.commit()
                    app.logger.info('added column %s.%s', table, name)
        except SQLAlchemyError:
            db.session.rollback()
            # don't let a migration break app start
            app.logger.exception('migration of %s failed', table)

def create_app(overrides=None):
    app = Flask(__name__)
    app.config.update(Config.as_flask_config())
    if overrides:
        app.config.update(overrides)

    # Initialize database
    db.init_app(app)

    # Register blueprints
    app.register_blueprint(admin_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(teacher_bp)

    # Server time endpoint (classroom timezone wall clock)
    @app.route('/api/server_time')
    def server_time():
        return jsonify({'ok': True, 'timezone': app.config['CLASSROOM_TIMEZONE'],
                        'server_time': local_now().isoformat()})

    with app.app_context():
        init_database(app)
    return app

# Run the application
if __name__ == '__main__':
    create_app().run(debug=True)
