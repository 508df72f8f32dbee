import os
from dotenv import load_dotenv

load_dotenv()  # loads .env if present

class Config:
    # --- Config ---
    # Prefer an explicit DATABASE_URL (useful for deploys like Heroku/GitHub)
    DATABASE_URL = os.getenv('DATABASE_URL')

    # Fallback env vars. SQLite is the default so the portal runs without extra DB drivers.
    DB_DIALECT = os.getenv('DB_DIALECT', 'sqlite')  # 'postgres', 'mysql' or 'sqlite'
    DB_USER = os.getenv('DB_USER', 'root')
    DB_PASS = os.getenv('DB_PASS', '')
    DB_HOST = os.getenv('DB_HOST', 'localhost')
    DB_PORT = os.getenv('DB_PORT', '3306')
    DB_NAME = os.getenv('DB_NAME', 'skill_spring')

    SECRET_KEY = os.getenv('FLASK_SECRET', 'dev-secret-please-change')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    ADMIN_USERNAME = os.getenv('ADMIN_USERNAME', 'admin')
    ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD', 'admin')

    # Classroom schedules and section windows are naive wall-clock times in this zone
    CLASSROOM_TIMEZONE = os.getenv('CLASSROOM_TIMEZONE', 'Africa/Kigali')
    # Late submissions are accepted this many seconds after a section's end_at
    SUBMISSION_GRACE_SECONDS = int(os.getenv('SUBMISSION_GRACE_SECONDS', '30'))

    # Signaling relay for the live classroom (external service)
    WS_URL = os.getenv('WS_URL', 'ws://127.0.0.1:8080')
    TURN_URL = os.getenv('TURN_URL')
    TURN_USERNAME = os.getenv('TURN_USERNAME')
    TURN_PASSWORD = os.getenv('TURN_PASSWORD')

    @staticmethod
    def get_database_uri():
        """Build and return the database URI"""
        if Config.DATABASE_URL:
            return Config.DATABASE_URL
        else:
            if Config.DB_DIALECT.lower() == 'mysql':
                # use pymysql (install pymysql if you choose mysql)
                return f'mysql+pymysql://{Config.DB_USER}:{Config.DB_PASS}@{Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}'
            elif Config.DB_DIALECT.lower() in ('postgres', 'postgresql'):
                return f'postgresql+psycopg2://{Config.DB_USER}:{Config.DB_PASS}@{Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}'
            else:
                db_path = os.path.join(os.path.dirname(__file__), 'data.sqlite')
                return f'sqlite:///{db_path}'

    @staticmethod
    def get_ice_servers(turn_url=None, turn_username=None, turn_password=None):
        """Public STUN servers plus an optional TURN entry (TURN_URL may be comma separated)."""
        servers = [
            {'urls': 'stun:stun.l.google.com:19302'},
            {'urls': 'stun:stun1.l.google.com:19302'},
        ]
        if turn_url and turn_username and turn_password:
            servers.append({
                'urls': [u.strip() for u in turn_url.split(',') if u.strip()],
                'username': turn_username,
                'credential': turn_password,
            })
        return servers

    @staticmethod
    def as_flask_config():
        """Settings copied into app.config by create_app()"""
        return {
            'SECRET_KEY': Config.SECRET_KEY,
            'SQLALCHEMY_DATABASE_URI': Config.get_database_uri(),
            'SQLALCHEMY_TRACK_MODIFICATIONS': Config.SQLALCHEMY_TRACK_MODIFICATIONS,
            'ADMIN_USERNAME': Config.ADMIN_USERNAME,
            'ADMIN_PASSWORD': Config.ADMIN_PASSWORD,
            'CLASSROOM_TIMEZONE': Config.CLASSROOM_TIMEZONE,
            'SUBMISSION_GRACE_SECONDS': Config.SUBMISSION_GRACE_SECONDS,
            'WS_URL': Config.WS_URL,
            'ICE_SERVERS': Config.get_ice_servers(Config.TURN_URL, Config.TURN_USERNAME, Config.TURN_PASSWORD),
        }
