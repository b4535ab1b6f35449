import os

class Config:
    # Signs the session cookie and the CSRF tokens handed to JSON clients.
    # In production, SECRET_KEY must be set as an environment variable.
    SECRET_KEY = os.environ.get('SECRET_KEY')
    if not SECRET_KEY and os.environ.get('FLASK_ENV') != 'development':
        import warnings
        warnings.warn('SECRET_KEY not set, using insecure default. Set SECRET_KEY env var in production!')
        SECRET_KEY = 'dev-secret-key-not-for-production'
    elif not SECRET_KEY:
        SECRET_KEY = 'dev-secret-key-not-for-production'

    # DATABASE_URL may point at any SQLAlchemy URL (Postgres, MySQL, SQLite).
    # Locally, falls back to the instance/ folder next to this file.
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(os.path.abspath(os.path.dirname(__file__)), 'instance', 'initiative.db')

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session cookie security
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = 'Lax'

    # CSRF tokens expire after 30 minutes; clients re-fetch from /api/csrf-token
    WTF_CSRF_TIME_LIMIT = 1800
    # JSON clients send the token in a header instead of a form field
    WTF_CSRF_HEADERS = ['X-CSRFToken', 'X-CSRF-Token']

    # How often clients re-fetch the initiative status (seconds)
    INITIATIVE_POLL_INTERVAL = int(os.environ.get('INITIATIVE_POLL_INTERVAL', 3))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
