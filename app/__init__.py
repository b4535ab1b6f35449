from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect, CSRFError
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from config import Config
import os

# App version, reported by the status endpoint so polling clients can
# notice a server upgrade.
APP_VERSION = '1.0.0'

# Create the database object here, but don't attach it to an app yet
db = SQLAlchemy()

# Migrations are tracked with Alembic (migrations/versions/)
migrate = Migrate()

# Login manager: the request layer's "is this request authenticated" fact
login_manager = LoginManager()

# CSRF protection: every POST must carry a token, either as the
# csrf_token form field or in the X-CSRFToken header for JSON clients.
csrf = CSRFProtect()

# Rate limiter: slows down brute-force attempts on login.
# Uses in-memory storage by default (sufficient for single-server deployment).
limiter = Limiter(key_func=get_remote_address, default_limits=[])


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Attach the database and migration engine to this app instance
    db.init_app(app)
    migrate.init_app(app, db)

    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        from app.models import User
        return db.session.get(User, int(user_id))

    # The API is JSON-only, so an anonymous request gets a 401 body
    # instead of a redirect to a login page.
    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify(success=False, error='unauthorized',
                       message='Please log in.'), 401

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f'CSRF check failed: {e.description}')
        return jsonify(success=False, error='csrf_failed',
                       message='Invalid request token.'), 400

    # SQLite needs its folder to exist before the first connection
    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite:///'):
        db_path = app.config['SQLALCHEMY_DATABASE_URI'][len('sqlite:///'):]
        if db_path and db_path != ':memory:':
            os.makedirs(os.path.dirname(db_path), exist_ok=True)

    # Register Blueprints. Each Blueprint is a group of related routes
    from app.routes.auth import auth_bp
    from app.routes.initiative import initiative_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(initiative_bp)

    # CLI command: flask seed-demo
    # Creates a GM, two players, a campaign and their characters so the
    # initiative API can be tried locally.
    @app.cli.command('seed-demo')
    def seed_demo():
        """Load a demo campaign with a GM, two players and their characters."""
        from app.models import User, Campaign, CampaignMember, Character
        from app.campaign_access import generate_join_code

        if User.query.filter_by(username='gm').first():
            print('Demo data already present. Skipped.')
            return

        users = {}
        for username in ('gm', 'alice', 'bob'):
            user = User(username=username)
            user.set_password('password123')
            db.session.add(user)
            users[username] = user
        db.session.flush()

        campaign = Campaign(name='Demo Campaign', game_master_id=users['gm'].id,
                            join_code=generate_join_code())
        db.session.add(campaign)
        db.session.flush()

        for username in ('gm', 'alice', 'bob'):
            db.session.add(CampaignMember(campaign_id=campaign.id, user_id=users[username].id))
        db.session.add(Character(campaign_id=campaign.id, user_id=users['alice'].id,
                                 name='Alice', initiative_bonus=3))
        db.session.add(Character(campaign_id=campaign.id, user_id=users['bob'].id,
                                 name='Bob', initiative_bonus=1))
        db.session.commit()
        print(f'Created campaign {campaign.id} (join code {campaign.join_code}); '
              f'users gm/alice/bob, password "password123".')

    return app
