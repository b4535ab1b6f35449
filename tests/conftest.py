import pytest
from flask import g

from app import create_app, db
from app.models import User, Campaign, CampaignMember, Character
from config import Config


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    SECRET_KEY = 'test-secret'


@pytest.fixture
def app():
    """Fresh in-memory database for every test."""
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(username, password=None):
        user = User(username=username)
        if password:
            user.set_password(password)
        else:
            # Hashing is slow; most tests never log in with a password
            user.password_hash = 'unused'
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_campaign(app):
    _counter = iter(range(1, 10000))

    def _make(gm, players=(), is_active=True):
        campaign = Campaign(name='Test Campaign', game_master_id=gm.id,
                            join_code=f'CODE{next(_counter):04d}', is_active=is_active)
        db.session.add(campaign)
        db.session.flush()
        db.session.add(CampaignMember(campaign_id=campaign.id, user_id=gm.id))
        for player in players:
            db.session.add(CampaignMember(campaign_id=campaign.id, user_id=player.id))
        db.session.commit()
        return campaign
    return _make


@pytest.fixture
def make_character(app):
    def _make(owner, campaign, name, bonus=0, is_npc=False):
        character = Character(campaign_id=campaign.id if campaign else None,
                              user_id=owner.id, name=name,
                              initiative_bonus=bonus, is_npc=is_npc)
        db.session.add(character)
        db.session.commit()
        return character
    return _make


@pytest.fixture
def party(make_user, make_campaign, make_character):
    """A GM, two players with one character each, and an outsider."""
    gm = make_user('gm')
    alice = make_user('alice')
    bob = make_user('bob')
    outsider = make_user('mallory')
    campaign = make_campaign(gm, players=[alice, bob])
    return {
        'gm': gm,
        'alice': alice,
        'bob': bob,
        'outsider': outsider,
        'campaign': campaign,
        'alice_pc': make_character(alice, campaign, 'Alice', bonus=3),
        'bob_pc': make_character(bob, campaign, 'Bob', bonus=1),
    }


@pytest.fixture
def login_as(client):
    """Log the test client in without going through the password check."""
    def _login(user):
        with client.session_transaction() as sess:
            sess['_user_id'] = str(user.id)
            sess['_fresh'] = True
        # Requests share this app context, so forget any user Flask-Login cached
        g.pop('_login_user', None)
    return _login
