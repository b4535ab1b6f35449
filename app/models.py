from app import db
from datetime import datetime
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    characters = db.relationship('Character', backref='owner', lazy=True)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password, method='pbkdf2:sha256')

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f'<User {self.username}>'


class Campaign(db.Model):
    """A group of players run by one Game Master. Players join with the
    8-character join code; is_active=False means the campaign is archived."""
    __tablename__ = 'campaigns'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    game_master_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    join_code = db.Column(db.String(8), unique=True, nullable=False)
    max_players = db.Column(db.Integer, default=6)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    game_master = db.relationship('User', backref='campaigns_run', foreign_keys=[game_master_id])
    members = db.relationship('CampaignMember', backref='campaign',
                              cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Campaign {self.name}>'


class CampaignMember(db.Model):
    """One user's membership in a campaign. Leaving sets is_active=False
    rather than deleting the row."""
    __tablename__ = 'campaign_members'

    id = db.Column(db.Integer, primary_key=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaigns.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    joined_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', backref='memberships')

    __table_args__ = (db.UniqueConstraint('campaign_id', 'user_id', name='uq_member_campaign_user'),)

    def __repr__(self):
        return f'<CampaignMember campaign={self.campaign_id} user={self.user_id}>'


class Character(db.Model):
    """A player character or GM-owned NPC. Only the fields the initiative
    tracker reads are modelled here; the full sheet lives elsewhere."""
    __tablename__ = 'characters'

    id = db.Column(db.Integer, primary_key=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaigns.id'), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    initiative_bonus = db.Column(db.Integer, default=0, nullable=False)
    is_npc = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    campaign = db.relationship('Campaign', backref='characters')

    def __repr__(self):
        return f'<Character {self.name}>'


class InitiativeSession(db.Model):
    """One combat encounter within a campaign.

    current_turn is a 1-based cursor into the active entries ordered by
    order_position; an empty queue is "turn 1 of 0". round_number starts
    at 1 and only next_turn() increments it. Ending a session is final;
    a new start() creates a new row.
    """
    __tablename__ = 'initiative_sessions'

    id = db.Column(db.Integer, primary_key=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey('campaigns.id'), nullable=False, index=True)
    started_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    current_turn = db.Column(db.Integer, default=1, nullable=False)
    round_number = db.Column(db.Integer, default=1, nullable=False)
    started_at = db.Column(db.DateTime, default=datetime.utcnow)
    ended_at = db.Column(db.DateTime, nullable=True)

    campaign = db.relationship('Campaign', backref='initiative_sessions')
    starter = db.relationship('User', foreign_keys=[started_by])
    entries = db.relationship('InitiativeEntry', backref='session',
                              cascade='all, delete-orphan',
                              order_by='InitiativeEntry.order_position')

    # At most one active session per campaign. MySQL has no partial indexes,
    # so there start() relies on the campaign row lock alone.
    __table_args__ = (
        db.Index('uq_initiative_sessions_one_active', 'campaign_id', unique=True,
                 sqlite_where=db.text('is_active = 1'),
                 postgresql_where=db.text('is_active')).ddl_if(dialect=('sqlite', 'postgresql')),
    )

    def __repr__(self):
        return f'<InitiativeSession {self.id} campaign={self.campaign_id}>'


class InitiativeEntry(db.Model):
    """One combatant's slot in a session's turn queue. Removal is a soft
    delete (is_active=False) so ended sessions keep their history."""
    __tablename__ = 'initiative_entries'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('initiative_sessions.id'), nullable=False, index=True)
    character_id = db.Column(db.Integer, db.ForeignKey('characters.id'), nullable=True)
    name = db.Column(db.String(100), nullable=False)
    initiative_roll = db.Column(db.Integer, nullable=False)    # the d20 result, 1-20
    initiative_bonus = db.Column(db.Integer, default=0, nullable=False)
    is_player = db.Column(db.Boolean, default=False, nullable=False)
    order_position = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    character = db.relationship('Character')

    @property
    def total_initiative(self):
        return self.initiative_roll + self.initiative_bonus

    def __repr__(self):
        return f'<InitiativeEntry {self.name} {self.total_initiative}>'
