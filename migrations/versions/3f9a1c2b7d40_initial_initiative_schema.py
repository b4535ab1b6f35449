"""Initial schema: users, campaigns, members, characters, initiative

Revision ID: 3f9a1c2b7d40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f9a1c2b7d40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
        sa.Column('id',            sa.Integer(),     nullable=False),
        sa.Column('username',      sa.String(80),    nullable=False),
        sa.Column('password_hash', sa.String(256),   nullable=False),
        sa.Column('created_at',    sa.DateTime(),    nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )

    op.create_table('campaigns',
        sa.Column('id',             sa.Integer(),     nullable=False),
        sa.Column('name',           sa.String(100),   nullable=False),
        sa.Column('description',    sa.Text(),        nullable=True),
        sa.Column('game_master_id', sa.Integer(),     nullable=False),
        sa.Column('join_code',      sa.String(8),     nullable=False),
        sa.Column('max_players',    sa.Integer(),     nullable=True),
        sa.Column('is_active',      sa.Boolean(),     nullable=False),
        sa.Column('created_at',     sa.DateTime(),    nullable=True),
        sa.ForeignKeyConstraint(['game_master_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('join_code'),
    )

    op.create_table('campaign_members',
        sa.Column('id',          sa.Integer(),  nullable=False),
        sa.Column('campaign_id', sa.Integer(),  nullable=False),
        sa.Column('user_id',     sa.Integer(),  nullable=False),
        sa.Column('is_active',   sa.Boolean(),  nullable=False),
        sa.Column('joined_at',   sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id']),
        sa.ForeignKeyConstraint(['user_id'],     ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('campaign_id', 'user_id', name='uq_member_campaign_user'),
    )

    op.create_table('characters',
        sa.Column('id',               sa.Integer(),    nullable=False),
        sa.Column('campaign_id',      sa.Integer(),    nullable=True),
        sa.Column('user_id',          sa.Integer(),    nullable=False),
        sa.Column('name',             sa.String(100),  nullable=False),
        sa.Column('initiative_bonus', sa.Integer(),    nullable=False),
        sa.Column('is_npc',           sa.Boolean(),    nullable=False),
        sa.Column('is_active',        sa.Boolean(),    nullable=False),
        sa.Column('created_at',       sa.DateTime(),   nullable=True),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id']),
        sa.ForeignKeyConstraint(['user_id'],     ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('initiative_sessions',
        sa.Column('id',           sa.Integer(),  nullable=False),
        sa.Column('campaign_id',  sa.Integer(),  nullable=False),
        sa.Column('started_by',   sa.Integer(),  nullable=False),
        sa.Column('is_active',    sa.Boolean(),  nullable=False),
        sa.Column('current_turn', sa.Integer(),  nullable=False),
        sa.Column('round_number', sa.Integer(),  nullable=False),
        sa.Column('started_at',   sa.DateTime(), nullable=True),
        sa.Column('ended_at',     sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id']),
        sa.ForeignKeyConstraint(['started_by'],  ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_initiative_sessions_campaign_id', 'initiative_sessions', ['campaign_id'])

    # One active session per campaign. MySQL can't express a partial index.
    dialect = op.get_bind().dialect.name
    if dialect in ('sqlite', 'postgresql'):
        op.create_index('uq_initiative_sessions_one_active', 'initiative_sessions',
                        ['campaign_id'], unique=True,
                        sqlite_where=sa.text('is_active = 1'),
                        postgresql_where=sa.text('is_active'))

    op.create_table('initiative_entries',
        sa.Column('id',               sa.Integer(),    nullable=False),
        sa.Column('session_id',       sa.Integer(),    nullable=False),
        sa.Column('character_id',     sa.Integer(),    nullable=True),
        sa.Column('name',             sa.String(100),  nullable=False),
        sa.Column('initiative_roll',  sa.Integer(),    nullable=False),
        sa.Column('initiative_bonus', sa.Integer(),    nullable=False),
        sa.Column('is_player',        sa.Boolean(),    nullable=False),
        sa.Column('order_position',   sa.Integer(),    nullable=False),
        sa.Column('is_active',        sa.Boolean(),    nullable=False),
        sa.Column('created_at',       sa.DateTime(),   nullable=True),
        sa.ForeignKeyConstraint(['session_id'],   ['initiative_sessions.id']),
        sa.ForeignKeyConstraint(['character_id'], ['characters.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_initiative_entries_session_id', 'initiative_entries', ['session_id'])


def downgrade():
    op.drop_index('ix_initiative_entries_session_id', table_name='initiative_entries')
    op.drop_table('initiative_entries')
    dialect = op.get_bind().dialect.name
    if dialect in ('sqlite', 'postgresql'):
        op.drop_index('uq_initiative_sessions_one_active', table_name='initiative_sessions')
    op.drop_index('ix_initiative_sessions_campaign_id', table_name='initiative_sessions')
    op.drop_table('initiative_sessions')
    op.drop_table('characters')
    op.drop_table('campaign_members')
    op.drop_table('campaigns')
    op.drop_table('users')
