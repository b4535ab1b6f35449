"""
app/campaign_access.py — Campaign and character facts the initiative engine trusts

The engine never inspects campaign or character rows directly; it asks these
four questions. Campaign/character CRUD lives outside this project.
"""

import secrets

from app import db
from app.errors import NotFound
from app.models import Campaign, CampaignMember, Character


def is_game_master(campaign_id, user_id):
    """True if user_id runs this campaign."""
    campaign = db.session.get(Campaign, campaign_id)
    return campaign is not None and campaign.game_master_id == user_id


def is_campaign_member(campaign_id, user_id):
    """True for the GM and for active members of an active (non-archived) campaign."""
    campaign = db.session.get(Campaign, campaign_id)
    if campaign is None or not campaign.is_active:
        return False
    if campaign.game_master_id == user_id:
        return True
    membership = CampaignMember.query.filter_by(
        campaign_id=campaign_id, user_id=user_id, is_active=True
    ).first()
    return membership is not None


def resolve_character(character_id):
    """Return the initiative-relevant facts for a character.

    Raises NotFound for unknown or deactivated characters.
    """
    character = db.session.get(Character, character_id)
    if character is None or not character.is_active:
        raise NotFound('Character not found.')
    return {
        'name': character.name,
        'initiative_bonus': character.initiative_bonus or 0,
        'owner_user_id': character.user_id,
        'campaign_id': character.campaign_id,
    }


def is_character_owner(character_id, user_id):
    if not character_id:
        return False
    character = db.session.get(Character, character_id)
    return character is not None and character.user_id == user_id


def generate_join_code():
    """8 uppercase hex characters, unique across campaigns."""
    code = secrets.token_hex(4).upper()
    while Campaign.query.filter_by(join_code=code).first():
        code = secrets.token_hex(4).upper()
    return code
