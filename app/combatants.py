"""
app/combatants.py — Resolve who a combatant is and what they add to a roll

A combatant is either a character on file (the character record is
authoritative for name and initiative bonus) or a freeform NPC/monster
named by the GM.
"""

import random
from collections import namedtuple

from app.campaign_access import resolve_character

Combatant = namedtuple('Combatant', ['name', 'bonus', 'owner_user_id', 'campaign_id'])

# Natural d20 range; rolls outside it are rejected
MIN_ROLL = 1
MAX_ROLL = 20

# Anything past these is a typo or an attack, and would not fit the columns
MAX_BONUS = 1000
MAX_NAME_LENGTH = 100


def resolve(character_id, supplied_name, supplied_bonus):
    """Return the Combatant for one queue entry.

    With a character_id, the stored character's name and bonus replace the
    supplied ones. A missing character raises NotFound; we never fall back
    to the caller's values, or a player could post any stats they like.
    Without a character_id the supplied values are used as-is; the caller
    decides whether this user may add a freeform NPC.
    """
    if character_id:
        character = resolve_character(character_id)
        return Combatant(
            name=character['name'],
            bonus=character['initiative_bonus'],
            owner_user_id=character['owner_user_id'],
            campaign_id=character['campaign_id'],
        )
    return Combatant(
        name=supplied_name,
        bonus=supplied_bonus,
        owner_user_id=None,
        campaign_id=None,
    )


def is_valid_roll(roll):
    return MIN_ROLL <= roll <= MAX_ROLL


def is_valid_bonus(bonus):
    return -MAX_BONUS <= bonus <= MAX_BONUS


def roll_d20(rng=None):
    """Roll a d20. Pass a random.Random for repeatable rolls."""
    return (rng or random).randint(MIN_ROLL, MAX_ROLL)
