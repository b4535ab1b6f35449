"""Tests for combatant resolution and dice."""

import random

import pytest

from app import db
from app.combatants import resolve, roll_d20, is_valid_roll
from app.errors import NotFound


def test_character_record_overrides_supplied_values(party):
    pc = party['alice_pc']
    combatant = resolve(pc.id, 'Not Alice', 99)
    assert combatant.name == 'Alice'
    assert combatant.bonus == 3
    assert combatant.owner_user_id == party['alice'].id
    assert combatant.campaign_id == party['campaign'].id


def test_unknown_character_is_rejected(app):
    with pytest.raises(NotFound):
        resolve(4242, 'Impostor', 10)


def test_deactivated_character_is_rejected(party):
    pc = party['bob_pc']
    pc.is_active = False
    db.session.commit()
    with pytest.raises(NotFound):
        resolve(pc.id, 'Bob', 1)


@pytest.mark.parametrize('character_id', [None, 0])
def test_freeform_npc_uses_supplied_values(app, character_id):
    combatant = resolve(character_id, 'Goblin', 2)
    assert combatant.name == 'Goblin'
    assert combatant.bonus == 2
    assert combatant.owner_user_id is None


def test_roll_bounds():
    assert not is_valid_roll(0)
    assert is_valid_roll(1)
    assert is_valid_roll(20)
    assert not is_valid_roll(21)


def test_roll_d20_stays_on_the_die():
    rng = random.Random(7)
    rolls = {roll_d20(rng) for _ in range(500)}
    assert rolls <= set(range(1, 21))
    assert 1 in rolls and 20 in rolls
