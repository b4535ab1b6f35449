"""
app/initiative.py — Initiative sessions and the shared turn queue

Lifecycle of a combat encounter in a campaign:

    (no session) --start--> active --end--> ended

Ended sessions are never resumed; the next start() creates a new row. While
a session is active the GM (and players, for their own characters) can add
entries, the GM advances the turn, and the GM or a character's owner can
remove an entry.

Every mutation runs in one transaction that first locks the session row
(SELECT ... FOR UPDATE), so two requests against the same session can't
interleave their re-sorts. Readers only ever see committed positions.

Public functions:
  start_initiative(campaign_id, user_id)          -> new session id
  end_initiative(campaign_id, user_id)
  add_entries(session_id, user_id, entries)       -> {'added': n, 'skipped': n}
  next_turn(campaign_id, user_id)                 -> {'turn': n, 'round': n}
  remove_entry(entry_id, user_id, campaign_id)
  get_status(campaign_id, user_id)                -> {'active': bool, ...}
"""

from collections import namedtuple
from datetime import datetime
from functools import wraps

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app import db
from app.campaign_access import is_game_master, is_campaign_member, is_character_owner
from app.combatants import (resolve, is_valid_roll, is_valid_bonus,
                            MAX_BONUS, MAX_NAME_LENGTH)
from app.errors import (InitiativeError, Forbidden, InvalidState, Conflict,
                        NotFound, ValidationError, InternalError)
from app.models import Campaign, InitiativeSession, InitiativeEntry
from app.turn_order import sort_turn_order

# One requested queue entry, already decoded from the wire.
# character_id is None for freeform NPCs/monsters.
EntryRequest = namedtuple('EntryRequest', [
    'character_id', 'name', 'initiative_roll', 'initiative_bonus', 'is_player',
])


def _transaction(action):
    """Roll back on any failure. Storage errors are logged and replaced
    with a generic InternalError so nothing about the database leaks."""
    def decorator(f):
        @wraps(f)
        def wrapped(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except InitiativeError:
                db.session.rollback()
                raise
            except SQLAlchemyError as e:
                db.session.rollback()
                current_app.logger.error(f'initiative {action} failed: {e}')
                raise InternalError()
            except Exception:
                # Driver errors (e.g. OverflowError) are not SQLAlchemyErrors
                db.session.rollback()
                current_app.logger.exception(f'initiative {action} failed')
                raise InternalError()
        return wrapped
    return decorator


def _get_campaign(campaign_id, lock=False):
    query = Campaign.query.filter_by(id=campaign_id)
    if lock:
        query = query.with_for_update()
    campaign = query.first()
    if campaign is None:
        raise NotFound('Campaign not found.')
    return campaign


def _active_session(campaign_id, lock=False):
    query = InitiativeSession.query.filter_by(campaign_id=campaign_id, is_active=True)
    if lock:
        query = query.with_for_update().populate_existing()
    return query.first()


def _lock_session(session_id):
    return (InitiativeSession.query
            .filter_by(id=session_id)
            .with_for_update()
            .populate_existing()
            .first())


def _active_entries(session_id):
    """Active entries in insertion order, the order the sorter expects."""
    return (InitiativeEntry.query
            .filter_by(session_id=session_id, is_active=True)
            .order_by(InitiativeEntry.id)
            .all())


def _entry_at_turn(session_id, turn):
    return InitiativeEntry.query.filter_by(
        session_id=session_id, is_active=True, order_position=turn
    ).first()


def _resort(session):
    return sort_turn_order(_active_entries(session.id))


# ── Lifecycle ─────────────────────────────────────────────────────────────────

@_transaction('start')
def start_initiative(campaign_id, user_id):
    # Locking the campaign row serializes concurrent starts on every backend,
    # including ones without the partial unique index.
    campaign = _get_campaign(campaign_id, lock=True)
    if not is_game_master(campaign_id, user_id):
        raise Forbidden('Only the Game Master can start initiative.')
    if not campaign.is_active:
        raise InvalidState('This campaign is archived.')
    if _active_session(campaign_id) is not None:
        raise Conflict()

    session = InitiativeSession(
        campaign_id=campaign_id,
        started_by=user_id,
        is_active=True,
        current_turn=1,
        round_number=1,
    )
    db.session.add(session)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race against another start on the same campaign
        db.session.rollback()
        raise Conflict()

    current_app.logger.info(
        f'Initiative session {session.id} started in campaign {campaign_id} by user {user_id}')
    return session.id


@_transaction('end')
def end_initiative(campaign_id, user_id):
    _get_campaign(campaign_id)
    if not is_game_master(campaign_id, user_id):
        raise Forbidden('Only the Game Master can end initiative.')

    session = _active_session(campaign_id, lock=True)
    if session is None:
        raise InvalidState()

    session.is_active = False
    session.ended_at = datetime.utcnow()
    db.session.commit()
    current_app.logger.info(f'Initiative session {session.id} ended by user {user_id}')


# ── Queue mutations ───────────────────────────────────────────────────────────

def _build_entry(session, item, user_id, is_gm):
    """Turn one EntryRequest into an unsaved InitiativeEntry.

    Raises NotFound, Forbidden or ValidationError when the item can't be
    added; add_entries() skips those items.
    """
    if item.character_id:
        combatant = resolve(item.character_id, item.name, item.initiative_bonus)
        if combatant.campaign_id != session.campaign_id:
            raise Forbidden('Character is not part of this campaign.')
        if not is_gm:
            if not item.is_player:
                raise Forbidden('Only the Game Master can add NPCs.')
            if not is_character_owner(item.character_id, user_id):
                raise Forbidden('You can only add your own characters.')
        is_player = item.is_player
    else:
        if not is_gm:
            raise Forbidden('Only the Game Master can add NPCs.')
        combatant = resolve(None, item.name, item.initiative_bonus)
        is_player = False

    name = (combatant.name or '').strip()
    if not name:
        raise ValidationError('Name is required.')
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f'Name is longer than {MAX_NAME_LENGTH} characters.')
    if not is_valid_roll(item.initiative_roll):
        raise ValidationError(f'Initiative roll {item.initiative_roll} is outside 1-20.')
    bonus = combatant.bonus or 0
    if not is_valid_bonus(bonus):
        raise ValidationError(f'Initiative bonus must be between -{MAX_BONUS} and {MAX_BONUS}.')

    return InitiativeEntry(
        session_id=session.id,
        character_id=item.character_id or None,
        name=name,
        initiative_roll=item.initiative_roll,
        initiative_bonus=bonus,
        is_player=is_player,
        is_active=True,
        order_position=0,
    )


@_transaction('add')
def add_entries(session_id, user_id, entries):
    """Add a batch of EntryRequests to an active session.

    Best effort per item: an entry that fails resolution, authorization or
    validation is skipped and the rest still go in. The whole call only
    fails when the session itself is missing or not active.
    """
    session = _lock_session(session_id)
    if session is None:
        raise NotFound('Initiative session not found.')
    if not session.is_active:
        raise InvalidState('Initiative session is not active.')

    is_gm = is_game_master(session.campaign_id, user_id)
    current = _entry_at_turn(session.id, session.current_turn)

    added = 0
    skipped = 0
    for item in entries:
        try:
            entry = _build_entry(session, item, user_id, is_gm)
        except InitiativeError as e:
            skipped += 1
            current_app.logger.info(
                f'Skipping initiative entry {item.name!r} for session {session_id}: {e.message}')
            continue
        db.session.add(entry)
        added += 1

    db.session.flush()
    ordered = _resort(session)

    # Keep the turn with whoever held it before the insert
    if current is not None:
        session.current_turn = current.order_position
    elif not ordered:
        session.current_turn = 1

    db.session.commit()
    current_app.logger.info(
        f'Initiative session {session_id}: added {added}, skipped {skipped} (user {user_id})')
    return {'added': added, 'skipped': skipped}


@_transaction('next')
def next_turn(campaign_id, user_id):
    _get_campaign(campaign_id)
    if not is_game_master(campaign_id, user_id):
        raise Forbidden('Only the Game Master can advance initiative.')

    session = _active_session(campaign_id, lock=True)
    if session is None:
        raise InvalidState()

    total = InitiativeEntry.query.filter_by(session_id=session.id, is_active=True).count()
    if total == 0:
        raise InvalidState('No entries in initiative.')

    new_turn = session.current_turn + 1
    new_round = session.round_number
    if new_turn > total:
        new_turn = 1
        new_round += 1

    session.current_turn = new_turn
    session.round_number = new_round
    db.session.commit()
    current_app.logger.info(
        f'Initiative session {session.id}: round {new_round}, turn {new_turn} of {total}')
    return {'turn': new_turn, 'round': new_round}


@_transaction('remove')
def remove_entry(entry_id, user_id, campaign_id):
    """Soft-delete an entry and close the gap in the order.

    The cursor follows the combatant: removing someone ahead of the current
    turn shifts the cursor back one, and removing the combatant whose turn
    it is passes the turn to whoever slides into that slot (wrapping to the
    top without starting a new round).
    """
    entry = (InitiativeEntry.query
             .join(InitiativeSession)
             .filter(InitiativeEntry.id == entry_id,
                     InitiativeSession.campaign_id == campaign_id)
             .first())
    if entry is None:
        raise NotFound('Initiative entry not found.')

    if not (is_game_master(campaign_id, user_id)
            or is_character_owner(entry.character_id, user_id)):
        raise Forbidden('You do not have permission to remove this entry.')

    session = _lock_session(entry.session_id)
    if not session.is_active:
        raise InvalidState('Initiative session is not active.')
    db.session.refresh(entry)
    if not entry.is_active:
        raise NotFound('Initiative entry not found.')

    removed_position = entry.order_position
    entry.is_active = False
    db.session.flush()
    ordered = _resort(session)

    if removed_position < session.current_turn:
        session.current_turn -= 1
    if session.current_turn > len(ordered) or session.current_turn < 1:
        session.current_turn = 1

    db.session.commit()
    current_app.logger.info(
        f'Initiative entry {entry_id} ({entry.name}) removed from session {session.id} by user {user_id}')


# ── Status projection ─────────────────────────────────────────────────────────

def _entry_to_dict(entry):
    character = entry.character
    return {
        'id': entry.id,
        'character_id': entry.character_id,
        'name': entry.name,
        'character_name': character.name if character else None,
        'player_username': character.owner.username if character and character.owner else None,
        'initiative_roll': entry.initiative_roll,
        'initiative_bonus': entry.initiative_bonus,
        'total_initiative': entry.total_initiative,
        'is_player': entry.is_player,
        'order_position': entry.order_position,
    }


def _session_to_dict(session, entry_count):
    return {
        'id': session.id,
        'campaign_id': session.campaign_id,
        'started_by': session.started_by,
        'started_at': session.started_at.isoformat() if session.started_at else None,
        'current_turn': session.current_turn,
        'round_number': session.round_number,
        'entry_count': entry_count,
    }


@_transaction('status')
def get_status(campaign_id, user_id):
    """Snapshot polled by every client in the campaign.

    {'active': False} when no combat is running; otherwise the session and
    its active entries in turn order, with totals computed now.
    """
    _get_campaign(campaign_id)
    if not is_campaign_member(campaign_id, user_id):
        raise Forbidden('You are not a member of this campaign.')

    session = _active_session(campaign_id)
    if session is None:
        return {'active': False}

    entries = (InitiativeEntry.query
               .filter_by(session_id=session.id, is_active=True)
               .order_by(InitiativeEntry.order_position, InitiativeEntry.id)
               .all())
    return {
        'active': True,
        'session': _session_to_dict(session, len(entries)),
        'entries': [_entry_to_dict(e) for e in entries],
    }
