"""
app/routes/initiative.py — JSON endpoints for the initiative tracker

    POST /api/initiative/<campaign_id>/start                       (GM)
    POST /api/initiative/<campaign_id>/end                         (GM)
    POST /api/initiative/sessions/<session_id>/entries             (GM or player)
    POST /api/initiative/<campaign_id>/next                        (GM)
    POST /api/initiative/<campaign_id>/entries/<entry_id>/remove   (GM or owner)
    GET  /api/initiative/<campaign_id>/status                      (any member)

All routes need a logged-in user; POSTs also need a CSRF token (checked by
CSRFProtect before the view runs). Wire values are decoded here so the
engine only ever sees plain ints and bools.
"""

import re
from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
from app import APP_VERSION
from app.errors import InitiativeError, ValidationError
from app.initiative import (EntryRequest, start_initiative, end_initiative, add_entries,
                            next_turn, remove_entry, get_status)

initiative_bp = Blueprint('initiative', __name__, url_prefix='/api/initiative')

_INT_RE = re.compile(r'^\s*[-+]?\d+\s*$')


@initiative_bp.errorhandler(InitiativeError)
def handle_initiative_error(e):
    return jsonify(e.to_dict()), e.status_code


# ---------------------------------------------------------------------------
# Wire decoding
# ---------------------------------------------------------------------------

def _to_int(value, field):
    # bool is an int subclass; True is not a valid roll
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a whole number.')
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_RE.match(value):
        return int(value)
    raise ValidationError(f'{field} must be a whole number.')


def _to_bool(value, field):
    """Browsers sometimes send "true"/"false" strings for checkboxes."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('true', '1', 'yes', 'on'):
            return True
        if lowered in ('false', '0', 'no', 'off', ''):
            return False
    raise ValidationError(f'{field} must be true or false.')


def decode_entry(raw):
    """Decode one item of an add-entries batch into an EntryRequest.

    Raises ValidationError for anything malformed; the caller skips it.
    """
    if not isinstance(raw, dict):
        raise ValidationError('Each entry must be an object.')

    character_id = raw.get('character_id')
    if character_id in (None, ''):
        character_id = None
    else:
        character_id = _to_int(character_id, 'character_id')
        if character_id <= 0:
            character_id = None

    name = raw.get('name') or ''
    if not isinstance(name, str):
        raise ValidationError('name must be text.')

    if raw.get('initiative_roll') in (None, ''):
        raise ValidationError('initiative_roll is required.')

    bonus = raw.get('initiative_bonus')
    return EntryRequest(
        character_id=character_id,
        name=name.strip(),
        initiative_roll=_to_int(raw['initiative_roll'], 'initiative_roll'),
        initiative_bonus=0 if bonus in (None, '') else _to_int(bonus, 'initiative_bonus'),
        is_player=_to_bool(raw.get('is_player', True), 'is_player'),
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@initiative_bp.route('/<int:campaign_id>/start', methods=['POST'])
@login_required
def start(campaign_id):
    session_id = start_initiative(campaign_id, current_user.id)
    return jsonify(success=True, message='Initiative started.', session_id=session_id), 201


@initiative_bp.route('/<int:campaign_id>/end', methods=['POST'])
@login_required
def end(campaign_id):
    end_initiative(campaign_id, current_user.id)
    return jsonify(success=True, message='Initiative ended.')


@initiative_bp.route('/sessions/<int:session_id>/entries', methods=['POST'])
@login_required
def add(session_id):
    data = request.get_json(silent=True) or {}
    raw_entries = data.get('entries')
    if not isinstance(raw_entries, list):
        raise ValidationError('entries must be a list.')

    decoded = []
    malformed = 0
    for raw in raw_entries:
        try:
            decoded.append(decode_entry(raw))
        except ValidationError:
            malformed += 1

    result = add_entries(session_id, current_user.id, decoded)
    return jsonify(success=True, message='Entries added to initiative.',
                   added=result['added'], skipped=result['skipped'] + malformed)


@initiative_bp.route('/<int:campaign_id>/next', methods=['POST'])
@login_required
def advance(campaign_id):
    result = next_turn(campaign_id, current_user.id)
    return jsonify(success=True, message='Advanced to next turn.', **result)


@initiative_bp.route('/<int:campaign_id>/entries/<int:entry_id>/remove', methods=['POST'])
@login_required
def remove(campaign_id, entry_id):
    remove_entry(entry_id, current_user.id, campaign_id)
    return jsonify(success=True, message='Entry removed from initiative.')


@initiative_bp.route('/<int:campaign_id>/status')
@login_required
def status(campaign_id):
    snapshot = get_status(campaign_id, current_user.id)
    return jsonify(success=True, app_version=APP_VERSION,
                   poll_interval=current_app.config['INITIATIVE_POLL_INTERVAL'], **snapshot)
