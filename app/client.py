"""
app/client.py — HTTP client and status poller for the initiative API

There is no push channel. Each client (GM or player) keeps its own view fresh
by re-fetching the status snapshot on a fixed interval while a campaign is
selected, and replaces its whole turn list with each result. A session that
ends and restarts between two polls therefore needs no special handling.

Public classes:
  InitiativeClient(base_url): one logged-in user's calls against the API
  StatusPoller(client, render, interval): background refresh loop
"""

import logging
import threading

import requests

from app.combatants import roll_d20

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3      # seconds
DEFAULT_TIMEOUT = 10           # seconds per HTTP request


class InitiativeAPIError(Exception):
    """Raised when the API answers with success=false.

    `error` is the machine-readable code ('forbidden', 'invalid_state', ...)
    so callers can offer to start combat instead of showing a permission error.
    """

    def __init__(self, error, message, status_code=None):
        self.error = error
        self.message = message
        self.status_code = status_code
        super().__init__(f'{error}: {message}')


class InitiativeClient:
    def __init__(self, base_url, timeout=DEFAULT_TIMEOUT, http=None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.http = http or requests.Session()
        self._csrf_token = None

    def _url(self, path):
        return f'{self.base_url}{path}'

    def _handle(self, response):
        try:
            data = response.json()
        except ValueError:
            response.raise_for_status()
            raise InitiativeAPIError('bad_response', 'Server did not return JSON.',
                                     response.status_code)
        if not data.get('success'):
            raise InitiativeAPIError(data.get('error', 'error'),
                                     data.get('message', 'Request failed.'),
                                     response.status_code)
        return data

    def _get(self, path, **params):
        response = self.http.get(self._url(path), params=params or None, timeout=self.timeout)
        return self._handle(response)

    def _post(self, path, payload=None):
        if self._csrf_token is None:
            self.refresh_csrf_token()
        try:
            return self._send(path, payload)
        except InitiativeAPIError as e:
            if e.error != 'csrf_failed':
                raise
        # Tokens expire (WTF_CSRF_TIME_LIMIT); fetch a fresh one and retry once
        logger.info('CSRF token rejected for %s, refreshing', path)
        self.refresh_csrf_token()
        return self._send(path, payload)

    def _send(self, path, payload):
        response = self.http.post(self._url(path), json=payload or {},
                                  headers={'X-CSRFToken': self._csrf_token},
                                  timeout=self.timeout)
        return self._handle(response)

    def refresh_csrf_token(self):
        self._csrf_token = self._get('/api/csrf-token')['csrf_token']
        return self._csrf_token

    def login(self, username, password):
        data = self._post('/api/auth/login', {'username': username, 'password': password})
        # Flask-WTF ties tokens to the session; fetch one for the logged-in session
        self.refresh_csrf_token()
        return data

    def start(self, campaign_id):
        return self._post(f'/api/initiative/{campaign_id}/start')['session_id']

    def end(self, campaign_id):
        return self._post(f'/api/initiative/{campaign_id}/end')

    def add_entries(self, session_id, entries, rng=None):
        """Submit a batch. Entries without a roll get one rolled for them,
        like the browser form does when the roll box is left empty."""
        batch = []
        for entry in entries:
            entry = dict(entry)
            if entry.get('initiative_roll') in (None, ''):
                entry['initiative_roll'] = roll_d20(rng)
            batch.append(entry)
        return self._post(f'/api/initiative/sessions/{session_id}/entries', {'entries': batch})

    def next_turn(self, campaign_id):
        data = self._post(f'/api/initiative/{campaign_id}/next')
        return {'turn': data['turn'], 'round': data['round']}

    def remove_entry(self, campaign_id, entry_id):
        return self._post(f'/api/initiative/{campaign_id}/entries/{entry_id}/remove')

    def get_status(self, campaign_id):
        return self._get(f'/api/initiative/{campaign_id}/status')


class StatusPoller:
    """Re-fetch the status snapshot every `interval` seconds for the
    selected campaign and hand it to `render`.

    A failed poll is logged and simply retried on the next tick. With no
    campaign selected the loop idles without making requests.
    """

    def __init__(self, client, render, interval=DEFAULT_POLL_INTERVAL):
        self.client = client
        self.render = render
        self.interval = interval
        self._campaign_id = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = None

    @property
    def campaign_id(self):
        with self._lock:
            return self._campaign_id

    def select_campaign(self, campaign_id):
        with self._lock:
            self._campaign_id = campaign_id

    def clear_campaign(self):
        self.select_campaign(None)

    def poll_once(self):
        """Run one tick. Returns the snapshot rendered, or None."""
        campaign_id = self.campaign_id
        if campaign_id is None:
            return None
        try:
            snapshot = self.client.get_status(campaign_id)
        except (requests.RequestException, InitiativeAPIError) as e:
            logger.warning('Initiative poll for campaign %s failed: %s', campaign_id, e)
            return None
        # The selection may have changed while the request was in flight
        if self.campaign_id != campaign_id:
            return None
        try:
            self.render(snapshot)
        except Exception:
            logger.exception('Rendering initiative status for campaign %s failed', campaign_id)
            return None
        return snapshot

    def _run(self):
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self.interval)

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name='initiative-poller', daemon=True)
        self._thread.start()

    def stop(self, timeout=None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()
