"""Tests for the HTTP client and status poller, against a fake transport."""

import random

import pytest
import requests

from app.client import InitiativeClient, InitiativeAPIError, StatusPoller


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def json(self):
        if self.payload is None:
            raise ValueError('no json')
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error')


class FakeHttp:
    """Answers by URL path; records every call."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def _answer(self, method, url, **kwargs):
        path = url.split('://', 1)[-1].split('/', 1)[-1]
        self.calls.append((method, '/' + path, kwargs))
        answer = self.routes['/' + path]
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            answer = answer()
        return answer

    def get(self, url, **kwargs):
        return self._answer('GET', url, **kwargs)

    def post(self, url, **kwargs):
        return self._answer('POST', url, **kwargs)


CSRF = {'/api/csrf-token': FakeResponse({'success': True, 'csrf_token': 'tok-1'})}


def make_client(routes):
    http = FakeHttp({**CSRF, **routes})
    return InitiativeClient('http://gm.local/', http=http), http


def test_posts_carry_csrf_header():
    client, http = make_client({
        '/api/initiative/4/start': FakeResponse({'success': True, 'session_id': 12}, 201),
    })
    assert client.start(4) == 12

    assert [c[:2] for c in http.calls] == [('GET', '/api/csrf-token'),
                                           ('POST', '/api/initiative/4/start')]
    assert http.calls[1][2]['headers'] == {'X-CSRFToken': 'tok-1'}


def test_token_fetched_once():
    client, http = make_client({
        '/api/initiative/4/next': FakeResponse({'success': True, 'turn': 2, 'round': 1}),
    })
    assert client.next_turn(4) == {'turn': 2, 'round': 1}
    client.next_turn(4)
    assert sum(1 for c in http.calls if c[1] == '/api/csrf-token') == 1


def test_login_refreshes_token():
    client, http = make_client({
        '/api/auth/login': FakeResponse({'success': True, 'user_id': 1, 'username': 'gm'}),
    })
    client.login('gm', 'pw')
    paths = [c[1] for c in http.calls]
    assert paths == ['/api/csrf-token', '/api/auth/login', '/api/csrf-token']
    assert http.calls[1][2]['json'] == {'username': 'gm', 'password': 'pw'}


def test_missing_rolls_are_rolled():
    client, http = make_client({
        '/api/initiative/sessions/3/entries': FakeResponse({'success': True, 'added': 2, 'skipped': 0}),
    })
    client.add_entries(3, [
        {'name': 'Goblin', 'initiative_bonus': 1},
        {'name': 'Orc', 'initiative_roll': 7},
    ], rng=random.Random(1))

    batch = http.calls[-1][2]['json']['entries']
    assert 1 <= batch[0]['initiative_roll'] <= 20
    assert batch[1]['initiative_roll'] == 7


def test_error_payload_raises():
    client, _ = make_client({
        '/api/initiative/4/status': FakeResponse(
            {'success': False, 'error': 'forbidden', 'message': 'Nope.'}, 403),
    })
    with pytest.raises(InitiativeAPIError) as excinfo:
        client.get_status(4)
    assert excinfo.value.error == 'forbidden'
    assert excinfo.value.status_code == 403


def test_non_json_error_raises_http_error():
    client, _ = make_client({'/api/initiative/4/status': FakeResponse(None, 502)})
    with pytest.raises(requests.HTTPError):
        client.get_status(4)


def test_expired_token_is_refreshed_and_retried_once():
    tokens = iter(['tok-old', 'tok-new'])
    answers = [
        FakeResponse({'success': False, 'error': 'csrf_failed', 'message': 'Invalid request token.'}, 400),
        FakeResponse({'success': True, 'message': 'Initiative ended.'}),
    ]
    client, http = make_client({
        '/api/csrf-token': lambda: FakeResponse({'success': True, 'csrf_token': next(tokens)}),
        '/api/initiative/4/end': lambda: answers.pop(0),
    })
    client.end(4)

    posts = [c for c in http.calls if c[0] == 'POST']
    assert [c[2]['headers']['X-CSRFToken'] for c in posts] == ['tok-old', 'tok-new']


def test_csrf_retry_gives_up_after_one_attempt():
    rejected = FakeResponse({'success': False, 'error': 'csrf_failed', 'message': 'Invalid.'}, 400)
    client, http = make_client({'/api/initiative/4/end': rejected})
    with pytest.raises(InitiativeAPIError) as excinfo:
        client.end(4)
    assert excinfo.value.error == 'csrf_failed'
    assert sum(1 for c in http.calls if c[0] == 'POST') == 2


def test_other_errors_are_not_retried():
    client, http = make_client({
        '/api/initiative/4/end': FakeResponse(
            {'success': False, 'error': 'invalid_state', 'message': 'No active initiative session.'}, 409),
    })
    with pytest.raises(InitiativeAPIError):
        client.end(4)
    assert sum(1 for c in http.calls if c[0] == 'POST') == 1


# ── Poller ──────────────────────────────────────────────────


class FakeStatusClient:
    def __init__(self, answers):
        self.answers = list(answers)
        self.requested = []
        self.on_request = None

    def get_status(self, campaign_id):
        self.requested.append(campaign_id)
        if self.on_request:
            self.on_request()
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer


def test_idle_without_selection():
    fake = FakeStatusClient([])
    rendered = []
    poller = StatusPoller(fake, rendered.append)
    assert poller.poll_once() is None
    assert fake.requested == []
    assert rendered == []


def test_renders_whole_snapshot():
    snapshot = {'success': True, 'active': True, 'entries': []}
    fake = FakeStatusClient([snapshot, {'success': True, 'active': False}])
    rendered = []
    poller = StatusPoller(fake, rendered.append)
    poller.select_campaign(5)

    assert poller.poll_once() == snapshot
    poller.poll_once()
    assert rendered == [snapshot, {'success': True, 'active': False}]
    assert fake.requested == [5, 5]


def test_failed_poll_is_retried_next_tick():
    good = {'success': True, 'active': False}
    fake = FakeStatusClient([
        requests.ConnectionError('down'),
        InitiativeAPIError('internal_error', 'oops', 500),
        good,
    ])
    rendered = []
    poller = StatusPoller(fake, rendered.append)
    poller.select_campaign(5)

    assert poller.poll_once() is None
    assert poller.poll_once() is None
    assert poller.poll_once() == good
    assert rendered == [good]


def test_stale_response_after_switching_campaign_is_dropped():
    fake = FakeStatusClient([{'success': True, 'active': True}])
    rendered = []
    poller = StatusPoller(fake, rendered.append)
    poller.select_campaign(5)
    fake.on_request = lambda: poller.select_campaign(6)

    assert poller.poll_once() is None
    assert rendered == []


def test_clearing_selection_stops_requests():
    fake = FakeStatusClient([{'success': True, 'active': False}])
    poller = StatusPoller(fake, lambda snapshot: None)
    poller.select_campaign(5)
    poller.poll_once()
    poller.clear_campaign()
    assert poller.poll_once() is None
    assert fake.requested == [5]


def test_background_thread_starts_and_stops():
    fake = FakeStatusClient([])
    poller = StatusPoller(fake, lambda snapshot: None, interval=0.01)
    poller.start()
    assert poller.running
    poller.stop(timeout=1)
    assert not poller.running
    assert fake.requested == []


def test_render_failure_does_not_stop_polling():
    snapshots = [{'success': True, 'active': True}, {'success': True, 'active': False}]
    fake = FakeStatusClient(list(snapshots))
    rendered = []

    def render(snapshot):
        if snapshot['active']:
            raise KeyError('entries')
        rendered.append(snapshot)

    poller = StatusPoller(fake, render)
    poller.select_campaign(5)
    assert poller.poll_once() is None
    assert poller.poll_once() == snapshots[1]
    assert rendered == [snapshots[1]]
