import random
import unittest

import trading_table.api as api_mod
from trading_table.config import TRADING_DURATION
from trading_table.session import SessionRegistry


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


# --- Endpoint integration tests ---
class TestAppEndpoints(unittest.TestCase):
    def setUp(self):
        self.app = api_mod.app
        self.clock = FakeClock()
        self.registry = SessionRegistry(rng=random.Random(3), clock=self.clock)
        self.app.registry = self.registry
        self.client = self.app.test_client()

    def _create(self, host="h", max_players=5):
        rv = self.client.post('/tables', json={'name': 'Main Pit', 'max_players': max_players,
                                               'player_id': host, 'display_name': 'Host'})
        self.assertEqual(rv.status_code, 201)
        return rv.get_json()['table_id']

    def _start_with(self, *others):
        tid = self._create()
        for pid in others:
            rv = self.client.post(f'/tables/{tid}/join', json={'player_id': pid})
            self.assertEqual(rv.status_code, 200)
        rv = self.client.post(f'/tables/{tid}/start', json={'player_id': 'h'})
        self.assertEqual(rv.status_code, 200)
        return tid

    def test_create_and_list(self):
        tid = self._create()
        rv = self.client.get('/tables')
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(rv.get_json()['tables'][0]['id'], tid)

    def test_create_errors(self):
        rv = self.client.post('/tables', json={'name': 'Main Pit'})
        self.assertEqual(rv.status_code, 400)
        self.assertIn('player_id is required', rv.get_json().get('error', ''))
        rv = self.client.post('/tables', json={'name': 'x', 'player_id': 'h'})
        self.assertEqual(rv.status_code, 400)
        rv = self.client.post('/tables', json={'name': 'Main Pit', 'player_id': 'h', 'max_players': 20})
        self.assertEqual(rv.status_code, 400)

    def test_state_errors(self):
        rv = self.client.get('/tables/missing')
        self.assertEqual(rv.status_code, 404)
        tid = self._create()
        rv = self.client.get(f'/tables/{tid}', query_string={'player_id': 'bogus'})
        self.assertEqual(rv.status_code, 400)

    def test_start_requires_players_and_host(self):
        tid = self._create()
        rv = self.client.post(f'/tables/{tid}/start', json={'player_id': 'h'})
        self.assertEqual(rv.status_code, 400)
        self.client.post(f'/tables/{tid}/join', json={'player_id': 'p2'})
        rv = self.client.post(f'/tables/{tid}/start', json={'player_id': 'p2'})
        self.assertEqual(rv.status_code, 403)

    def test_trade_and_close_happy_path(self):
        tid = self._start_with('p2')
        rv = self.client.get(f'/tables/{tid}', query_string={'player_id': 'p2'})
        data = rv.get_json()
        self.assertEqual(data['status'], 'playing')
        self.assertIsNotNone(data['hand'])
        self.assertEqual(data['time_left'], TRADING_DURATION)

        rv = self.client.post(f'/tables/{tid}/trade', json={'player_id': 'h', 'side': 'sell',
                                                            'price': 10, 'quantity': 2,
                                                            'counterparty_id': 'p2'})
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(rv.get_json()['trade']['value'], 20)

        rv = self.client.post(f'/tables/{tid}/close', json={})
        self.assertEqual(rv.status_code, 200)
        table = rv.get_json()['table']
        self.assertEqual(table['status'], 'finished')
        self.assertEqual(table['results']['positions'], {'h': -2, 'p2': 2})
        self.assertEqual(len(table['community']), 3)

    def test_trade_errors(self):
        tid = self._create()
        rv = self.client.post(f'/tables/{tid}/trade', json={'player_id': 'h', 'side': 'buy', 'price': 5})
        self.assertEqual(rv.status_code, 400)
        self.assertIn('not accepting trades', rv.get_json()['error'])
        self.client.post(f'/tables/{tid}/join', json={'player_id': 'p2'})
        self.client.post(f'/tables/{tid}/start', json={'player_id': 'h'})
        for body in ({'side': 'hold', 'price': 5},
                     {'side': 'buy', 'price': -1},
                     {'side': 'buy', 'price': 5, 'quantity': 0},
                     {'side': 'buy', 'price': 5, 'counterparty_id': 'ghost'}):
            rv = self.client.post(f'/tables/{tid}/trade', json={'player_id': 'h', **body})
            self.assertEqual(rv.status_code, 400, body)

    def test_trading_timeout(self):
        tid = self._start_with('p2', 'p3')
        self.clock.now += TRADING_DURATION + 1
        rv = self.client.get(f'/tables/{tid}', query_string={'player_id': 'h'})
        self.assertEqual(rv.status_code, 200)
        data = rv.get_json()
        self.assertEqual(data.get('status'), 'finished')
        self.assertIn('results', data)

    def test_leave(self):
        tid = self._start_with('p2')
        rv = self.client.post(f'/tables/{tid}/leave', json={'player_id': 'p2'})
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(rv.get_json()['table']['status'], 'waiting')
        rv = self.client.post(f'/tables/{tid}/leave', json={'player_id': 'h'})
        self.assertEqual(rv.get_json().get('message'), 'Table closed')
        self.assertEqual(self.client.get(f'/tables/{tid}').status_code, 404)

    def test_status(self):
        self._create()
        rv = self.client.get('/status')
        self.assertEqual(rv.status_code, 200)
        self.assertEqual(rv.get_json()['status']['tables'], 1)
