from sqlalchemy.exc import SQLAlchemyError


def test_health(client):
    res = client.get('/health')
    assert res.status_code == 200
    assert res.get_json()['status'] == 'ok'


def test_register_login_logout(client):
    res = client.post('/register', json={'username': 'alice', 'password': 'secret'})
    assert res.status_code == 201
    user = res.get_json()['user']
    assert user['username'] == 'alice'

    # duplicate username
    assert client.post('/register', json={'username': 'alice', 'password': 'x'}).status_code == 400
    assert client.post('/register', json={'username': 'bob'}).status_code == 400

    assert client.get('/check_login').get_json()['user']['id'] == user['id']
    assert client.post('/logout').status_code == 200
    res = client.get('/check_login')
    assert res.status_code == 401
    assert res.get_json()['code'] == 'unauthorized'

    assert client.post('/login', json={'username': 'alice', 'password': 'wrong'}).status_code == 401
    res = client.post('/login', json={'username': 'alice', 'password': 'secret'})
    assert res.status_code == 200
    assert res.get_json()['user']['id'] == user['id']


def test_rooms_require_login(client):
    res = client.post('/api/rooms', json={})
    assert res.status_code == 401
    assert client.get('/api/leaderboard/me').status_code == 401


def test_room_game_over_http(flask_app, scheduler, login_client):
    host, host_id = login_client('host')
    guest, guest_id = login_client('guest')

    res = host.post('/api/rooms', json={'max_players': 2, 'total_rounds': 1, 'round_time_limit': 60})
    assert res.status_code == 201
    room = res.get_json()
    code = room['code']
    assert room['host_user_id'] == host_id
    assert room['players'][0]['is_host'] is True

    res = guest.post('/api/rooms/join', json={'room_code': code.lower()})
    assert res.status_code == 200
    assert res.get_json()['player_count'] == 2
    assert [r['code'] for r in guest.get('/api/rooms/mine').get_json()] == [code]

    # guest has not readied up yet
    res = host.post(f'/api/rooms/{code}/start')
    assert res.status_code == 400
    assert res.get_json()['code'] == 'bad_state'

    assert guest.post(f'/api/rooms/{code}/ready', json={'is_ready': True}).status_code == 200
    assert guest.post(f'/api/rooms/{code}/start').status_code == 403
    res = host.post(f'/api/rooms/{code}/start')
    assert res.status_code == 200
    assert res.get_json()['status'] == 'ACTIVE'

    state = guest.get(f'/api/rooms/{code}/round').get_json()
    assert state['round_index'] == 1
    assert state['status'] == 'ACTIVE'
    assert state['time_limit'] == 60
    assert 'actual_location' not in state

    res = host.post(f'/api/rooms/{code}/guess', json={'round_index': 1, 'lat': 40.0, 'lng': -75.0})
    assert res.status_code == 200
    assert res.get_json()['guess']['score'] == 1000
    res = host.post(f'/api/rooms/{code}/guess', json={'round_index': 1, 'lat': 0, 'lng': 0})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'bad_state'

    res = guest.post(f'/api/rooms/{code}/guess', json={'round_index': 1, 'lat': 41.0, 'lng': -75.0})
    assert res.get_json()['guess']['score'] == 946

    state = host.get(f'/api/rooms/{code}/round').get_json()
    assert state['status'] == 'RESULTS'
    assert state['actual_location'] == {'lat': 40.0, 'lng': -75.0}

    with flask_app.app_context():
        scheduler.fire(('results', code, 1))
    assert host.get(f'/api/rooms/{code}').get_json()['status'] == 'FINISHED'
    assert guest.get('/api/rooms/mine').get_json() == []

    top = host.get('/api/leaderboard/global?mode=multiplayer').get_json()
    assert [(r['username'], r['best_score']) for r in top] == [('host', 1000), ('guest', 946)]
    mine = guest.get('/api/leaderboard/me').get_json()
    assert mine['total_games'] == 1
    assert mine['best_score'] == 946
    assert mine['global_rank'] == 2


def test_room_errors(login_client):
    host, _ = login_client('host')
    guest, _ = login_client('guest')

    res = host.get('/api/rooms/ZZZZZZ')
    assert res.status_code == 404
    assert res.get_json()['code'] == 'not_found'

    res = host.post('/api/rooms', json={'max_players': 50})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'invalid_input'

    code = host.post('/api/rooms', json={}).get_json()['code']
    assert guest.post('/api/rooms/join', json={}).status_code == 400
    assert guest.post('/api/rooms/join', json={'room_code': code}).status_code == 200

    res = guest.post('/api/rooms/join', json={'room_code': code})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'bad_state'
    res = host.post('/api/rooms/join', json={'room_code': code})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'bad_state'
    assert host.get(f'/api/rooms/{code}').get_json()['player_count'] == 2

    assert guest.post(f'/api/rooms/{code}/ready', json={'is_ready': 'yes'}).status_code == 400
    assert host.post(f'/api/rooms/{code}/status', json={'status': 'bogus'}).status_code == 400
    assert guest.post(f'/api/rooms/{code}/status', json={'status': 'active'}).status_code == 403
    assert guest.get(f'/api/rooms/{code}/round').get_json()['status'] is None
    assert host.post(f'/api/rooms/{code}/advance').status_code == 404


def test_leaving_rooms(login_client):
    host, _ = login_client('host')
    guest, _ = login_client('guest')
    code = host.post('/api/rooms', json={}).get_json()['code']
    guest.post('/api/rooms/join', json={'room_code': code})

    assert guest.post(f'/api/rooms/{code}/leave').get_json() == {'room_deleted': False}
    assert host.get(f'/api/rooms/{code}').get_json()['player_count'] == 1
    assert host.post(f'/api/rooms/{code}/leave').get_json() == {'room_deleted': True}
    assert host.get(f'/api/rooms/{code}').status_code == 404


def test_solo_guess_evaluation(client, login_client):
    payload = {
        'image_id': 'img-1',
        'guess_lat': 41.0,
        'guess_lng': -75.0,
        'actual_lat': 40.0,
        'actual_lng': -75.0,
    }
    res = client.post('/api/guesses/evaluate', json=payload)
    assert res.status_code == 200
    data = res.get_json()
    assert data['distance'] == 111.19
    assert data['score'] == 946
    assert data['player_id'] is None
    assert data['recorded'] is True

    assert client.post('/api/guesses/evaluate', json={**payload, 'image_id': None}).status_code == 400
    assert client.post('/api/guesses/evaluate', json={**payload, 'guess_lat': 123}).status_code == 400

    player, player_id = login_client('solo')
    data = player.post('/api/guesses/evaluate', json={**payload, 'guess_lat': 40.0}).get_json()
    assert data['score'] == 1000
    assert data['player_id'] == player_id
    stats = player.get('/api/leaderboard/me').get_json()
    assert stats['solo_games'] == 1
    # anonymous results never reach the leaderboard
    assert [r['username'] for r in client.get('/api/leaderboard/global').get_json()] == ['solo']


def test_leaderboard_parameters(client):
    assert client.get('/api/leaderboard/global').get_json() == []
    assert client.get('/api/leaderboard/recent').get_json() == []
    assert client.get('/api/leaderboard/global?limit=0').status_code == 400
    assert client.get('/api/leaderboard/global?limit=ten').status_code == 400
    assert client.get('/api/leaderboard/global?mode=solo').status_code == 200
    assert client.get('/api/leaderboard/global?mode=all').status_code == 200
    res = client.get('/api/leaderboard/global?mode=team')
    assert res.status_code == 400
    assert 'solo, multiplayer' in res.get_json()['error']
    assert client.get('/api/leaderboard/recent?hours=200').status_code == 400


def test_room_create_failure_is_internal(flask_app, monkeypatch, login_client):
    def broken(*args, **kwargs):
        raise SQLAlchemyError('connection lost')

    host, _ = login_client('host')
    monkeypatch.setattr(flask_app.extensions['geoscope'].store, 'create_membership', broken)

    res = host.post('/api/rooms', json={})
    assert res.status_code == 500
    assert res.get_json()['code'] == 'internal'
    assert host.get('/api/rooms/mine').get_json() == []
