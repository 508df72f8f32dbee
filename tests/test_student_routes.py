from conftest import CLASSROOM_CODE, OTHER_CODE, login_as
from models import AssessmentAnswer, Log


def _submit(client, payload):
    return client.post(f'/api/classroom/{CLASSROOM_CODE}/submit_answers', json=payload)


def test_login_with_password_opens_classroom(client, seed):
    bad = client.post('/student/login', json={'username': 'alice', 'password': 'wrong'})
    assert bad.status_code == 401

    resp = client.post('/student/login', json={'username': 'alice', 'password': 'secret'})
    assert resp.get_json()['ok'] is True
    listing = client.get(f'/api/classroom/{CLASSROOM_CODE}/assessments')
    assert listing.status_code == 200
    assert [a['title'] for a in listing.get_json()['assessments']] == ['Dynamics test', 'Kinematics quiz']


def test_gate_failures_are_structured(client, seed, app):
    assert client.get('/api/classroom/CLS-2025-XYZ/assessments').get_json()['error'] == 'InvalidIdentifier'

    resp = client.get(f'/api/classroom/{CLASSROOM_CODE}/assessments')
    assert resp.status_code == 401
    assert resp.get_json() == {'ok': False, 'error': 'Unauthenticated', 'msg': 'Student login required.'}

    login_as(client, 'student', seed['outsider_id'], 'mallory')
    resp = client.get(f'/api/classroom/{CLASSROOM_CODE}/assessments')
    assert resp.status_code == 403
    assert resp.get_json()['error'] == 'Forbidden'

    assert client.get('/api/classroom/CLS-20990101-FFFF/assessments').status_code == 404

    with app.app_context():
        assert Log.query.filter_by(event_type='access_denied').count() == 4


def test_get_assessment_never_exposes_answer_key(client, seed, frozen_now):
    login_as(client, 'student', seed['alice_id'], 'alice')
    resp = client.get(f"/api/classroom/{CLASSROOM_CODE}/assessment/{seed['quiz_id']}")
    body = resp.get_json()
    assert resp.status_code == 200
    assert 'is_correct' not in resp.get_data(as_text=True)
    assert body['sections'][0]['state'] == 'open'
    assert body['classroom']['name'] == 'Physics Form 4'

    resp = client.get(f"/api/classroom/{CLASSROOM_CODE}/assessment/{seed['foreign_id']}")
    assert resp.status_code == 404


def test_submit_scenario_and_duplicate(client, seed, frozen_now, app):
    login_as(client, 'student', seed['alice_id'], 'alice')
    payload = {'assessment_id': seed['quiz_id'], 'section_id': seed['section_id'],
               'answers': [{'question_id': seed['mcq_id'], 'selected_option_id': 7},
                           {'question_id': seed['essay_id'], 'answer_text': 'inertia'}]}
    resp = _submit(client, payload)
    body = resp.get_json()
    assert resp.status_code == 200
    assert body['total_awarded'] == 5
    assert body['details'] == [
        {'question_id': seed['mcq_id'], 'awarded': 5, 'marks': 5},
        {'question_id': seed['essay_id'], 'awarded': 0, 'marks': 3},
    ]

    again = _submit(client, payload)
    assert again.status_code == 409
    assert again.get_json()['error'] == 'DuplicateSubmission'

    results = client.get(f'/api/classroom/{CLASSROOM_CODE}/my_results').get_json()['results']
    assert [(r['section_id'], r['total_awarded']) for r in results] == [(seed['section_id'], 5)]


def test_submit_with_mismatched_section_writes_nothing(client, seed, frozen_now, app):
    login_as(client, 'student', seed['bob_id'], 'bob')
    resp = _submit(client, {'assessment_id': seed['quiz_id'], 'section_id': seed['later_section_id'],
                            'answers': [{'question_id': seed['later_q_id'], 'selected_option_id': 20}]})
    assert resp.status_code == 404
    assert resp.get_json()['error'] == 'OwnershipMismatch'
    with app.app_context():
        assert AssessmentAnswer.query.count() == 0
        assert Log.query.filter_by(event_type='submit_failed').count() == 1


def test_submit_rejects_non_json_body(client, seed, frozen_now):
    login_as(client, 'student', seed['alice_id'], 'alice')
    resp = client.post(f'/api/classroom/{CLASSROOM_CODE}/submit_answers', data='nonsense',
                       content_type='text/plain')
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'InvalidPayload'


def test_auto_flag_is_recorded(client, seed, frozen_now, app):
    login_as(client, 'student', seed['carol_id'], 'carol')
    resp = _submit(client, {'assessment_id': seed['quiz_id'], 'section_id': seed['section_id'],
                            'answers': [{'question_id': seed['mcq_id'], 'selected_option_id': None}],
                            'auto': True})
    assert resp.get_json()['total_awarded'] == 0
    results = client.get(f'/api/classroom/{CLASSROOM_CODE}/my_results').get_json()['results']
    assert results[0]['auto_submitted'] is True


def test_session_config_for_signaling(client, seed, app):
    login_as(client, 'student', seed['alice_id'], 'alice')
    body = client.get(f'/api/classroom/{CLASSROOM_CODE}/session_config').get_json()
    assert body['room_id'] == CLASSROOM_CODE
    assert body['role'] == 'student'
    assert body['ws_url'] == app.config['WS_URL']
    assert body['ice_servers'][0]['urls'].startswith('stun:')


def test_attendance_events(client, seed, app):
    login_as(client, 'student', seed['alice_id'], 'alice')
    assert client.post(f'/api/classroom/{CLASSROOM_CODE}/attendance', json={'event': 'wave'}).status_code == 400
    assert client.post(f'/api/classroom/{CLASSROOM_CODE}/attendance', json={'event': 'join'}).get_json()['ok']
    with app.app_context():
        assert Log.query.filter_by(event_type='attendance_join').count() == 1


def test_other_classroom_code_is_forbidden_for_student(client, seed):
    login_as(client, 'student', seed['alice_id'], 'alice')
    assert client.get(f'/api/classroom/{OTHER_CODE}/assessments').status_code == 403


def test_string_false_auto_flag_is_a_manual_submission(client, seed, frozen_now):
    login_as(client, 'student', seed['bob_id'], 'bob')
    resp = _submit(client, {'assessment_id': seed['quiz_id'], 'section_id': seed['section_id'],
                            'answers': [], 'auto': 'false'})
    assert resp.get_json()['ok'] is True
    results = client.get(f'/api/classroom/{CLASSROOM_CODE}/my_results').get_json()['results']
    assert results[0]['auto_submitted'] is False
