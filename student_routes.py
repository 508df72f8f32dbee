from datetime import datetime
from flask import Blueprint, request, jsonify, session, current_app
from werkzeug.security import check_password_hash
from models import User
from utils import add_log, publish_event, parse_flag
from access_guard import classroom_access
from errors import AccessError, STATUS_BY_KIND
import assessments

student_bp = Blueprint('student', __name__)

@student_bp.route('/student/login', methods=['POST'])
def student_login():
    d = request.get_json(silent=True) or request.form or {}
    username = (d.get('username') or '').strip()
    password = (d.get('password') or '').strip()
    user = User.query.filter_by(username=username, role='student').first()
    if user and check_password_hash(user.password_hash, password):
        session.clear()
        session['student_logged_in'] = True
        session['student_id'] = user.id
        session['student_username'] = user.username
        add_log(user.id, user.username, 'student', 'student_login', {})
        return jsonify({'ok': True, 'user': {'id': user.id, 'username': user.username}})
    return jsonify({'ok': False, 'error': 'Unauthenticated', 'msg': 'invalid_credentials'}), 401

@student_bp.route('/student/logout', methods=['POST'])
def student_logout():
    add_log(session.get('student_id'), session.get('student_username'), 'student', 'student_logout', {})
    session.clear()
    return jsonify({'ok': True})

# API Routes
@student_bp.route('/api/classroom/<code>/assessments', methods=['GET'])
@classroom_access('student')
def api_list_assessments(ctx):
    out = assessments.list_assessments(ctx)
    add_log(ctx.user_id, session.get('student_username'), 'student', 'list_assessments',
            {'classroom_id': ctx.classroom.id, 'count': len(out)})
    return jsonify({'ok': True, 'assessments': out})

@student_bp.route('/api/classroom/<code>/assessment/<int:assessment_id>', methods=['GET'])
@classroom_access('student')
def api_get_assessment(ctx, assessment_id):
    try:
        tree = assessments.get_assessment(ctx, assessment_id)
    except AccessError as e:
        return jsonify(e.to_dict()), e.status
    add_log(ctx.user_id, session.get('student_username'), 'student', 'view_assessment',
            {'assessment_id': assessment_id, 'num_sections': len(tree['sections'])})
    return jsonify({'ok': True, **tree})

@student_bp.route('/api/classroom/<code>/submit_answers', methods=['POST'])
@classroom_access('student')
def api_submit_answers(ctx):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'ok': False, 'error': 'InvalidPayload', 'msg': 'Invalid payload'}), 400

    result = assessments.submit_answers(
        ctx,
        data.get('assessment_id'),
        data.get('section_id'),
        ctx.user_id,
        data.get('answers', []),
        auto_submitted=parse_flag(data.get('auto')),
    )
    meta = {'assessment_id': data.get('assessment_id'), 'section_id': data.get('section_id'),
            'auto': parse_flag(data.get('auto'))}
    if not result['ok']:
        add_log(ctx.user_id, session.get('student_username'), 'student', 'submit_failed',
                {**meta, 'error': result['error'], 'msg': result['msg']})
        return jsonify(result), STATUS_BY_KIND.get(result['error'], 400)

    add_log(ctx.user_id, session.get('student_username'), 'student', 'submit_answers',
            {**meta, 'total_awarded': result['total_awarded']})
    # Publish event for teacher monitoring
    publish_event({'type': 'submit_answers', 'classroom_id': ctx.classroom.id, 'student_id': ctx.user_id,
                   'student_username': session.get('student_username'), **meta,
                   'total_awarded': result['total_awarded'], 'time': datetime.utcnow().isoformat()})
    return jsonify(result)

@student_bp.route('/api/classroom/<code>/my_results', methods=['GET'])
@classroom_access('student', enforce_schedule=False)
def api_my_results(ctx):
    return jsonify({'ok': True, 'results': assessments.student_results(ctx, ctx.user_id)})

@student_bp.route('/api/classroom/<code>/session_config', methods=['GET'])
@classroom_access('auto')
def api_session_config(ctx):
    """Connection settings for the external signaling relay; the room id is the classroom code."""
    return jsonify({
        'ok': True,
        'room_id': ctx.classroom.classroom_code,
        'role': ctx.role,
        'user_id': ctx.user_id,
        'ws_url': current_app.config.get('WS_URL'),
        'ice_servers': current_app.config.get('ICE_SERVERS', []),
    })

@student_bp.route('/api/classroom/<code>/attendance', methods=['POST'])
@classroom_access('student')
def api_attendance(ctx):
    """Join/leave events reported by the classroom page for the teacher's monitor."""
    d = request.get_json(silent=True) or request.form or {}
    event = (d.get('event') or '').strip()
    if event not in ('join', 'leave'):
        return jsonify({'ok': False, 'error': 'InvalidPayload', 'msg': 'event must be join or leave'}), 400
    ev = {
        'type': 'attendance',
        'event': event,
        'classroom_id': ctx.classroom.id,
        'student_id': ctx.user_id,
        'student_username': session.get('student_username'),
        'time': datetime.utcnow().isoformat()
    }
    publish_event(ev)
    add_log(ctx.user_id, session.get('student_username'), 'student', f'attendance_{event}',
            {'classroom_id': ctx.classroom.id})
    return jsonify({'ok': True})
