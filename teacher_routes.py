import io
import csv
import json
from flask import Blueprint, request, jsonify, session, current_app, Response
from werkzeug.security import check_password_hash
from models import User, Classroom, TimetableEntry, AssessmentSection, db
from utils import add_log, teacher_required, subscribe_events
from access_guard import classroom_access
from errors import PortalError
import assessments

teacher_bp = Blueprint('teacher', __name__)

def _payload():
    return request.get_json(silent=True) or request.form or {}

def _fail(e):
    return jsonify(e.to_dict()), e.status

@teacher_bp.route('/teacher/login', methods=['POST'])
def teacher_login():
    d = _payload()
    username = (d.get('username') or '').strip()
    password = (d.get('password') or '').strip()
    user = User.query.filter_by(username=username, role='teacher').first()
    if user and check_password_hash(user.password_hash, password):
        session.clear()
        session['teacher_logged_in'] = True
        session['teacher_id'] = user.id
        session['teacher_username'] = user.username
        add_log(user.id, user.username, 'teacher', 'teacher_login', {})
        return jsonify({'ok': True, 'user': {'id': user.id, 'username': user.username}})
    return jsonify({'ok': False, 'error': 'Unauthenticated', 'msg': 'invalid_credentials'}), 401

@teacher_bp.route('/teacher/logout', methods=['POST'])
def teacher_logout():
    add_log(session.get('teacher_id'), session.get('teacher_username'), 'teacher', 'teacher_logout', {})
    session.clear()
    return jsonify({'ok': True})

@teacher_bp.route('/api/teacher/classrooms', methods=['GET'])
@teacher_required
def api_my_classrooms():
    teacher_id = session.get('teacher_id')
    timetabled = db.select(TimetableEntry.classroom_id).where(TimetableEntry.teacher_id == teacher_id)
    rooms = (Classroom.query
             .filter((Classroom.teacher_id == teacher_id) | Classroom.id.in_(timetabled))
             .order_by(Classroom.classroom_name.asc()).all())
    out = [{'id': c.id, 'code': c.classroom_code, 'name': c.classroom_name} for c in rooms]
    return jsonify({'ok': True, 'classrooms': out})

# API Routes - Assessment authoring
@teacher_bp.route('/api/teacher/classroom/<code>/assessments', methods=['GET'])
@classroom_access('teacher', enforce_schedule=False)
def api_list_assessments(ctx):
    return jsonify({'ok': True, 'assessments': assessments.list_assessments(ctx)})

@teacher_bp.route('/api/teacher/classroom/<code>/assessments', methods=['POST'])
@classroom_access('teacher', enforce_schedule=False)
def api_create_assessment(ctx):
    d = _payload()
    try:
        a = assessments.create_assessment(ctx, d.get('title'), d.get('type'), d.get('total_marks'))
    except PortalError as e:
        return _fail(e)
    add_log(ctx.user_id, session.get('teacher_username'), 'teacher', 'create_assessment', {'assessment_id': a.id})
    return jsonify({'ok': True, 'assessment': {'id': a.id, 'title': a.title, 'type': a.type,
                                               'total_marks': a.total_marks}})

@teacher_bp.route('/api/teacher/classroom/<code>/assessment/<int:assessment_id>', methods=['GET'])
@classroom_access('teacher', enforce_schedule=False)
def api_get_assessment(ctx, assessment_id):
    try:
        tree = assessments.get_assessment(ctx, assessment_id, include_answer_key=True)
    except PortalError as e:
        return _fail(e)
    return jsonify({'ok': True, **tree})

@teacher_bp.route('/api/teacher/classroom/<code>/sections', methods=['POST'])
@classroom_access('teacher', enforce_schedule=False)
def api_create_section(ctx):
    d = _payload()
    try:
        s = assessments.create_section(ctx, d.get('assessment_id'), d.get('title'), d.get('start_at'), d.get('end_at'))
    except PortalError as e:
        return _fail(e)
    add_log(ctx.user_id, session.get('teacher_username'), 'teacher', 'create_section',
            {'assessment_id': s.assessment_id, 'section_id': s.id})
    return jsonify({'ok': True, 'section': {'id': s.id, 'title': s.title, 'start_at': s.start_at.isoformat(),
                                            'end_at': s.end_at.isoformat()}})

@teacher_bp.route('/api/teacher/classroom/<code>/questions', methods=['POST'])
@classroom_access('teacher', enforce_schedule=False)
def api_create_question(ctx):
    d = request.get_json(silent=True) or {}
    try:
        q = assessments.create_question(ctx, d.get('section_id'), d.get('question_text'), d.get('q_type'),
                                        d.get('marks'), d.get('options'))
    except PortalError as e:
        return _fail(e)
    add_log(ctx.user_id, session.get('teacher_username'), 'teacher', 'create_question',
            {'section_id': q.section_id, 'question_id': q.id})
    return jsonify({'ok': True, 'question': {'id': q.id, 'q_type': q.q_type, 'marks': q.marks}})

# API Routes - Results & grading
@teacher_bp.route('/api/teacher/classroom/<code>/assessment/<int:assessment_id>/results', methods=['GET'])
@classroom_access('teacher', enforce_schedule=False)
def api_assessment_results(ctx, assessment_id):
    try:
        out = assessments.assessment_results(ctx, assessment_id)
    except PortalError as e:
        return _fail(e)
    return jsonify({'ok': True, 'results': out})

@teacher_bp.route('/api/teacher/classroom/<code>/assessment/<int:assessment_id>/results_csv', methods=['GET'])
@classroom_access('teacher', enforce_schedule=False)
def api_assessment_results_csv(ctx, assessment_id):
    try:
        rows = assessments.assessment_results(ctx, assessment_id)
    except PortalError as e:
        return _fail(e)
    titles = {s.id: s.title for s in AssessmentSection.query.filter_by(assessment_id=assessment_id)}

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(['student_id', 'student_username', 'section', 'total_awarded', 'auto_submitted', 'submitted_at'])
    for r in rows:
        writer.writerow([r['student_id'], r['student_username'], titles.get(r['section_id'], r['section_id']),
                         r['total_awarded'], int(r['auto_submitted']), r['submitted_at'] or ''])
    resp = current_app.response_class(output.getvalue(), mimetype='text/csv')
    resp.headers['Content-Disposition'] = f'attachment; filename=assessment_{assessment_id}_results.csv'
    add_log(ctx.user_id, session.get('teacher_username'), 'teacher', 'download_csv', {'assessment_id': assessment_id})
    return resp

@teacher_bp.route('/api/teacher/classroom/<code>/grade_answer', methods=['POST'])
@classroom_access('teacher', enforce_schedule=False)
def api_grade_answer(ctx):
    d = _payload()
    try:
        out = assessments.grade_answer(ctx, d.get('answer_id'), d.get('marks'))
    except PortalError as e:
        return _fail(e)
    add_log(ctx.user_id, session.get('teacher_username'), 'teacher', 'grade_answer', out)
    return jsonify({'ok': True, **out})

# Real-time monitoring stream (SSE)
@teacher_bp.route('/api/teacher/classroom/<code>/monitor_stream')
@classroom_access('teacher', enforce_schedule=False)
def api_teacher_monitor_stream(ctx):
    classroom_id = ctx.classroom.id
    def event_stream():
        for ev in subscribe_events(classroom_id):
            yield f"data: {json.dumps(ev)}\n\n"
    headers = {'Content-Type': 'text/event-stream', 'Cache-Control': 'no-cache', 'Connection': 'keep-alive'}
    return Response(event_stream(), headers=headers)
