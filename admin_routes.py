import secrets
from flask import Blueprint, request, jsonify, session, current_app
from werkzeug.security import generate_password_hash
from models import User, Log, Classroom, Enrollment, Notification, db
from utils import add_log, admin_required, local_now
from errors import InvalidPayload
from access_guard import TIME_RE
import timetable

admin_bp = Blueprint('admin', __name__)

def _payload():
    return request.get_json(silent=True) or request.form or {}

def generate_classroom_code(day=None):
    """CLS-YYYYMMDD-XXXX with a random hex suffix"""
    day = day or local_now()
    while True:
        code = f"CLS-{day.strftime('%Y%m%d')}-{secrets.token_hex(2).upper()}"
        if not Classroom.query.filter_by(classroom_code=code).first():
            return code

@admin_bp.route('/admin/login', methods=['POST'])
def admin_login():
    d = _payload()
    username = (d.get('username') or '').strip()
    password = (d.get('password') or '').strip()
    if username == current_app.config['ADMIN_USERNAME'] and password == current_app.config['ADMIN_PASSWORD']:
        session.clear()
        session['admin_logged_in'] = True
        session['admin_username'] = username
        add_log(None, username, 'admin', 'admin_login', {'msg': 'admin logged in'})
        return jsonify({'ok': True})
    return jsonify({'ok': False, 'error': 'Unauthenticated', 'msg': 'invalid_credentials'}), 401

@admin_bp.route('/admin/logout', methods=['POST'])
def admin_logout():
    add_log(None, session.get('admin_username'), 'admin', 'admin_logout', {})
    session.clear()
    return jsonify({'ok': True})

# API Routes
@admin_bp.route('/api/admin/create_user', methods=['POST'])
@admin_required
def api_create_user():
    d = _payload()
    username = (d.get('username') or '').strip()
    password = (d.get('password') or '').strip()
    role = (d.get('role') or '').strip()
    if not username or not password or role not in ('student','teacher'):
        return jsonify({"ok":False, "msg":"bad_payload"}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({"ok":False, "msg":"username_exists"}), 409
    user = User(username=username, password_hash=generate_password_hash(password), role=role)
    db.session.add(user)
    db.session.commit()
    add_log(None, session.get('admin_username'), 'admin', 'create_user', {"new_user": username, "role": role})
    return jsonify({"ok":True, "user": {"id": user.id, "username": user.username, "role": user.role}})

@admin_bp.route('/api/admin/users', methods=['GET'])
@admin_required
def api_list_users():
    role = request.args.get('role')
    q = User.query
    if role:
        q = q.filter_by(role=role)
    users = q.order_by(User.created_at.desc()).all()
    out = [{"id":u.id, "username":u.username, "role":u.role, "created_at":u.created_at.isoformat()} for u in users]
    return jsonify({"ok":True, "users": out})

@admin_bp.route('/api/admin/create_classroom', methods=['POST'])
@admin_required
def api_create_classroom():
    d = request.get_json(silent=True) or {}
    name = (d.get('classroom_name') or '').strip()
    days = d.get('days') or []
    start_time = (d.get('start_time') or '').strip() or None
    end_time = (d.get('end_time') or '').strip() or None
    teacher_id = d.get('teacher_id')
    if not name or not isinstance(days, list):
        return jsonify({"ok":False, "msg":"bad_payload"}), 400
    for t in (start_time, end_time):
        if t and not TIME_RE.match(t):
            return jsonify({"ok":False, "msg":"bad_time_format"}), 400
    if teacher_id is not None:
        teacher = db.session.get(User, teacher_id)
        if not teacher or teacher.role != 'teacher':
            return jsonify({"ok":False, "msg":"teacher_not_found"}), 404
    classroom = Classroom(classroom_code=generate_classroom_code(), classroom_name=name,
                          logo_url=d.get('logo_url'), days_json=days, start_time=start_time,
                          end_time=end_time, teacher_id=teacher_id)
    db.session.add(classroom)
    db.session.commit()
    add_log(None, session.get('admin_username'), 'admin', 'create_classroom',
            {'classroom_id': classroom.id, 'code': classroom.classroom_code})
    return jsonify({"ok":True, "classroom": {"id": classroom.id, "code": classroom.classroom_code,
                                             "name": classroom.classroom_name}})

@admin_bp.route('/api/admin/classrooms', methods=['GET'])
@admin_required
def api_list_classrooms():
    rooms = Classroom.query.order_by(Classroom.created_at.desc()).all()
    out = [{
        "id": c.id,
        "code": c.classroom_code,
        "name": c.classroom_name,
        "days": c.days_json or [],
        "start_time": c.start_time,
        "end_time": c.end_time,
        "teacher_id": c.teacher_id,
    } for c in rooms]
    return jsonify({"ok":True, "classrooms": out})

@admin_bp.route('/api/admin/enroll', methods=['POST'])
@admin_required
def api_enroll_student():
    d = _payload()
    try:
        student_id = int(d.get('student_id'))
        classroom_id = int(d.get('classroom_id'))
    except (TypeError, ValueError):
        return jsonify({'ok':False, 'msg':'bad_types'}), 400
    student = db.session.get(User, student_id)
    if not student or student.role != 'student' or not db.session.get(Classroom, classroom_id):
        return jsonify({'ok':False, 'msg':'not_found'}), 404
    if Enrollment.query.filter_by(student_id=student_id, classroom_id=classroom_id).first():
        return jsonify({'ok':False, 'msg':'already_enrolled'}), 409
    db.session.add(Enrollment(student_id=student_id, classroom_id=classroom_id))
    db.session.commit()
    add_log(None, session.get('admin_username'), 'admin', 'enroll_student',
            {'student_id': student_id, 'classroom_id': classroom_id})
    return jsonify({'ok':True})

@admin_bp.route('/api/admin/timetable', methods=['GET'])
@admin_required
def api_get_timetable():
    classroom_id = request.args.get('classroom_id', type=int)
    return jsonify({'ok': True, 'days': timetable.DAYS, 'time_slots': timetable.TIME_SLOTS,
                    'entries': timetable.list_timetable(classroom_id)})

@admin_bp.route('/api/admin/timetable', methods=['POST'])
@admin_required
def api_save_timetable():
    d = request.get_json(silent=True) or {}
    try:
        count = timetable.save_timetable(d.get('entries'))
    except InvalidPayload as e:
        return jsonify(e.to_dict()), e.status
    add_log(None, session.get('admin_username'), 'admin', 'save_timetable', {'count': count})
    return jsonify({'ok': True, 'count': count})

@admin_bp.route('/api/notifications', methods=['GET'])
def api_notifications():
    items = Notification.query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(50).all()
    out = [{'id': n.id, 'title': n.title, 'message': n.message, 'created_at': n.created_at.isoformat()} for n in items]
    return jsonify({'ok': True, 'notifications': out})

@admin_bp.route('/api/admin/logs', methods=['GET'])
@admin_required
def api_view_logs():
    q = Log.query
    etype = request.args.get('event_type')
    uid = request.args.get('user_id', type=int)
    if etype:
        q = q.filter_by(event_type=etype)
    if uid:
        q = q.filter_by(who_user_id=uid)
    logs = q.order_by(Log.created_at.desc()).limit(2000).all()
    out = []
    for l in logs:
        out.append({
            "id": l.id,
            "who_user_id": l.who_user_id,
            "username": l.username,
            "role": l.role,
            "event_type": l.event_type,
            "meta": l.meta,
            "created_at": l.created_at.isoformat()
        })
    return jsonify({"ok":True, "logs": out})
