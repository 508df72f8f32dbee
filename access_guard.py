"""Classroom access gate for teacher and student requests.

`authorize()` validates the classroom code, resolves the caller's role and
user id from the Flask session, checks enrollment (students) or assignment
(teachers), and enforces the classroom's weekday + time-window schedule.
The result is an explicit `ClassroomContext` handed to the assessment code.
"""
import re
from collections import namedtuple
from functools import wraps
from flask import session, jsonify
from models import User, Classroom, Enrollment, TimetableEntry, db
from errors import InvalidIdentifier, NotFound, Unauthenticated, Forbidden, AccessError
from utils import add_log, local_now

CLASSROOM_CODE_RE = re.compile(r'^CLS-\d{8}-[0-9A-F]{4}$', re.IGNORECASE)
HHMM_RE = re.compile(r'^\d{2}:\d{2}$')
TIME_RE = re.compile(r'^\d{2}:\d{2}(:\d{2})?$')

ClassroomContext = namedtuple('ClassroomContext', ['classroom', 'user_id', 'role'])


def _normalize_time(value):
    """'08:00' -> '08:00:00'; '' / None -> None"""
    if not value:
        return None
    value = str(value).strip()
    if HHMM_RE.match(value):
        value += ':00'
    return value


def _resolve_role(desired_role):
    if desired_role in ('teacher', 'student'):
        return desired_role
    # 'auto': whichever role this session logged in as (logins clear the session)
    if session.get('teacher_logged_in'):
        return 'teacher'
    return 'student'


def check_schedule(classroom, now):
    """Raise Forbidden when `now` falls outside the classroom's days/time window"""
    days = classroom.days_json if isinstance(classroom.days_json, list) else []
    today = now.strftime('%a')  # Mon, Tue, ...
    allowed = {str(d).strip()[:3].lower() for d in days if str(d).strip()}
    if allowed and today.lower() not in allowed:
        raise Forbidden(f'Class not scheduled for today ({today}).')

    start = _normalize_time(classroom.start_time)
    end = _normalize_time(classroom.end_time)
    if start and end:
        current_time = now.strftime('%H:%M:%S')
        if current_time < start or current_time > end:
            raise Forbidden(f'Class not accessible at this time ({current_time}). Allowed: {start} - {end}.')


def authorize(classroom_code, desired_role='auto', enforce_schedule=True, now=None):
    if not isinstance(classroom_code, str) or not CLASSROOM_CODE_RE.match(classroom_code):
        raise InvalidIdentifier('Invalid classroom code.')

    classroom = Classroom.query.filter(
        db.func.upper(Classroom.classroom_code) == classroom_code.upper()
    ).first()
    if not classroom:
        raise NotFound('Classroom not found.')

    role = _resolve_role(desired_role)
    if role == 'teacher':
        if not session.get('teacher_logged_in') or not session.get('teacher_id'):
            raise Unauthenticated('Teacher login required.')
        user_id = int(session['teacher_id'])
        teacher = db.session.get(User, user_id)
        if not teacher or teacher.role != 'teacher':
            raise Forbidden('Teacher record not found.')
        timetabled = TimetableEntry.query.filter_by(classroom_id=classroom.id, teacher_id=user_id).first()
        if classroom.teacher_id != user_id and not timetabled:
            raise Forbidden('Teacher not assigned to this classroom.')
    else:
        if not session.get('student_logged_in') or not session.get('student_id'):
            raise Unauthenticated('Student login required.')
        user_id = int(session['student_id'])
        enrolled = Enrollment.query.filter_by(student_id=user_id, classroom_id=classroom.id).first()
        if not enrolled:
            raise Forbidden('Student not registered in this classroom.')

    if enforce_schedule:
        check_schedule(classroom, now or local_now())

    return ClassroomContext(classroom, user_id, role)


def classroom_access(role='auto', enforce_schedule=True):
    """Decorator: run the gate for the route's <code> and pass the context as `ctx`"""
    def decorator(fn):
        @wraps(fn)
        def wrapper(code, *a, **kw):
            try:
                ctx = authorize(code, role, enforce_schedule=enforce_schedule)
            except AccessError as e:
                who = session.get('teacher_id') or session.get('student_id')
                add_log(who, session.get('teacher_username') or session.get('student_username'), role,
                        'access_denied', {'classroom_code': code, 'error': e.kind, 'msg': e.msg})
                return jsonify(e.to_dict()), e.status
            return fn(ctx, *a, **kw)
        return wrapper
    return decorator
