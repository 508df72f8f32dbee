from functools import wraps
from datetime import datetime
from zoneinfo import ZoneInfo
from flask import session, jsonify, current_app
from models import Log, db
import queue
import threading

# Simple in-memory pub/sub for the teacher's live monitor
_subscribers = []  # list of (Queue, classroom_id or None)
_subs_lock = threading.Lock()

def publish_event(event: dict):
    with _subs_lock:
        for q, classroom_id in list(_subscribers):
            if classroom_id is not None and event.get('classroom_id') != classroom_id:
                continue
            try:
                q.put_nowait(event)
            except queue.Full:
                pass

def subscribe_events(classroom_id=None):
    q = queue.Queue(maxsize=1000)
    entry = (q, classroom_id)
    with _subs_lock:
        _subscribers.append(entry)
    try:
        while True:
            yield q.get()
    finally:
        with _subs_lock:
            if entry in _subscribers:
                _subscribers.remove(entry)

def add_log(who_id, username, role, event_type, meta=None):
    """Helper function to add log entries"""
    entry = Log(who_user_id=who_id, username=username, role=role, event_type=event_type, meta=meta or {})
    db.session.add(entry)
    db.session.commit()

def local_now():
    """Naive wall-clock time in the classroom timezone.

    Section windows and classroom schedules are stored naive in that zone.
    """
    tz = ZoneInfo(current_app.config.get('CLASSROOM_TIMEZONE', 'Africa/Kigali'))
    return datetime.now(tz).replace(tzinfo=None)

def parse_non_negative_int(value):
    """Return value as an int >= 0, or None. Accepts ints and digit strings, never bools or floats."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None

def parse_positive_int(value):
    """Return value as a positive int, or None."""
    v = parse_non_negative_int(value)
    return v if v else None

def parse_flag(value):
    """JSON true or a form-style "1"/"true"/"on"; anything else is False"""
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return value is True or (type(value) is int and value == 1)

def admin_required(fn):
    """Decorator to protect admin routes"""
    @wraps(fn)
    def wrapper(*a, **kw):
        if not session.get('admin_logged_in'):
            return jsonify({'ok': False, 'error': 'Unauthenticated', 'msg': 'admin_login_required'}), 401
        return fn(*a, **kw)
    return wrapper

def teacher_required(fn):
    """Decorator to protect teacher routes that are not scoped to a classroom"""
    @wraps(fn)
    def wrapper(*a, **kw):
        if not session.get('teacher_logged_in'):
            return jsonify({'ok': False, 'error': 'Unauthenticated', 'msg': 'teacher_login_required'}), 401
        return fn(*a, **kw)
    return wrapper
