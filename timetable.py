"""Weekly timetable grid: one module + teacher per (classroom, day, slot)."""
from sqlalchemy.exc import SQLAlchemyError
from models import TimetableEntry, Notification, Classroom, User, db
from errors import InvalidPayload

DAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']
TIME_SLOTS = ['08:00-10:00', '10:00-12:00', '13:00-15:00', '15:00-17:00']


def list_timetable(classroom_id=None):
    q = TimetableEntry.query
    if classroom_id:
        q = q.filter_by(classroom_id=classroom_id)
    entries = q.order_by(TimetableEntry.classroom_id.asc(), TimetableEntry.id.asc()).all()
    return [{
        'classroom_id': e.classroom_id,
        'day': e.day,
        'time_slot': e.time_slot,
        'module_name': e.module_name,
        'teacher_id': e.teacher_id,
    } for e in entries]


def save_timetable(cells):
    """Replace the whole timetable with `cells` and publish a notification.

    Cells with an empty module name or teacher are skipped, like blank grid cells.
    """
    if not isinstance(cells, list):
        raise InvalidPayload('entries must be a list')
    classroom_ids = {c.id for c in Classroom.query.all()}
    teacher_ids = {u.id for u in User.query.filter_by(role='teacher')}

    rows = []
    seen = set()
    for cell in cells:
        if not isinstance(cell, dict):
            raise InvalidPayload('each entry must be an object')
        module_name = (cell.get('module_name') or '').strip()
        teacher_id = cell.get('teacher_id')
        if not module_name or not teacher_id:
            continue
        day = cell.get('day')
        slot = cell.get('time_slot')
        classroom_id = cell.get('classroom_id')
        if day not in DAYS or slot not in TIME_SLOTS:
            raise InvalidPayload(f'bad day/time_slot: {day} {slot}')
        if classroom_id not in classroom_ids:
            raise InvalidPayload(f'unknown classroom {classroom_id}')
        if teacher_id not in teacher_ids:
            raise InvalidPayload(f'unknown teacher {teacher_id}')
        key = (classroom_id, day, slot)
        if key in seen:
            raise InvalidPayload(f'duplicate cell {key}')
        seen.add(key)
        rows.append(TimetableEntry(day=day, time_slot=slot, module_name=module_name,
                                   classroom_id=classroom_id, teacher_id=teacher_id))

    try:
        TimetableEntry.query.delete()
        db.session.add_all(rows)
        db.session.add(Notification(title='New Timetable Published',
                                    message='The timetable has been updated.'))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return len(rows)
