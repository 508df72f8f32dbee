import sys
from datetime import datetime
from pathlib import Path

import pytest
from werkzeug.security import generate_password_hash


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app
from models import (db, User, Classroom, Enrollment, Assessment, AssessmentSection,
                    AssessmentQuestion, AssessmentOption)
from access_guard import ClassroomContext
import assessments

CLASSROOM_CODE = 'CLS-20250101-ABCD'
OTHER_CODE = 'CLS-20250101-0F0F'
DURING_SECTION = datetime(2025, 1, 1, 8, 10)


def _user(username, role):
    u = User(username=username, password_hash=generate_password_hash('secret'), role=role)
    db.session.add(u)
    db.session.flush()
    return u


def _seed():
    teacher = _user('teacher1', 'teacher')
    other_teacher = _user('teacher2', 'teacher')
    alice = _user('alice', 'student')
    bob = _user('bob', 'student')
    carol = _user('carol', 'student')
    outsider = _user('mallory', 'student')

    room = Classroom(classroom_code=CLASSROOM_CODE, classroom_name='Physics Form 4',
                     logo_url='https://example.com/logo.png', days_json=[], teacher_id=teacher.id)
    other_room = Classroom(classroom_code=OTHER_CODE, classroom_name='Chemistry', days_json=[],
                           teacher_id=other_teacher.id)
    db.session.add_all([room, other_room])
    db.session.flush()
    for s in (alice, bob, carol):
        db.session.add(Enrollment(student_id=s.id, classroom_id=room.id))
    db.session.add(Enrollment(student_id=outsider.id, classroom_id=other_room.id))

    quiz = Assessment(classroom_id=room.id, title='Kinematics quiz', type='mixed', total_marks=8,
                      created_by=teacher.id, created_at=datetime(2024, 12, 30, 9, 0))
    later = Assessment(classroom_id=room.id, title='Dynamics test', type='objective', total_marks=2,
                       created_by=teacher.id, created_at=datetime(2024, 12, 31, 9, 0))
    foreign = Assessment(classroom_id=other_room.id, title='Acids', type='objective', total_marks=1,
                         created_by=other_teacher.id)
    db.session.add_all([quiz, later, foreign])
    db.session.flush()

    section = AssessmentSection(assessment_id=quiz.id, title='Part A',
                                start_at=datetime(2025, 1, 1, 8, 0), end_at=datetime(2025, 1, 1, 8, 30))
    section_b = AssessmentSection(assessment_id=quiz.id, title='Part B',
                                  start_at=datetime(2025, 1, 1, 9, 0), end_at=datetime(2025, 1, 1, 9, 30))
    later_section = AssessmentSection(assessment_id=later.id, title='Only part',
                                      start_at=datetime(2025, 1, 1, 8, 0), end_at=datetime(2025, 1, 1, 8, 30))
    foreign_section = AssessmentSection(assessment_id=foreign.id, title='Acids part',
                                        start_at=datetime(2025, 1, 1, 8, 0), end_at=datetime(2025, 1, 1, 8, 30))
    db.session.add_all([section, section_b, later_section, foreign_section])
    db.session.flush()

    mcq = AssessmentQuestion(section_id=section.id, question_text='Unit of acceleration?', q_type='mcq', marks=5)
    essay = AssessmentQuestion(section_id=section.id, question_text='Explain inertia.', q_type='text', marks=3)
    part_b_q = AssessmentQuestion(section_id=section_b.id, question_text='Define velocity.', q_type='text', marks=2)
    later_q = AssessmentQuestion(section_id=later_section.id, question_text='F = ?', q_type='mcq', marks=2)
    db.session.add_all([mcq, essay, part_b_q, later_q])
    db.session.flush()

    db.session.add_all([
        AssessmentOption(id=6, question_id=mcq.id, option_text='m/s', is_correct=False),
        AssessmentOption(id=7, question_id=mcq.id, option_text='m/s^2', is_correct=True),
        AssessmentOption(id=9, question_id=mcq.id, option_text='kg', is_correct=False),
        AssessmentOption(id=20, question_id=later_q.id, option_text='ma', is_correct=True),
        AssessmentOption(id=21, question_id=later_q.id, option_text='mv', is_correct=False),
    ])
    db.session.commit()

    return {
        'teacher_id': teacher.id,
        'other_teacher_id': other_teacher.id,
        'alice_id': alice.id,
        'bob_id': bob.id,
        'carol_id': carol.id,
        'outsider_id': outsider.id,
        'classroom_id': room.id,
        'other_classroom_id': other_room.id,
        'quiz_id': quiz.id,
        'later_id': later.id,
        'foreign_id': foreign.id,
        'section_id': section.id,
        'section_b_id': section_b.id,
        'later_section_id': later_section.id,
        'foreign_section_id': foreign_section.id,
        'mcq_id': mcq.id,
        'essay_id': essay.id,
        'part_b_q_id': part_b_q.id,
        'later_q_id': later_q.id,
    }


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'CLASSROOM_TIMEZONE': 'Africa/Kigali',
        'SUBMISSION_GRACE_SECONDS': 30,
        'ADMIN_USERNAME': 'admin',
        'ADMIN_PASSWORD': 'admin-pass',
    })
    with app.app_context():
        app.seed = _seed()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def seed(app):
    return app.seed


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def frozen_now(monkeypatch):
    """Pin the assessment clock to 08:10 on the scenario day."""
    monkeypatch.setattr(assessments, 'local_now', lambda: DURING_SECTION)
    return DURING_SECTION


@pytest.fixture
def student_ctx(app_ctx, seed):
    def make(user_key='alice_id', classroom_key='classroom_id'):
        return ClassroomContext(db.session.get(Classroom, seed[classroom_key]), seed[user_key], 'student')
    return make


def login_as(client, role, user_id, username='user'):
    with client.session_transaction() as sess:
        sess.clear()
        sess[f'{role}_logged_in'] = True
        sess[f'{role}_id'] = user_id
        sess[f'{role}_username'] = username
