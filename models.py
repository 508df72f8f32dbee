from datetime import datetime
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False)  # 'student' or 'teacher'
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

class Log(db.Model):
    __tablename__ = 'logs'
    id = db.Column(db.Integer, primary_key=True)
    who_user_id = db.Column(db.Integer, nullable=True)         # optional user id who performed the action
    username = db.Column(db.String(120), nullable=True)
    role = db.Column(db.String(30), nullable=True)
    event_type = db.Column(db.String(120), nullable=False)
    meta = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

class Classroom(db.Model):
    __tablename__ = 'classrooms'
    id = db.Column(db.Integer, primary_key=True)
    classroom_code = db.Column(db.String(20), unique=True, nullable=False)  # CLS-YYYYMMDD-XXXX
    classroom_name = db.Column(db.String(255), nullable=False)
    logo_url = db.Column(db.String(512), nullable=True)
    days_json = db.Column(db.JSON, nullable=True)       # e.g. ["Mon", "Wed"]; empty means every day
    start_time = db.Column(db.String(8), nullable=True)  # 'HH:MM' or 'HH:MM:SS'
    end_time = db.Column(db.String(8), nullable=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

class Enrollment(db.Model):
    __tablename__ = 'registered_students'
    __table_args__ = (db.UniqueConstraint('student_id', 'classroom_id', name='uq_enrollment'),)
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    classroom_id = db.Column(db.Integer, db.ForeignKey('classrooms.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

class Assessment(db.Model):
    __tablename__ = 'assessments'
    id = db.Column(db.Integer, primary_key=True)
    classroom_id = db.Column(db.Integer, db.ForeignKey('classrooms.id'), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(30), nullable=False, default='objective')  # 'objective' or 'mixed'
    total_marks = db.Column(db.Integer, nullable=True)
    created_by = db.Column(db.Integer, nullable=True)  # teacher user id
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

class AssessmentSection(db.Model):
    __tablename__ = 'assessment_sections'
    id = db.Column(db.Integer, primary_key=True)
    assessment_id = db.Column(db.Integer, db.ForeignKey('assessments.id'), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    start_at = db.Column(db.DateTime, nullable=False)
    end_at = db.Column(db.DateTime, nullable=False)

class AssessmentQuestion(db.Model):
    __tablename__ = 'assessment_questions'
    id = db.Column(db.Integer, primary_key=True)
    section_id = db.Column(db.Integer, db.ForeignKey('assessment_sections.id'), nullable=False)
    question_text = db.Column(db.Text, nullable=False)
    q_type = db.Column(db.String(10), nullable=False)  # 'mcq' or 'text'
    marks = db.Column(db.Integer, nullable=False, default=0)

class AssessmentOption(db.Model):
    __tablename__ = 'assessment_options'
    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('assessment_questions.id'), nullable=False)
    option_text = db.Column(db.String(512), nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)

class AssessmentSubmission(db.Model):
    """One row per (student, section) submission event"""
    __tablename__ = 'assessment_submissions'
    __table_args__ = (db.UniqueConstraint('student_id', 'section_id', name='uq_submission_student_section'),)
    id = db.Column(db.Integer, primary_key=True)
    assessment_id = db.Column(db.Integer, db.ForeignKey('assessments.id'), nullable=False)
    section_id = db.Column(db.Integer, db.ForeignKey('assessment_sections.id'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    total_awarded = db.Column(db.Integer, nullable=False, default=0)
    auto_submitted = db.Column(db.Boolean, nullable=False, default=False)
    submitted_at = db.Column(db.DateTime, default=datetime.utcnow)

class AssessmentAnswer(db.Model):
    __tablename__ = 'assessment_answers'
    __table_args__ = (db.UniqueConstraint('student_id', 'question_id', name='uq_answer_student_question'),)
    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey('assessment_submissions.id'), nullable=False)
    assessment_id = db.Column(db.Integer, db.ForeignKey('assessments.id'), nullable=False)
    section_id = db.Column(db.Integer, db.ForeignKey('assessment_sections.id'), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('assessment_questions.id'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    answer_text = db.Column(db.Text, nullable=True)
    selected_option_id = db.Column(db.Integer, db.ForeignKey('assessment_options.id'), nullable=True)
    awarded_marks = db.Column(db.Integer, nullable=False, default=0)
    submitted_at = db.Column(db.DateTime, default=datetime.utcnow)
    graded_at = db.Column(db.DateTime, nullable=True)  # set when a teacher grades a free-text answer

class TimetableEntry(db.Model):
    __tablename__ = 'timetable'
    id = db.Column(db.Integer, primary_key=True)
    day = db.Column(db.String(10), nullable=False)        # 'Monday' .. 'Sunday'
    time_slot = db.Column(db.String(11), nullable=False)  # '08:00-10:00'
    module_name = db.Column(db.String(255), nullable=False)
    classroom_id = db.Column(db.Integer, db.ForeignKey('classrooms.id'), nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)

class Notification(db.Model):
    __tablename__ = 'notifications'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
