"""Assessment structure, submission and grading.

All functions take the `ClassroomContext` produced by the access gate and
never read role or classroom from the session themselves.
"""
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import (Assessment, AssessmentSection, AssessmentQuestion, AssessmentOption,
                    AssessmentSubmission, AssessmentAnswer, User, db)
from errors import (NotFound, InvalidPayload, OwnershipMismatch, QuestionNotFound, SectionLocked,
                    SectionClosed, DuplicateSubmission, PersistenceFailure, AssessmentError)
from section_timer import SectionState, section_state, remaining_seconds
from utils import parse_positive_int, parse_non_negative_int, local_now

QUESTION_TYPES = ('mcq', 'text')


def _iso(dt):
    return dt.isoformat() if dt else None


def _owned_assessment(ctx, assessment_id):
    return Assessment.query.filter_by(id=assessment_id, classroom_id=ctx.classroom.id).first()


def _existing_submission(student_id, section_id):
    return AssessmentSubmission.query.filter_by(student_id=student_id, section_id=section_id).first()


def _parse_local_datetime(value):
    """ISO datetime as naive wall-clock time in the classroom timezone.

    Offset-aware input ('...+02:00', '...Z') is converted first.
    """
    if not isinstance(value, str):
        raise InvalidPayload('start_at/end_at must be ISO datetimes')
    value = value.strip()
    if value.endswith(('Z', 'z')):
        value = value[:-1] + '+00:00'
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        raise InvalidPayload('start_at/end_at must be ISO datetimes')
    if dt.tzinfo is not None:
        tz = ZoneInfo(current_app.config.get('CLASSROOM_TIMEZONE', 'Africa/Kigali'))
        dt = dt.astimezone(tz).replace(tzinfo=None)
    return dt


# Structure resolver
def list_assessments(ctx):
    rows = (Assessment.query.filter_by(classroom_id=ctx.classroom.id)
            .order_by(Assessment.created_at.desc(), Assessment.id.desc()).all())
    return [{
        'id': a.id,
        'title': a.title,
        'type': a.type,
        'total_marks': a.total_marks,
        'created_at': _iso(a.created_at),
    } for a in rows]


def get_assessment(ctx, assessment_id, include_answer_key=False, now=None):
    """Assessment → sections → questions → options, ordered by id.

    `is_correct` is only serialized for teacher views (include_answer_key=True).
    """
    assessment = _owned_assessment(ctx, assessment_id)
    if not assessment:
        raise NotFound('Assessment not found')
    now = now or local_now()

    sections = (AssessmentSection.query.filter_by(assessment_id=assessment.id)
                .order_by(AssessmentSection.id.asc()).all())
    section_ids = [s.id for s in sections]
    questions = []
    if section_ids:
        questions = (AssessmentQuestion.query.filter(AssessmentQuestion.section_id.in_(section_ids))
                     .order_by(AssessmentQuestion.id.asc()).all())
    mcq_ids = [q.id for q in questions if q.q_type == 'mcq']
    options = []
    if mcq_ids:
        options = (AssessmentOption.query.filter(AssessmentOption.question_id.in_(mcq_ids))
                   .order_by(AssessmentOption.id.asc()).all())

    opts_by_question = {}
    for o in options:
        item = {'id': o.id, 'option_text': o.option_text}
        if include_answer_key:
            item['is_correct'] = bool(o.is_correct)
        opts_by_question.setdefault(o.question_id, []).append(item)

    qs_by_section = {}
    for q in questions:
        item = {'id': q.id, 'question_text': q.question_text, 'q_type': q.q_type, 'marks': q.marks}
        if q.q_type == 'mcq':
            item['options'] = opts_by_question.get(q.id, [])
        qs_by_section.setdefault(q.section_id, []).append(item)

    out_sections = []
    for s in sections:
        out_sections.append({
            'id': s.id,
            'title': s.title,
            'start_at': _iso(s.start_at),
            'end_at': _iso(s.end_at),
            'state': section_state(s.start_at, s.end_at, now).value,
            'remaining_seconds': remaining_seconds(s.end_at, now),
            'questions': qs_by_section.get(s.id, []),
        })

    return {
        'assessment': {
            'id': assessment.id,
            'title': assessment.title,
            'type': assessment.type,
            'total_marks': assessment.total_marks,
            'created_at': _iso(assessment.created_at),
        },
        'sections': out_sections,
        'classroom': {'name': ctx.classroom.classroom_name, 'logo': ctx.classroom.logo_url},
    }


# Submission & grading
def _parse_answers(answers):
    if not isinstance(answers, list):
        raise InvalidPayload('answers must be a list')
    parsed = []
    seen = set()
    for ans in answers:
        if not isinstance(ans, dict):
            raise InvalidPayload('each answer must be an object')
        qid = parse_positive_int(ans.get('question_id'))
        if qid is None:
            raise InvalidPayload('missing or bad question_id')
        if qid in seen:
            raise InvalidPayload(f'question {qid} answered twice')
        seen.add(qid)

        raw_sel = ans.get('selected_option_id')
        if raw_sel is None or raw_sel == '':
            selected = None
        else:
            selected = parse_positive_int(raw_sel)
            if selected is None:
                raise InvalidPayload(f'bad selected_option_id for question {qid}')

        text = ans.get('answer_text')
        if text is not None and not isinstance(text, str):
            raise InvalidPayload(f'answer_text for question {qid} must be a string')
        parsed.append((qid, selected, text))
    return parsed


def _grade(question, selected):
    """Return (awarded, stored_option_id). Only mcq questions are auto-graded."""
    if question.q_type != 'mcq' or selected is None:
        return 0, None
    option = AssessmentOption.query.filter_by(id=selected, question_id=question.id).first()
    if not option:
        # not one of this question's options: never persisted as a reference
        return 0, None
    return (question.marks if option.is_correct else 0), option.id


def _store_submission(ctx, assessment_id, section_id, student_id, parsed, auto_submitted, now):
    section = (AssessmentSection.query
               .join(Assessment, AssessmentSection.assessment_id == Assessment.id)
               .filter(AssessmentSection.id == section_id,
                       Assessment.id == assessment_id,
                       Assessment.classroom_id == ctx.classroom.id)
               .first())
    if not section:
        raise OwnershipMismatch('Assessment/Section mismatch')

    state = section_state(section.start_at, section.end_at, now)
    if state == SectionState.LOCKED:
        raise SectionLocked('Section not started yet')
    grace = timedelta(seconds=current_app.config.get('SUBMISSION_GRACE_SECONDS', 30))
    if now > section.end_at + grace:
        raise SectionClosed('Section has ended')

    if _existing_submission(student_id, section.id):
        raise DuplicateSubmission('Section already submitted')

    submitted_at = datetime.utcnow()
    submission = AssessmentSubmission(assessment_id=assessment_id, section_id=section.id,
                                      student_id=student_id, auto_submitted=bool(auto_submitted),
                                      submitted_at=submitted_at)
    db.session.add(submission)
    db.session.flush()

    total_awarded = 0
    details = []
    for qid, selected, text in parsed:
        question = AssessmentQuestion.query.filter_by(id=qid, section_id=section.id).first()
        if not question:
            raise QuestionNotFound(f'Question {qid} not found in this section')
        awarded, option_id = _grade(question, selected)
        db.session.add(AssessmentAnswer(
            submission_id=submission.id,
            assessment_id=assessment_id,
            section_id=section.id,
            question_id=question.id,
            student_id=student_id,
            answer_text=text,
            selected_option_id=option_id,
            awarded_marks=awarded,
            submitted_at=submitted_at,
        ))
        total_awarded += awarded
        details.append({'question_id': question.id, 'awarded': awarded, 'marks': question.marks})

    submission.total_awarded = total_awarded
    db.session.commit()
    return {'ok': True, 'submission_id': submission.id, 'total_awarded': total_awarded, 'details': details}


def submit_answers(ctx, assessment_id, section_id, student_id, answers, auto_submitted=False, now=None):
    """Validate, grade and persist one section submission atomically.

    Returns {'ok': True, 'total_awarded', 'details', 'submission_id'} or
    {'ok': False, 'error': kind, 'msg': message}; nothing is written on failure.
    """
    sid = None
    try:
        aid = parse_positive_int(assessment_id)
        sid = parse_positive_int(section_id)
        if aid is None or sid is None:
            raise InvalidPayload('Missing fields')
        parsed = _parse_answers(answers)
        return _store_submission(ctx, aid, sid, student_id, parsed, auto_submitted, now or local_now())
    except AssessmentError as e:
        db.session.rollback()
        return e.to_dict()
    except IntegrityError as e:
        db.session.rollback()
        # a concurrent submission for the same student/section won the race
        if sid is not None and _existing_submission(student_id, sid):
            return DuplicateSubmission('Section already submitted').to_dict()
        current_app.logger.exception('submission failed for section %s', section_id)
        return PersistenceFailure(f'Could not store answers: {e.__class__.__name__}').to_dict()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception('submission failed for section %s', section_id)
        return PersistenceFailure(f'Could not store answers: {e.__class__.__name__}').to_dict()


# Results & manual grading
def student_results(ctx, student_id):
    rows = (db.session.query(AssessmentSubmission, Assessment, AssessmentSection)
            .join(Assessment, AssessmentSubmission.assessment_id == Assessment.id)
            .join(AssessmentSection, AssessmentSubmission.section_id == AssessmentSection.id)
            .filter(Assessment.classroom_id == ctx.classroom.id,
                    AssessmentSubmission.student_id == student_id)
            .order_by(AssessmentSubmission.submitted_at.desc()).all())
    return [{
        'submission_id': sub.id,
        'assessment_id': a.id,
        'assessment_title': a.title,
        'section_id': s.id,
        'section_title': s.title,
        'total_awarded': sub.total_awarded,
        'auto_submitted': sub.auto_submitted,
        'submitted_at': _iso(sub.submitted_at),
    } for sub, a, s in rows]


def assessment_results(ctx, assessment_id):
    assessment = _owned_assessment(ctx, assessment_id)
    if not assessment:
        raise NotFound('Assessment not found')
    subs = (db.session.query(AssessmentSubmission, User)
            .join(User, AssessmentSubmission.student_id == User.id)
            .filter(AssessmentSubmission.assessment_id == assessment.id)
            .order_by(User.username.asc(), AssessmentSubmission.section_id.asc()).all())
    answers = (AssessmentAnswer.query.filter_by(assessment_id=assessment.id)
               .order_by(AssessmentAnswer.id.asc()).all())
    by_submission = {}
    for ans in answers:
        by_submission.setdefault(ans.submission_id, []).append({
            'answer_id': ans.id,
            'question_id': ans.question_id,
            'selected_option_id': ans.selected_option_id,
            'answer_text': ans.answer_text,
            'awarded_marks': ans.awarded_marks,
            'graded_at': _iso(ans.graded_at),
        })
    out = []
    for sub, student in subs:
        out.append({
            'submission_id': sub.id,
            'student_id': student.id,
            'student_username': student.username,
            'section_id': sub.section_id,
            'total_awarded': sub.total_awarded,
            'auto_submitted': sub.auto_submitted,
            'submitted_at': _iso(sub.submitted_at),
            'answers': by_submission.get(sub.id, []),
        })
    return out


def grade_answer(ctx, answer_id, marks):
    """Teacher sets marks on a free-text answer; the submission total follows."""
    aid = parse_positive_int(answer_id)
    if aid is None:
        raise InvalidPayload('bad answer_id')
    marks_val = parse_non_negative_int(marks)
    if marks_val is None:
        raise InvalidPayload('bad marks')

    row = (db.session.query(AssessmentAnswer, AssessmentQuestion)
           .join(AssessmentQuestion, AssessmentAnswer.question_id == AssessmentQuestion.id)
           .join(Assessment, AssessmentAnswer.assessment_id == Assessment.id)
           .filter(AssessmentAnswer.id == aid, Assessment.classroom_id == ctx.classroom.id)
           .first())
    if not row:
        raise NotFound('Answer not found')
    answer, question = row
    if question.q_type == 'mcq':
        raise InvalidPayload('mcq answers are graded automatically')
    if marks_val > question.marks:
        raise InvalidPayload(f'marks must be between 0 and {question.marks}')

    submission = db.session.get(AssessmentSubmission, answer.submission_id)
    submission.total_awarded += marks_val - answer.awarded_marks
    answer.awarded_marks = marks_val
    answer.graded_at = datetime.utcnow()
    db.session.commit()
    return {'answer_id': answer.id, 'awarded_marks': answer.awarded_marks,
            'submission_total': submission.total_awarded}


# Authoring (teacher)
def create_assessment(ctx, title, type_='objective', total_marks=None):
    title = (title or '').strip()
    if not title:
        raise InvalidPayload('missing_title')
    if total_marks in (None, ''):
        total_marks = None
    else:
        total_marks = parse_non_negative_int(total_marks)
        if total_marks is None:
            raise InvalidPayload('total_marks must be a non-negative integer')
    a = Assessment(classroom_id=ctx.classroom.id, title=title, type=(type_ or 'objective').strip(),
                   total_marks=total_marks, created_by=ctx.user_id)
    db.session.add(a)
    db.session.commit()
    return a


def create_section(ctx, assessment_id, title, start_at, end_at):
    assessment = _owned_assessment(ctx, parse_positive_int(assessment_id))
    if not assessment:
        raise NotFound('Assessment not found')
    title = (title or '').strip()
    start = _parse_local_datetime(start_at)
    end = _parse_local_datetime(end_at)
    if not title:
        raise InvalidPayload('missing_title')
    if start >= end:
        raise InvalidPayload('start_at must be before end_at')
    s = AssessmentSection(assessment_id=assessment.id, title=title, start_at=start, end_at=end)
    db.session.add(s)
    db.session.commit()
    return s


def create_question(ctx, section_id, question_text, q_type, marks, options=None):
    section = (AssessmentSection.query
               .join(Assessment, AssessmentSection.assessment_id == Assessment.id)
               .filter(AssessmentSection.id == parse_positive_int(section_id),
                       Assessment.classroom_id == ctx.classroom.id)
               .first())
    if not section:
        raise NotFound('Section not found')
    question_text = (question_text or '').strip()
    if not question_text or q_type not in QUESTION_TYPES:
        raise InvalidPayload('missing_fields')
    marks = parse_non_negative_int(marks)
    if marks is None:
        raise InvalidPayload('marks must be a non-negative integer')

    clean_options = []
    if q_type == 'mcq':
        if not isinstance(options, list) or len(options) < 2:
            raise InvalidPayload('mcq questions need at least two options')
        for o in options:
            text = (o.get('option_text') or '').strip() if isinstance(o, dict) else ''
            if not text:
                raise InvalidPayload('empty option_text')
            clean_options.append((text, bool(o.get('is_correct'))))
        if sum(1 for _, correct in clean_options if correct) != 1:
            raise InvalidPayload('mcq questions need exactly one correct option')

    q = AssessmentQuestion(section_id=section.id, question_text=question_text, q_type=q_type, marks=marks)
    db.session.add(q)
    db.session.flush()
    for text, correct in clean_options:
        db.session.add(AssessmentOption(question_id=q.id, option_text=text, is_correct=correct))
    db.session.commit()
    return q
