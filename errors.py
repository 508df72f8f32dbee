"""Failure kinds reported by the classroom gate and the assessment core.

Every error carries a `kind` the caller can branch on, a human-readable `msg`
and the HTTP status the blueprints answer with.
"""


class PortalError(Exception):
    kind = 'PortalError'
    status = 400

    def __init__(self, msg=None):
        self.msg = msg or self.kind
        super().__init__(self.msg)

    def to_dict(self):
        return {'ok': False, 'error': self.kind, 'msg': self.msg}


# Gate layer: terminal for the request
class AccessError(PortalError):
    pass

class InvalidIdentifier(AccessError):
    kind = 'InvalidIdentifier'
    status = 400

class NotFound(AccessError):
    kind = 'NotFound'
    status = 404

class Unauthenticated(AccessError):
    kind = 'Unauthenticated'
    status = 401

class Forbidden(AccessError):
    kind = 'Forbidden'
    status = 403


# Assessment layer: terminal for one attempt, the caller may retry
class AssessmentError(PortalError):
    pass

class InvalidPayload(AssessmentError):
    kind = 'InvalidPayload'
    status = 400

class OwnershipMismatch(AssessmentError):
    kind = 'OwnershipMismatch'
    status = 404

class QuestionNotFound(AssessmentError):
    kind = 'QuestionNotFound'
    status = 404

class SectionLocked(AssessmentError):
    kind = 'SectionLocked'
    status = 403

class SectionClosed(AssessmentError):
    kind = 'SectionClosed'
    status = 403

class DuplicateSubmission(AssessmentError):
    kind = 'DuplicateSubmission'
    status = 409

class PersistenceFailure(AssessmentError):
    kind = 'PersistenceFailure'
    status = 500


STATUS_BY_KIND = {cls.kind: cls.status for cls in (
    InvalidIdentifier, NotFound, Unauthenticated, Forbidden,
    InvalidPayload, OwnershipMismatch, QuestionNotFound, SectionLocked,
    SectionClosed, DuplicateSubmission, PersistenceFailure,
)}
