"""
Error kinds raised by the cancellation / extension services.

Every error carries a stable ``code`` the HTTP layer returns to callers.
None of these are retried automatically.
"""
from dataclasses import dataclass
from typing import List, Optional


class WorkflowError(Exception):
    """Base class for all domain errors of the cancellation workflow."""

    code = 'WORKFLOW_ERROR'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'error': self.code, 'detail': self.message}


class NotFound(WorkflowError):
    """Lead, delivery record or application does not exist."""

    code = 'NOT_FOUND'


@dataclass(frozen=True)
class Shortfall:
    """A single unmet submission requirement."""

    requirement: str
    message: str
    required: Optional[int] = None
    actual: Optional[int] = None

    @property
    def missing(self) -> Optional[int]:
        if self.required is None or self.actual is None:
            return None
        return max(self.required - self.actual, 0)

    def to_dict(self) -> dict:
        return {
            'requirement': self.requirement,
            'message': self.message,
            'required': self.required,
            'actual': self.actual,
            'missing': self.missing,
        }


class NotEligible(WorkflowError):
    """Outside the deadline, already contracted, or insufficient evidence."""

    code = 'NOT_ELIGIBLE'

    def __init__(self, message: str, shortfalls: Optional[List[Shortfall]] = None):
        super().__init__(message)
        self.shortfalls = list(shortfalls or [])

    @classmethod
    def from_shortfalls(cls, shortfalls: List[Shortfall]) -> 'NotEligible':
        return cls('; '.join(s.message for s in shortfalls), shortfalls)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['shortfalls'] = [s.to_dict() for s in self.shortfalls]
        return data


class DuplicateApplication(WorkflowError):
    """An active (pending or approved) application already exists for the pair."""

    code = 'DUPLICATE_APPLICATION'


class AlreadyDecided(WorkflowError):
    """The application is no longer pending."""

    code = 'ALREADY_DECIDED'


class MissingReason(WorkflowError):
    """A rejection was requested without a reason."""

    code = 'MISSING_REASON'


class ConflictingActiveMerchants(WorkflowError):
    """Other merchants are still actively engaged and the policy blocks approval."""

    code = 'CONFLICTING_ACTIVE_MERCHANTS'

    def __init__(self, message: str, report):
        super().__init__(message)
        self.report = report

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['engaged_merchants'] = self.report.to_dict()['engaged_merchants']
        return data


class InvalidStatus(WorkflowError):
    """A stored status value is outside its closed enumeration."""

    code = 'INVALID_STATUS'


class CascadeIncomplete(WorkflowError):
    """
    The approval was recorded but the lead / delivery updates could not be
    written. The reconciliation task finishes them later.
    """

    code = 'CASCADE_INCOMPLETE'
