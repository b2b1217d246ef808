"""Error taxonomy for the scheduling core.

Engines raise these; the router maps each one to an HTTP status.
``NotFound`` is used both for records that do not exist and for records
that belong to another party.
"""


class SchedulingError(Exception):
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__doc__)
        self.message = message or self.__doc__


class ValidationError(SchedulingError):
    """Invalid input"""
    status_code = 400


class FormatError(ValidationError):
    """Time of day must be HH:MM"""


class ProviderUnavailable(SchedulingError):
    """Provider not found or unavailable"""
    status_code = 404


class ProviderNotFound(SchedulingError):
    """Provider not found"""
    status_code = 404


class NotFound(SchedulingError):
    """Appointment not found"""
    status_code = 404


class SlotConflict(SchedulingError):
    """Time slot is not available"""
    status_code = 409


class InvalidTransition(SchedulingError):
    """Appointment status cannot be changed"""
    status_code = 409


class NotCancellable(SchedulingError):
    """Appointment cannot be cancelled"""
    status_code = 409


class NotReviewable(SchedulingError):
    """Only completed appointments can be reviewed"""
    status_code = 409
