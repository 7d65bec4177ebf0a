"""Service-level errors.

Both derive from ValueError so callers that only care about "the request
was bad" can keep catching ValueError.
"""


class ValidationError(ValueError):
    """The request is malformed or would break a timesheet invariant."""


class NotFoundError(ValueError):
    """A referenced timesheet, row or entry does not exist for the company."""


class ConflictError(ValueError):
    """Another request holds the timesheet being written."""
