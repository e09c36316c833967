class ExpenseTrackerError(Exception):
    """Base class for errors raised by the expense and rewards services."""


class ValidationError(ExpenseTrackerError):
    """Input rejected before anything was written.

    ``errors`` maps field names to lists of messages, in the same shape as
    ``wtforms.Form.errors``.
    """

    def __init__(self, errors):
        self.errors = dict(errors)
        details = "; ".join(
            f"{field}: {', '.join(messages)}" for field, messages in self.errors.items()
        )
        super().__init__(f"Invalid input ({details})")


class NotFoundError(ExpenseTrackerError):
    def __init__(self, entity, key):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key!r} not found")


class AuthorizationError(ExpenseTrackerError):
    def __init__(self, entity, key, user_id):
        self.entity = entity
        self.key = key
        self.user_id = user_id
        super().__init__(f"User {user_id} is not allowed to modify {entity} {key!r}")


class NotificationError(ExpenseTrackerError):
    """Raised by a notification transport when a message could not be delivered."""
