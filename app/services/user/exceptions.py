class UserEmailNotFound(Exception):
    """Raised when the decoded token carries no e-mail address."""

    pass


class UserNotFound(Exception):
    """Raised when the user is not registered in the database."""

    pass
