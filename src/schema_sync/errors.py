"""Exception taxonomy and credential redaction.

Every message that can carry a connection string goes through
``sanitize_connection_string`` before it is stored on an exception, logged,
or emitted as an event.

Usage:
    from schema_sync.errors import sanitize_error, ShadowSeedError

    try:
        await shadow.exec(sql)
    except Exception as e:
        raise ShadowSeedError("baseline", sanitize_error(e)) from e
"""

import re

_CONNECTION_PASSWORD = re.compile(
    r"((?:postgres|postgresql)(?:\+\w+)?://[^:/@\s]+:)[^@\s]+(@)",
    re.IGNORECASE,
)

REDACTED = "***"


def sanitize_connection_string(value: str) -> str:
    """Replace the password segment of every embedded connection URL.

    Example:
        >>> sanitize_connection_string("postgresql://app:s3cret@db:5432/app")
        'postgresql://app:***@db:5432/app'
    """
    return _CONNECTION_PASSWORD.sub(rf"\g<1>{REDACTED}\g<2>", value)


def sanitize_error(error: BaseException | str) -> str:
    """Render an exception (or message) with credentials redacted."""
    return sanitize_connection_string(str(error))


class SchemaSyncError(Exception):
    """Base class for errors raised by the sync engine.

    The message is redacted on construction so it is always safe to print.
    """

    def __init__(self, message: str) -> None:
        super().__init__(sanitize_connection_string(message))


class ProfileNotFoundError(SchemaSyncError):
    """Raised when no database profile is configured or the name is unknown."""


class ShadowSeedError(SchemaSyncError):
    """Structural failure while seeding a shadow database.

    Attributes:
        stage: Seeding stage (``baseline``, ``auth_migrations``,
            ``custom_schemas``, ``schema_files``).
        path: Offending file, when the failure is tied to one.
    """

    def __init__(self, stage: str, message: str, path: str | None = None) -> None:
        self.stage = stage
        self.path = path
        where = f" ({path})" if path else ""
        super().__init__(f"Shadow seeding failed at {stage}{where}: {message}")


class SchemaFileError(ShadowSeedError):
    """A user schema file could not be applied to the shadow database."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__("schema_files", message, path=path)


class PlanError(SchemaSyncError):
    """The diff oracle could not produce a plan."""
