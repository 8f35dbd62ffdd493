"""Input validation utilities.

Values from configuration and CLI options end up inside shell command
lines run locally and on the remote host, so anything that is not quoted
by construction (table names inside ``--ignore-table=db.table``, the
database qualifier inside a sed expression) is restricted here.

All validators return the validated value or raise ValidationError.
"""

import re

from dbsync.core.exceptions import ValidationError


# Unquoted MySQL/PostgreSQL identifier characters
NAME_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_$]*$")

# mysqldump --max_allowed_packet values: bytes or K/M/G suffixed
PACKET_SIZE_PATTERN = re.compile(r"^[1-9][0-9]*[KMG]?$", re.IGNORECASE)

# Maximum identifier length (MySQL allows 64, PostgreSQL 63)
MAX_NAME_LENGTH = 64


def validate_name(value: str, name_type: str = "table") -> str:
    """Validate a database or table name.

    Rules:
    - Letters, digits, underscores and dollar signs only
    - Cannot start with a dollar sign
    - Max 64 characters

    Args:
        value: The name to validate
        name_type: Type for error messages (e.g., "table", "database")

    Returns:
        The validated name

    Raises:
        ValidationError: If validation fails
    """
    if not value:
        raise ValidationError(
            f"{name_type.title()} name cannot be empty",
            hint="Provide a valid name",
        )

    if len(value) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"{name_type.title()} name exceeds maximum length "
            f"({len(value)} > {MAX_NAME_LENGTH})",
            details=[f"Provided: {value[:50]}..."],
        )

    if not NAME_PATTERN.match(value):
        raise ValidationError(
            f"Invalid {name_type} name: '{value}'",
            hint="Use only letters, digits, underscores and dollar signs",
            details=[_suggest_valid_name(value)],
        )

    return value


def _suggest_valid_name(name: str) -> str:
    """Generate a suggestion for a valid name from an invalid one."""
    cleaned = re.sub(r"[^A-Za-z0-9_$]", "_", name).lstrip("$")

    if not cleaned:
        cleaned = "unnamed"

    return f"Suggestion: {cleaned[:MAX_NAME_LENGTH]}"


def validate_port(value: int) -> int:
    """Validate a port number.

    Args:
        value: Port number to validate

    Returns:
        The validated port number

    Raises:
        ValidationError: If port is out of valid range
    """
    if not 1 <= value <= 65535:
        raise ValidationError(
            f"Invalid port number: {value}",
            hint="Port must be between 1 and 65535",
        )

    return value


def validate_packet_size(value: str) -> str:
    """Validate a mysqldump packet size such as ``64M`` or ``1073741824``."""
    if not PACKET_SIZE_PATTERN.match(value):
        raise ValidationError(
            f"Invalid max_allowed_packet value: '{value}'",
            hint="Use a byte count or a K/M/G suffixed size, e.g. 64M",
        )
    return value.upper()
