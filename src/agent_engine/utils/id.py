"""ID generation utilities.

Identifiers are UUID v4 based, prefixed by the kind of object they name.
"""

import uuid


def generate_uuid() -> str:
    """Generate a UUID v4 as a string.

    Returns:
        UUID v4 string (without dashes)
    """
    return uuid.uuid4().hex


def generate_execution_id() -> str:
    """Generate a unique flow execution identifier.

    Returns:
        Execution ID prefixed with "exec_"
    """
    return f"exec_{generate_uuid()}"


def generate_request_id() -> str:
    """Generate a unique invocation request identifier.

    Returns:
        Request ID prefixed with "req_"
    """
    return f"req_{generate_uuid()}"


def generate_call_id() -> str:
    """Generate a unique tool call identifier.

    Returns:
        Call ID prefixed with "call_"
    """
    return f"call_{generate_uuid()}"


def generate_session_id() -> str:
    """Generate a unique session identifier.

    Returns:
        Session ID prefixed with "session_"
    """
    return f"session_{generate_uuid()}"


def is_valid_uuid(uuid_string: str) -> bool:
    """Check if a string is a valid UUID v4, with or without dashes.

    Args:
        uuid_string: String to validate

    Returns:
        True if valid UUID v4
    """
    try:
        return uuid.UUID(uuid_string).version == 4
    except ValueError:
        return False
