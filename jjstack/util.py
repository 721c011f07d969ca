from typing import Optional, TypeVar

T = TypeVar('T')


def ensure(value: Optional[T], message: str = "Value is None") -> T:
    """Ensure a value is not None, raising RuntimeError if it is.

    Args:
        value: The value to check
        message: Error message used when the value is missing

    Returns:
        The value if it is not None

    Raises:
        RuntimeError: If the value is None
    """
    if value is None:
        raise RuntimeError(message)
    return value
