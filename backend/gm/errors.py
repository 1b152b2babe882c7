from __future__ import annotations


class NotAuthenticated(RuntimeError):
    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class InvalidInputError(ValueError):
    pass


class MissingInputError(InvalidInputError):
    pass


class NotFoundError(LookupError):
    pass


class GenerationError(RuntimeError):
    pass


def require_user(user_id: str | None) -> str:
    cleaned = safe_trim(user_id)
    if not cleaned:
        raise NotAuthenticated()
    return cleaned


def require_value(value: str | None, name: str) -> str:
    cleaned = safe_trim(value)
    if not cleaned:
        raise MissingInputError(f"Missing {name}")
    return cleaned


def safe_trim(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""
