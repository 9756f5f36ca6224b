"""Exception taxonomy shared by the engine, the CLI and the web wizard."""

from __future__ import annotations


class RemediationError(Exception):
    pass


class InputError(RemediationError):
    """A request is missing a field or names something that does not exist."""


class UnsupportedActionError(InputError):
    def __init__(self, action_type: str) -> None:
        super().__init__(f"Unsupported action type: {action_type}")
        self.action_type = action_type


class UnknownColumnError(InputError):
    def __init__(self, column_name: str) -> None:
        super().__init__(f"Column not found: {column_name}")
        self.column_name = column_name


class UnknownSubtypeError(InputError):
    def __init__(self, subtype_id: str) -> None:
        super().__init__(f"Unknown subtype: {subtype_id}")
        self.subtype_id = subtype_id


class UnsupportedFileError(InputError):
    pass


class ExternalServiceError(RemediationError):
    pass


class ReferenceLookupError(ExternalServiceError):
    pass


class AIUnavailableError(ExternalServiceError):
    pass


class PersistenceError(RemediationError):
    """Reading or rewriting the working copy failed."""
