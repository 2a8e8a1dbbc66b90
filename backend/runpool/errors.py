from __future__ import annotations


class RunPoolError(Exception):
    """Base class for errors surfaced to API callers as structured payloads."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(RunPoolError):
    status_code = 404

    def __init__(self, entity: str, ident: object):
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.ident = ident


class ConfigurationError(RunPoolError):
    """A required setting (connection string, credential) is missing."""

    status_code = 500

    def __init__(self, setting: str, detail: str | None = None):
        super().__init__(detail or f"Missing {setting}")
        self.setting = setting


class EmailDeliveryError(Exception):
    """One send attempt to one recipient failed."""

    def __init__(self, recipient: str, reason: str):
        super().__init__(f"{recipient}: {reason}")
        self.recipient = recipient
        self.reason = reason
