"""Exception hierarchy for the oracle.

Input errors are fatal for the call that raised them. Collaborator errors are
recoverable: the affected city or record is skipped and retried on the next
attempt. Persistence errors distinguish a missing store (cold start, handled
internally) from a corrupt one, which must never be silently replaced.
"""


class OracleError(Exception):
    """Base class for every error raised by weather_oracle."""


class InputError(OracleError, ValueError):
    """Argument outside the domain of a math or calibration function."""


class UnknownCityError(OracleError, LookupError):
    """City key not present in the station directory."""

    def __init__(self, city: str, available: list[str] | None = None):
        self.city = city
        self.available = list(available or [])
        msg = f"Unknown city: {city}"
        if self.available:
            msg += f" (available: {', '.join(self.available)})"
        super().__init__(msg)


class CollaboratorError(OracleError):
    """Forecast or observation source unavailable or returned garbage."""


class PersistenceError(OracleError):
    """Ledger store could not be read or written."""


class CorruptLedgerError(PersistenceError):
    """Ledger file exists but cannot be parsed into prediction records."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Corrupt ledger at {path}: {reason}")
