"""
Contribution Log — Error Taxonomy
===================================

Every failure an entry point can report is a ``ContributionLogError``
subclass carrying a stable numeric ``code`` and a human-readable
``message``.  Errors are raised at the layer that detects them; the
transaction wrapper rolls back and re-raises.  Nothing is retried
internally; resubmission is up to the caller.

CODES:
  Program errors use the 6000+ custom range; account-constraint and
  deserialization failures use the framework ranges (2xxx / 3xxx);
  platform errors (already in use, insufficient funds) use the system
  program's small codes.
"""

from typing import Any, Dict, Optional, Type


class ContributionLogError(Exception):
    """Base class for every error surfaced by an entry point."""

    code: int = -1
    default_message: str = "Contribution log error."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Structured failure: name + code + message."""
        return {"error": self.name, "code": self.code, "message": self.message}


class EmptyCodeHash(ContributionLogError):
    code = 6000
    default_message = "The provided code hash cannot be empty."


class CodeHashTooLong(ContributionLogError):
    code = 6001
    default_message = "The provided code hash is too long. Max 64 characters."


class AuthorityMismatch(ContributionLogError):
    code = 2001
    default_message = "Signer is not the authority recorded in the log state."


class AlreadyInitialized(ContributionLogError):
    code = 0
    default_message = "The log state account is already in use."


class InsufficientFunds(ContributionLogError):
    code = 1
    default_message = "Payer cannot fund the required storage capacity."


class CorruptLayout(ContributionLogError):
    code = 3003
    default_message = "Failed to deserialize the log state account."


class LogNotInitialized(ContributionLogError):
    code = 3012
    default_message = "The log state account has not been initialized."


class MissingSignature(ContributionLogError):
    code = 3010
    default_message = "The signer did not prove control of its key."


class AddressDerivationError(ContributionLogError):
    code = 2006
    default_message = "Unable to find a viable program address."


ERRORS_BY_NAME: Dict[str, Type[ContributionLogError]] = {
    cls.__name__: cls
    for cls in (
        EmptyCodeHash,
        CodeHashTooLong,
        AuthorityMismatch,
        AlreadyInitialized,
        InsufficientFunds,
        CorruptLayout,
        LogNotInitialized,
        MissingSignature,
        AddressDerivationError,
    )
}


def error_from_dict(payload: Dict[str, Any]) -> ContributionLogError:
    """Rebuild an error from its ``to_dict()`` form (used by the HTTP client)."""
    cls = ERRORS_BY_NAME.get(payload.get("error", ""), ContributionLogError)
    err = cls(payload.get("message"))
    if cls is ContributionLogError and "code" in payload:
        err.code = payload["code"]
    return err
