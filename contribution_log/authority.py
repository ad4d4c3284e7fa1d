"""
Contribution Log — Authority Gate
===================================

Only the key recorded at initialization may append.  The gate is a pure
equality predicate over the decoded state and the transaction signer;
it reads nothing else and changes nothing, so it can run before any
mutation of the account.
"""

from .codec import LogState
from .errors import AuthorityMismatch
from .keys import Pubkey


def is_authority(state: LogState, signer: Pubkey) -> bool:
    return signer == state.authority


def check_authority(state: LogState, signer: Pubkey) -> None:
    """Raise ``AuthorityMismatch`` unless *signer* is the stored authority."""
    if not is_authority(state, signer):
        raise AuthorityMismatch(
            f"Signer {signer} is not the log authority {state.authority}"
        )
