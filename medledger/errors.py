"""
Exception hierarchy for the medledger core.

Infrastructure failures (LedgerError and subclasses) are caught inside the
services and turned into simulation fallbacks. ContractError subclasses and
NoIdentity represent caller misuse and are surfaced.
"""


class MedLedgerError(Exception):
    """Base class for all medledger errors"""


class LedgerError(MedLedgerError):
    """The distributed ledger could not serve a request"""


class ConnectionFailure(LedgerError):
    """No ledger endpoint is reachable"""


class SigningFailure(MedLedgerError):
    """Key material could not be generated or used for signing"""


class WalletNotFound(MedLedgerError, KeyError):
    """No wallet is stored under the requested address"""


class NoIdentity(MedLedgerError):
    """The user has no ledger identity yet"""


class ContractError(MedLedgerError):
    """Invalid operation against a contract"""


class ContractNotFound(ContractError, KeyError):
    """No contract is stored under the requested id"""


class NotAuthorized(ContractError):
    """The caller does not own the contract"""


class NotRevocable(ContractError):
    """The consent contract cannot be revoked"""
