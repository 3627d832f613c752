class LedgerError(Exception):
    """Base class for every caller-visible rejection raised by the engine.

    ``code`` is the stable machine-readable kind; the message is for humans.
    """

    code = "LedgerError"


class DuplicateEmailError(LedgerError):
    code = "DuplicateEmail"


class InvalidCredentialError(LedgerError):
    code = "InvalidCredential"


class BannedError(LedgerError):
    code = "Banned"


class AmountOutOfRangeError(LedgerError):
    code = "AmountOutOfRange"


class InsufficientFundsError(LedgerError):
    code = "InsufficientFunds"


class AlreadyDecidedError(LedgerError):
    code = "AlreadyDecided"


class NotFoundError(LedgerError):
    code = "NotFound"


class MissingProofError(LedgerError):
    code = "MissingProof"


class UnauthorizedError(LedgerError):
    code = "Unauthorized"


class InvalidRequestError(LedgerError):
    code = "InvalidRequest"
