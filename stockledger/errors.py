"""Exception types raised by the ledger, storage and external adapters."""


class StockLedgerError(Exception):
    """Base class for all stockledger errors."""


class PersistenceError(StockLedgerError):
    """The durable store could not be written."""


class LedgerFormatError(StockLedgerError):
    """A persisted ledger blob has an unknown version or is malformed."""


class LedgerReplayError(StockLedgerError):
    """A ledger cannot be replayed (e.g. sells more shares than were bought)."""


class ExternalLedgerError(StockLedgerError):
    """The external trade log rejected a request or could not be reached.

    Attributes:
        timed_out: True when the request did not complete before the timeout
    """

    def __init__(self, message: str, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out
