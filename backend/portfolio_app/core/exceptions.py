"""Exception hierarchy for the portfolio accounting engine."""


class PortfolioError(Exception):
    """Base exception for all portfolio errors."""


class ValidationError(PortfolioError):
    """Raised when numeric or date input is malformed."""


class NotFoundError(PortfolioError):
    """Raised when a referenced transaction, holding or portfolio is absent."""


class NoActivePortfolioError(PortfolioError):
    """Raised when an operation needs a portfolio context and none is active."""


class ReadOnlyModeError(PortfolioError):
    """Raised when mutating against the read-only demo store."""


class UpstreamStoreError(PortfolioError):
    """Raised when the persistence layer fails."""


class ConfigurationError(PortfolioError):
    """Raised when settings are invalid or missing."""


class IrreversibleTransactionError(PortfolioError):
    """Raised when a holding cannot be recovered by reversing a transaction.

    The accounting service answers this by replaying the ledger.
    """
