class LedgerError(Exception):
    """Base class for all unified_ledger errors."""
    pass


class ConfigurationError(LedgerError):
    """Raised when required configuration is missing or invalid."""
    pass


class MissingCredentialsError(ConfigurationError):
    """Raised when provider credentials are missing or expired."""
    pass


class ProviderError(LedgerError):
    """Raised when an upstream provider request fails."""
    pass


class ExportNotReadyError(ProviderError):
    """Raised when a trading export job never reached FINISHED."""
    pass


class RuleNotFoundError(LedgerError):
    """Raised when a category rule cannot be found."""
    pass


class InvalidRuleError(LedgerError):
    """Raised when a rule or override payload is incomplete."""
    pass


class ReadOnlyRepositoryError(LedgerError):
    """Raised when mutating the read-only demo category data."""
    pass
