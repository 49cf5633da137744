"""Exceptions raised by mailmover."""


class MailMoverError(Exception):
    """Base exception for all mailmover errors."""


class ConfigurationError(MailMoverError):
    """Configuration file is missing, unparseable, or incomplete."""


class StoreConnectionError(MailMoverError, ConnectionError):
    """Failed to dial, secure, or authenticate against a mail store."""


class ProtocolError(MailMoverError):
    """A store operation failed or returned an empty/short response."""


class DataIntegrityError(MailMoverError):
    """A message the pipeline depends on could not be re-located."""
