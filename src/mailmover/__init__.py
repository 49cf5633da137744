"""Move Gmail messages to an archive account, leaving placeholders behind."""

from .classify import Classification, classify
from .config import AccountConfig, MoverConfig, load_config
from .errors import (
    ConfigurationError,
    DataIntegrityError,
    MailMoverError,
    ProtocolError,
    StoreConnectionError,
)
from .imap import CandidateMessage, GmailClient, IMAPClient
from .labels import LabelCache
from .migrate import EmailMigrator, MigrationStats, RunState
from .placeholder import compose

__all__ = [
    "AccountConfig",
    "CandidateMessage",
    "Classification",
    "ConfigurationError",
    "DataIntegrityError",
    "EmailMigrator",
    "GmailClient",
    "IMAPClient",
    "LabelCache",
    "MailMoverError",
    "MigrationStats",
    "MoverConfig",
    "ProtocolError",
    "RunState",
    "StoreConnectionError",
    "classify",
    "compose",
    "load_config",
]
