"""Run configuration loaded from a YAML (or JSON) file."""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .errors import ConfigurationError
from .imap import parse_address

DEFAULT_CONFIG_FILE = "mailmover.yaml"
PASSWORD_ENV = "MAILMOVER_{role}_PASSWORD"
ROLES = ("main", "archive")


@dataclass
class AccountConfig:
    """One mailbox account."""
    username: str
    password: str
    host: str
    port: int = 993

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class MoverConfig:
    """Everything one run needs: the account pair and the selection policy."""
    main: AccountConfig
    archive: AccountConfig
    query: str
    max_messages: int
    dry_run: bool = False
    require_subject: bool = True


def _account(role: str, data) -> AccountConfig:
    if not isinstance(data, dict):
        raise ConfigurationError(f"accounts.{role} is missing")
    username = data.get("username")
    if not username:
        raise ConfigurationError(f"accounts.{role}.username is missing")
    env_var = PASSWORD_ENV.format(role=role.upper())
    password = data.get("password") or os.environ.get(env_var)
    if not password:
        raise ConfigurationError(f"accounts.{role}.password is missing (or set {env_var})")
    imapaddr = data.get("imapaddr")
    try:
        host, port = parse_address(str(imapaddr) if imapaddr else None)
    except ValueError as e:
        raise ConfigurationError(f"accounts.{role}.imapaddr is not host:port: {imapaddr!r}") from e
    return AccountConfig(username=str(username), password=str(password), host=host, port=port)


def parse_config(data) -> MoverConfig:
    """Validate an already-parsed config document."""
    if not isinstance(data, dict):
        raise ConfigurationError("Config must be a mapping")
    accounts = data.get("accounts")
    if not isinstance(accounts, dict):
        raise ConfigurationError("accounts is missing")
    main, archive = (_account(role, accounts.get(role)) for role in ROLES)

    query = data.get("query")
    if not query or not isinstance(query, str):
        raise ConfigurationError("query is missing")

    max_messages = data.get("max")
    if isinstance(max_messages, bool) or not isinstance(max_messages, int) or max_messages <= 0:
        raise ConfigurationError(f"max must be a positive integer, got {max_messages!r}")

    return MoverConfig(
        main=main,
        archive=archive,
        query=query,
        max_messages=max_messages,
        dry_run=bool(data.get("dryrun", False)),
        require_subject=bool(data.get("require_subject", True)),
    )


def load_config(path: str | Path = DEFAULT_CONFIG_FILE) -> MoverConfig:
    """Load and validate a config file."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"The configuration file is missing: {path}")
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Config file format error: {e}") from e
    return parse_config(data)
