"""CLI for moving mail to an archive account."""

import sys

import humanize
from click import argument, command, echo, option, style
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape

from . import headers
from .config import DEFAULT_CONFIG_FILE, load_config
from .errors import ConfigurationError, MailMoverError
from .imap import CandidateMessage
from .migrate import EmailMigrator, MigrationStats
from .placeholder import PROGRAM_NAME

STEP_MESSAGES = {
    "downloading": "Downloading message from [{detail}]",
    "uploading": "Uploading to [{detail}]",
    "locating": "Locating uploaded message in [{detail}]",
    "label_created": "Creating label [{detail}]",
    "labeling": "Attaching labels in [{detail}]",
    "removing": "Removing archived message from [{detail}]",
    "placeholder": "Inserting archive placeholder in [{detail}]",
}


def err(*args, **kwargs):
    print(*args, file=sys.stderr, **kwargs)


def describe(candidate: CandidateMessage) -> str:
    size = humanize.naturalsize(candidate.size, binary=True)
    subj = (headers.subject(candidate.header) or "(no subject)")[:60]
    return escape(f"[{size}] {subj}")


def make_progress_handler(console: Console, verbose: bool):
    """Render controller events as console lines."""

    def handler(candidate: CandidateMessage | None, status: str, detail: str | None) -> None:
        if status == "searching":
            console.print(f"Searching for messages that match [bold]{escape(detail)}[/]...")
        elif status == "no_matches":
            console.print("No messages matched the query.")
        elif status == "matched":
            console.print(f"Messages matched query: {detail}")
        elif status == "limited":
            console.print(f"[yellow]Limiting to max messages count of: {detail}[/]")
        elif status == "fetching":
            if verbose:
                console.print(f"[dim]Getting information about {detail}...[/]")
        elif status == "migrated":
            console.print(f"  [green]✓[/] {describe(candidate)} [dim]{escape(detail)}[/]")
        elif status == "would_migrate":
            console.print(f"  [yellow]○[/] {describe(candidate)} [dim]{escape(headers.message_id(candidate.header))}[/]")
        elif status == "unverified":
            console.print(f"  [red]![/] {describe(candidate)} [red]not found in archive after upload; original kept[/]")
        elif status.startswith("skipped"):
            if verbose:
                console.print(f"  [dim]· UID {candidate.uid} skipped because {escape(detail)}[/]")
        elif verbose and status in STEP_MESSAGES:
            console.print(f"    [dim]{escape(STEP_MESSAGES[status].format(detail=detail))}[/]")

    return handler


def print_summary(stats: MigrationStats, dry_run: bool) -> None:
    echo()
    echo(f"Matched: {stats.matched}")
    echo(f"Processed: {stats.processed}")
    echo(f"Skipped (placeholder): {stats.skipped_placeholder}")
    echo(f"Skipped (no Message-ID): {stats.skipped_no_message_id}")
    echo(f"Skipped (no Subject): {stats.skipped_no_subject}")
    if dry_run:
        echo(f"Would migrate: {stats.would_migrate}")
    else:
        echo(f"Migrated: {stats.migrated}")
        echo(f"Labels created in archive: {stats.labels_created}")
        if stats.unverified:
            echo(style(f"Unverified (kept in source): {stats.unverified}", fg="red"))


@command()
@option('-l', '--limit', type=int, help="Max messages to process (overrides config 'max')")
@option('-n', '--dry-run', is_flag=True, help="Classify matching messages without changing anything")
@option('-q', '--query', help="Gmail search query (overrides config 'query')")
@option('-S', '--allow-no-subject', is_flag=True, help="Migrate messages without a Subject header")
@option('-v', '--verbose', is_flag=True, help="Show every step and skipped messages")
@argument('config_file', required=False, default=DEFAULT_CONFIG_FILE)
def main(
    limit: int | None,
    dry_run: bool,
    query: str | None,
    allow_no_subject: bool,
    verbose: bool,
    config_file: str,
):
    """Move Gmail messages matching a query to an archive account.

    Each moved message is replaced in the main account by a placeholder that
    says where the original went.

    \b
    Example:
      mailmover mailmover.yaml -q 'older_than:5y' -n

    \b
    Passwords may come from the environment (or .env file):
      MAILMOVER_MAIN_PASSWORD     Main account app password
      MAILMOVER_ARCHIVE_PASSWORD  Archive account app password
    """
    load_dotenv()
    echo(PROGRAM_NAME)
    echo()

    try:
        config = load_config(config_file)
        if limit is not None:
            if limit <= 0:
                raise ConfigurationError(f"--limit must be positive, got {limit}")
            config.max_messages = limit
        if query:
            config.query = query
        if dry_run:
            config.dry_run = True
        if allow_no_subject:
            config.require_subject = False
    except ConfigurationError as e:
        err(f"Error: {e}")
        err(f"Usage: mailmover [CONFIG_FILE]  (default: {DEFAULT_CONFIG_FILE})")
        sys.exit(1)

    echo(f"Main: {config.main.username} ({config.main.address})")
    echo(f"Archive: {config.archive.username} ({config.archive.address})")
    echo(f"Query: {config.query}")
    echo(f"Max messages: {config.max_messages}")
    if config.dry_run:
        echo(style("DRY RUN - no changes will be made", fg="yellow"))
    echo()

    console = Console()
    handler = make_progress_handler(console, verbose)
    try:
        echo("Connecting to IMAP servers...")
        with EmailMigrator(config) as migrator:
            stats = migrator.run(progress_callback=handler)
    except MailMoverError as e:
        err(f"Error: {type(e).__name__}: {e}")
        sys.exit(1)

    print_summary(stats, config.dry_run)
    echo("Finished.")


if __name__ == "__main__":
    main()
