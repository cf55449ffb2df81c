"""Summary: Command-line interface for TriageFlow.

Importance: Provides a local entry point for account setup and sort runs.
Alternatives: Build a web UI or desktop client first.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import uvicorn

from triageflow.app import build_context
from triageflow.config import AppConfig
from triageflow.gmail import MailClient, MockMailClient
from triageflow.models import CATEGORIES, PLANS, JobRecord, RunSummary
from triageflow.oauth import build_google_auth_url, create_state_token


@dataclass(frozen=True)
class FixtureClientSource:
    """Summary: Serves one in-memory mailbox to every account.

    Importance: Lets the fixture command run the real pipeline without OAuth.
    Alternatives: Store fake tokens and stub the Gmail API.
    """

    client: MailClient

    def get_client(self, account_id: int) -> MailClient:
        return self.client


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="TriageFlow CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    add_account = subparsers.add_parser("add-account", help="Register a mail account")
    add_account.add_argument("--email", required=True)
    add_account.add_argument("--name", required=True)
    add_account.add_argument("--plan", choices=PLANS, default="free")
    add_account.add_argument("--onboarded", action="store_true")

    store_tokens = subparsers.add_parser("store-tokens", help="Store OAuth tokens for an account")
    store_tokens.add_argument("--account-id", type=int, required=True)
    store_tokens.add_argument("--access-token", required=True)
    store_tokens.add_argument("--refresh-token")
    store_tokens.add_argument("--expires-at")

    oauth_google = subparsers.add_parser("oauth-google", help="Print Google OAuth URL")
    oauth_google.add_argument("--redirect-uri", required=True)

    for name, help_text in (
        ("sort-all", "Sort the whole inbox for an account"),
        ("progress", "Show sort progress for an account"),
        ("relabel", "Apply missing labels for an account"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("--account-id", type=int, required=True)

    reset = subparsers.add_parser("reset", help="Reset the sort job for an account")
    reset.add_argument("--account-id", type=int, required=True)
    reset.add_argument("--purge", action="store_true")

    subparsers.add_parser("process", help="Run the scheduled incremental sort")

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--reload", action="store_true")

    feedback = subparsers.add_parser("feedback", help="Correct a message category")
    feedback.add_argument("--account-id", type=int, required=True)
    feedback.add_argument("--message-id", required=True)
    feedback.add_argument("--category", choices=CATEGORIES, required=True)
    feedback.add_argument("--comment")

    sort_fixture = subparsers.add_parser("sort-fixture", help="Sort a JSON fixture mailbox")
    sort_fixture.add_argument("--account-id", type=int, required=True)
    sort_fixture.add_argument(
        "--fixture", type=str, default=str(Path("data") / "mock_messages.json")
    )
    return parser


def run_cli(argv: list[str] | None = None) -> None:
    """Summary: Execute CLI commands based on arguments.

    Importance: Drives setup and sort runs without the HTTP API.
    Alternatives: Invoke services via an HTTP API.
    """

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    config = AppConfig.from_env()

    if args.command == "oauth-google":
        print(build_google_auth_url(config, args.redirect_uri, create_state_token()))
        return

    if args.command == "serve":
        uvicorn.run("triageflow.api:app", host=config.api_host, port=config.api_port, reload=args.reload)
        return

    if args.command == "sort-fixture":
        client = MockMailClient.from_fixture(Path(args.fixture))
        context = build_context(config, client_source=FixtureClientSource(client))
        summary = asyncio.run(context.sorting.sort_all(args.account_id))
        _print_summary(summary)
        return

    context = build_context(config)

    if args.command == "add-account":
        account_id = context.accounts.register(args.email, args.name, args.plan, args.onboarded)
        print(f"Registered account {account_id} ({args.email}, plan {args.plan}).")
        return

    if args.command == "store-tokens":
        context.accounts.store_tokens(
            args.account_id, args.access_token, args.refresh_token, args.expires_at
        )
        print(f"Stored tokens for account {args.account_id}.")
        return

    if args.command == "sort-all":
        summary = asyncio.run(context.sorting.sort_all(args.account_id))
        _print_summary(summary)
        return

    if args.command == "progress":
        _print_job(context.sorting.get_progress(args.account_id))
        return

    if args.command == "reset":
        job = context.sorting.reset(args.account_id, purge=args.purge)
        print(f"Reset account {args.account_id} to {job.status}{' (purged)' if args.purge else ''}.")
        return

    if args.command == "process":
        results = asyncio.run(context.sorting.process_all())
        for result in results:
            print(
                f"account {result['account_id']}: {result['status']}"
                f" processed={result.get('processed', 0)} labelled={result.get('labelled', 0)}"
            )
        print(f"Processed {len(results)} accounts.")
        return

    if args.command == "relabel":
        _print_summary(asyncio.run(context.sorting.relabel(args.account_id)))
        return

    if args.command == "feedback":
        outcome = context.sorting.apply_feedback(
            args.account_id, args.message_id, args.category, args.comment
        )
        if outcome["changed"]:
            print(f"Recategorized {args.message_id}: {outcome['original_category']} -> {args.category}.")
        else:
            print(f"{args.message_id} is already {args.category}.")
        return


def _print_summary(summary: RunSummary) -> None:
    print(
        f"{summary.status}: {summary.new_messages} new of {summary.candidates} candidates, "
        f"processed={summary.processed} labelled={summary.labelled} "
        f"errors={summary.errors} skipped={summary.skipped}"
    )


def _print_job(job: JobRecord) -> None:
    for key, value in job.to_dict().items():
        print(f"{key}: {value}")


if __name__ == "__main__":
    run_cli()
