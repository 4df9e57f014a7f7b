"""Capturoo CLI.

Manage buckets, export captured leads and configure webhooks against the
Capturoo API.

Usage examples:
    capturoo account login
    capturoo bucket create newsletter-signups -n "Newsletter signups"
    capturoo --format json bucket list
    capturoo lead export newsletter-signups --format csv --output leads.csv
    capturoo webhook create crm-sync --url https://example.com/hook --events "lead.created:newsletter-signups"
"""

from __future__ import annotations

import argparse
import getpass
import json
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from tabulate import tabulate

from . import __version__
from .api import ApiClient
from .config import DEFAULT_ENV_FILE, AppConfig, load_config
from .credentials import SessionClaims, TokenStore, decode_claims
from .errors import (
    BadRequest,
    BucketCodeExists,
    CapturooError,
    InvalidArgument,
    ResourceNotFound,
    TokenFileNotFound,
    WebhookCodeExists,
    WebhookResourcesNotFound,
    WebhookURLExists,
)
from .events import VALID_EVENTS, is_valid_code, is_valid_secure_webhook_url, parse_events
from .export import EXPORT_FORMATS, export_leads
from .identity import IdentityClient
from .models import Bucket, Webhook
from .session import Session, bootstrap

OUTPUT_FORMATS = ["plain", "csv", "json", "yaml"]


def format_output(
    rows: List[Dict[str, Any]],
    fields: List[str],
    output_format: str,
    headers: Optional[List[str]] = None,
) -> str:
    projected = [{k: row.get(k, "") for k in fields} for row in rows]

    if output_format == "csv":
        import csv
        from io import StringIO

        buf = StringIO()
        writer = csv.DictWriter(buf, fieldnames=fields, lineterminator="\n")
        writer.writeheader()
        writer.writerows(projected)
        return buf.getvalue()

    if output_format == "json":
        return json.dumps(projected, indent=2)

    if output_format == "yaml":
        import yaml

        return yaml.safe_dump(projected, sort_keys=False)

    # plain table (default)
    table = [[row.get(f, "") for f in fields] for row in projected]
    return tabulate(table, headers=headers or fields, tablefmt="simple")


def format_record(record: Dict[str, Any], labels: List[Tuple[str, str]], output_format: str) -> str:
    if output_format != "plain":
        return format_output([record], [key for key, _ in labels], output_format)
    table = [[f"{label}:", record.get(key, "")] for key, label in labels]
    return tabulate(table, tablefmt="plain")


def display_events(events: List[str]) -> str:
    return "[" + ", ".join(f"'{e}'" for e in events) + "]"


def enabled_disabled(enabled: bool) -> str:
    return "Enabled" if enabled else "Disabled"


def format_epoch(seconds: int) -> str:
    if not seconds:
        return ""
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


def require_valid_code(code: str, what: str) -> None:
    valid, reason = is_valid_code(code)
    if not valid:
        raise InvalidArgument(f"{what} {code!r} is invalid : {reason}")


def read_email_and_password() -> Tuple[str, str]:
    email = input("Email: ").strip()
    password = getpass.getpass("Password: ")
    return email, password


def read_developer_key() -> str:
    return getpass.getpass("Developer key: ").strip()


def claims_record(claims: SessionClaims) -> Dict[str, Any]:
    return {
        "name": claims.name,
        "email": claims.email,
        "account_id": claims.account_id,
        "role": claims.role,
        "user_id": claims.user_id,
        "expires_at": format_epoch(claims.expires_at),
    }


CLAIM_LABELS = [
    ("name", "Name"),
    ("email", "Email"),
    ("account_id", "Account ID"),
    ("role", "Role"),
]


def find_bucket(session: Session, resource_name: str) -> Bucket:
    for bucket in session.client.list_buckets(session.claims.account_id):
        if bucket.resource_name == resource_name:
            return bucket
    raise ResourceNotFound(f"Bucket {resource_name!r} not found.")


def find_webhook(session: Session, code: str) -> Webhook:
    for webhook in session.client.list_webhooks(session.claims.account_id):
        if webhook.code == code:
            return webhook
    raise ResourceNotFound(f"Webhook {code!r} not found.")


# Handlers for subcommands


def handle_version(args: argparse.Namespace, config: AppConfig) -> None:
    print(f"Capturoo CLI tool {__version__}")


def handle_account_login(args: argparse.Namespace, config: AppConfig) -> None:
    store = TokenStore(config.config_dir)
    client = ApiClient(config.endpoint, timeout=config.request_timeout, debug=config.debug)
    identity = IdentityClient(timeout=config.request_timeout, debug=config.debug)
    firebase = client.auto_conf()

    if args.email:
        email, password = read_email_and_password()
        tokens = identity.sign_in_with_password(firebase.api_key, email, password).token_pair()
    else:
        developer_key = read_developer_key()
        if not developer_key:
            raise InvalidArgument("developer key must not be empty")
        custom_token, _account = client.sign_in_with_dev_key(developer_key)
        tokens = identity.exchange_custom_token(firebase.api_key, custom_token)

    claims = decode_claims(tokens.id_token)
    path = store.save(config.token_filename, tokens)
    config.trace(f"Tokens saved to {path}")

    print("Command line tool setup for the following user:")
    print(format_record(claims_record(claims), CLAIM_LABELS, "plain"))


def handle_account_logout(args: argparse.Namespace, config: AppConfig) -> None:
    store = TokenStore(config.config_dir)
    if store.delete(config.token_filename):
        print(f"Logged out of {config.endpoint}")
    else:
        print(f"Not logged in to {config.endpoint}")


def handle_account_info(args: argparse.Namespace, session: Session) -> None:
    labels = CLAIM_LABELS + [("user_id", "User ID"), ("expires_at", "Token expires")]
    print(format_record(claims_record(session.claims), labels, args.format))


def handle_token_show(args: argparse.Namespace, session: Session) -> None:
    print(format_record(claims_record(session.claims), CLAIM_LABELS, "plain"))
    print(f"export JWT='{session.tokens.id_token}'")


BUCKET_LABELS = [
    ("bucket_id", "Bucket ID"),
    ("resource_name", "Resource name"),
    ("account_id", "Account ID"),
    ("bucket_name", "Bucket name"),
    ("public_api_key", "Public API Key"),
    ("created", "Created"),
    ("modified", "Modified"),
]


def handle_bucket_create(args: argparse.Namespace, session: Session) -> None:
    require_valid_code(args.resource, "bucket resource name")
    try:
        bucket = session.client.create_bucket(session.claims.account_id, args.resource, args.name or "")
    except BucketCodeExists as exc:
        raise BucketCodeExists(f"A bucket with resource name {args.resource!r} already exists.") from exc
    labels = [("resource_name", "Resource name"), ("bucket_name", "Bucket name"), ("public_api_key", "Public API Key")]
    print(format_record(bucket.to_row(), labels, args.format))


def handle_bucket_get(args: argparse.Namespace, session: Session) -> None:
    bucket = session.client.get_bucket(find_bucket(session, args.resource).bucket_id)
    print(format_record(bucket.to_row(), BUCKET_LABELS, args.format))


def handle_bucket_list(args: argparse.Namespace, session: Session) -> None:
    buckets = session.client.list_buckets(session.claims.account_id)

    sort_keys = {
        "created": lambda b: b.created,
        "resource": lambda b: b.resource_name,
        "name": lambda b: b.bucket_name,
    }
    buckets.sort(key=sort_keys[args.sortby], reverse=args.reverse)

    fields = ["resource_name", "bucket_name", "public_api_key"]
    headers = ["Resource name", "Bucket name", "Public API Key"]
    if args.accounts:
        fields.insert(0, "account_id")
        headers.insert(0, "Account ID")
    if args.ids:
        fields.insert(0, "bucket_id")
        headers.insert(0, "Bucket ID")
    if args.time:
        fields += ["created", "modified"]
        headers += ["Created", "Modified"]

    rows = [b.to_row() for b in buckets]
    print(format_output(rows, fields, args.format, headers=headers))
    if args.format == "plain":
        plural = "" if len(buckets) == 1 else "s"
        print(f"\n{len(buckets)} bucket{plural} in your account")


def handle_bucket_update(args: argparse.Namespace, session: Session) -> None:
    if not args.name:
        raise InvalidArgument("use -n BUCKET_NAME to pass the bucket name")
    bucket = session.client.update_bucket(find_bucket(session, args.resource).bucket_id, args.name)
    print(format_record(bucket.to_row(), BUCKET_LABELS, args.format))


def handle_bucket_delete(args: argparse.Namespace, session: Session) -> None:
    bucket = find_bucket(session, args.resource)
    session.client.delete_bucket(bucket.bucket_id)
    print(f"Deleted bucket {args.resource}")


def handle_lead_export(args: argparse.Namespace, session: Session) -> None:
    if args.export_format not in EXPORT_FORMATS:
        raise InvalidArgument(f"format must be one of {', '.join(EXPORT_FORMATS)}")
    bucket = find_bucket(session, args.resource)

    if not args.output:
        count = export_leads(session.client, args.export_format, bucket.bucket_id, sys.stdout)
    else:
        output = Path(args.output)
        with output.open("w", newline="", encoding="utf-8") as fh:
            count = export_leads(session.client, args.export_format, bucket.bucket_id, fh)
        print(f"Exported {count} leads to {output}", file=sys.stderr)
    session.config.trace(f"Exported {count} leads from bucket {bucket.bucket_id}")


def webhook_row(webhook: Webhook) -> Dict[str, Any]:
    row = webhook.to_row()
    row["events"] = display_events(webhook.events)
    row["status"] = enabled_disabled(webhook.enabled)
    return row


def print_webhook(webhook: Webhook, ids: bool, output_format: str) -> None:
    labels = [
        ("code", "Webhook code"),
        ("url", "URL"),
        ("events", "Events"),
        ("status", "Enabled"),
        ("created", "Created"),
        ("modified", "Modified"),
    ]
    if ids:
        labels.insert(0, ("webhook_id", "Webhook ID"))
    print(format_record(webhook_row(webhook), labels, output_format))


def handle_webhook_create(args: argparse.Namespace, session: Session) -> None:
    require_valid_code(args.code, "webhook code")
    events = parse_events(args.events)
    if not is_valid_secure_webhook_url(args.url):
        raise InvalidArgument("ENDPOINT must use an https secure url")

    try:
        webhook = session.client.create_webhook(
            session.claims.account_id,
            args.code,
            args.url,
            [str(e) for e in events],
            not args.disabled,
        )
    except WebhookResourcesNotFound as exc:
        raise WebhookResourcesNotFound(f"Resources not found: {exc}") from exc
    except WebhookURLExists as exc:
        raise WebhookURLExists(
            f"Webhook URL {args.url} already exists. Use capturoo webhook update to modify existing webhooks."
        ) from exc
    except WebhookCodeExists as exc:
        raise WebhookCodeExists(
            f"Webhook code {args.code} already exists. Use capturoo webhook update to modify existing webhooks."
        ) from exc
    except BadRequest as exc:
        raise BadRequest(f"Bad request: {exc}") from exc
    print_webhook(webhook, args.ids, args.format)


def handle_webhook_list(args: argparse.Namespace, session: Session) -> None:
    webhooks = session.client.list_webhooks(session.claims.account_id)
    sort_keys = {
        "created": lambda w: w.created,
        "code": lambda w: w.code,
    }
    webhooks.sort(key=sort_keys[args.sortby], reverse=args.reverse)

    fields = ["code", "events", "url", "status"]
    headers = ["Webhook code", "Events", "URL", "Status"]
    if args.ids:
        fields.insert(0, "webhook_id")
        headers.insert(0, "Webhook ID")
    if args.time:
        fields += ["created", "modified"]
        headers += ["Created", "Modified"]

    rows = [webhook_row(w) for w in webhooks]
    print(format_output(rows, fields, args.format, headers=headers))


def handle_webhook_update(args: argparse.Namespace, session: Session) -> None:
    if not args.events and not args.url and not args.enable and not args.disable:
        raise InvalidArgument("must set at least one of --events, --url or --enable or --disable flags")

    events = [str(e) for e in parse_events(args.events)] if args.events else None
    if args.url and not is_valid_secure_webhook_url(args.url):
        raise InvalidArgument("ENDPOINT must use an https secure url")
    enabled: Optional[bool] = None
    if args.enable:
        enabled = True
    elif args.disable:
        enabled = False

    webhook = find_webhook(session, args.code)
    try:
        updated = session.client.update_webhook(
            webhook.webhook_id,
            events=events,
            url=args.url or None,
            enabled=enabled,
        )
    except WebhookURLExists as exc:
        raise WebhookURLExists(f"Webhook URL {args.url} already exists.") from exc
    print_webhook(updated, args.ids, args.format)


def handle_webhook_delete(args: argparse.Namespace, session: Session) -> None:
    webhook = find_webhook(session, args.code)
    session.client.delete_webhook(webhook.webhook_id)
    print(f"Deleted webhook {args.code}")


SESSIONLESS_HANDLERS = (handle_version, handle_account_login, handle_account_logout)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="capturoo", description="capturoo is a CLI tool for managing leads")
    parser.add_argument(
        "--env-file",
        default=str(DEFAULT_ENV_FILE),
        help="Path to .env file (default: .env)",
    )
    parser.add_argument(
        "--endpoint",
        help="Override the API endpoint (default: $CAPTUROO_CLI_ENDPOINT or https://api.capturoo.com)",
    )
    parser.add_argument(
        "--format",
        default="plain",
        choices=OUTPUT_FORMATS,
        help="Output format for get/list/create/update commands",
    )
    parser.add_argument("--debug", action="store_true", help="Print verbose debug output for HTTP calls to stderr")

    subparsers = parser.add_subparsers(dest="command", required=True)

    version = subparsers.add_parser("version", help="Output CLI tool version string")
    version.set_defaults(func=handle_version)

    # Account
    account = subparsers.add_parser("account", aliases=["accounts"], help="Manage your account")
    account_sub = account.add_subparsers(dest="action", required=True)

    account_login = account_sub.add_parser("login", help="Account login")
    account_login.add_argument(
        "-e",
        "--email",
        action="store_true",
        help="Use email address and password to login (default: developer key)",
    )
    account_login.set_defaults(func=handle_account_login)

    account_logout = account_sub.add_parser("logout", help="Account logout")
    account_logout.set_defaults(func=handle_account_logout)

    account_info = account_sub.add_parser("info", help="Show account information")
    account_info.set_defaults(func=handle_account_info)

    # Token
    token = subparsers.add_parser("token", aliases=["tokens"], help="Token management for calling the API directly")
    token_sub = token.add_subparsers(dest="action", required=True)

    token_show = token_sub.add_parser("show", help="Show usable JWT for API calls")
    token_show.set_defaults(func=handle_token_show)

    # Buckets
    bucket = subparsers.add_parser("bucket", aliases=["buckets"], help="Manage buckets")
    bucket_sub = bucket.add_subparsers(dest="action", required=True)

    bucket_create = bucket_sub.add_parser("create", help="Create a new bucket")
    bucket_create.add_argument("resource", metavar="RESOURCE", help="Bucket resource name")
    bucket_create.add_argument("-n", "--name", help="Human readable bucket name to label your bucket")
    bucket_create.set_defaults(func=handle_bucket_create)

    bucket_get = bucket_sub.add_parser("get", help="Get bucket details")
    bucket_get.add_argument("resource", metavar="RESOURCE", help="Bucket resource name")
    bucket_get.set_defaults(func=handle_bucket_get)

    bucket_list = bucket_sub.add_parser("list", help="List buckets")
    bucket_list.add_argument("-a", "--accounts", action="store_true", help="Show account IDs alongside buckets")
    bucket_list.add_argument("-x", "--id", dest="ids", action="store_true", help="Show internal ids in output")
    bucket_list.add_argument("-r", "--reverse", action="store_true", help="Reverse the result of the sort")
    bucket_list.add_argument(
        "-s",
        "--sortby",
        default="created",
        choices=["resource", "name", "created"],
        help="Sort results by field (default: created)",
    )
    bucket_list.add_argument(
        "-t",
        "--time",
        action="store_true",
        help="Include the created and modified timestamps in the output",
    )
    bucket_list.set_defaults(func=handle_bucket_list)

    bucket_update = bucket_sub.add_parser("update", help="Update a bucket")
    bucket_update.add_argument("resource", metavar="RESOURCE", help="Bucket resource name")
    bucket_update.add_argument("-n", "--name", required=True, help="Human readable bucket name")
    bucket_update.set_defaults(func=handle_bucket_update)

    bucket_delete = bucket_sub.add_parser("delete", help="Delete a bucket")
    bucket_delete.add_argument("resource", metavar="RESOURCE", help="Bucket resource name")
    bucket_delete.set_defaults(func=handle_bucket_delete)

    # Leads
    lead = subparsers.add_parser("lead", aliases=["leads"], help="Manage leads")
    lead_sub = lead.add_subparsers(dest="action", required=True)

    lead_export = lead_sub.add_parser("export", help="Export leads from a bucket")
    lead_export.add_argument("resource", metavar="RESOURCE", help="Bucket resource name")
    lead_export.add_argument(
        "-f",
        "--format",
        dest="export_format",
        default="json",
        choices=list(EXPORT_FORMATS),
        help="Export format (default: json)",
    )
    lead_export.add_argument("-o", "--output", help="Write to a new file instead of standard output")
    lead_export.set_defaults(func=handle_lead_export)

    # Webhooks
    webhook = subparsers.add_parser("webhook", aliases=["webhooks"], help="Manage webhooks")
    webhook_sub = webhook.add_subparsers(dest="action", required=True)

    events_help = (
        "Target events EVT1[:resource1|resourceN...],EVT2,... "
        f"(events: {', '.join(VALID_EVENTS)}; lead.created requires resources)"
    )

    webhook_create = webhook_sub.add_parser("create", help="Create a new webhook")
    webhook_create.add_argument("code", metavar="WEBHOOK_CODE", help="Unique webhook code")
    webhook_create.add_argument("-e", "--events", required=True, help=events_help)
    webhook_create.add_argument("-u", "--url", required=True, help="ENDPOINT secure url of the webhook handler")
    webhook_create.add_argument("--disabled", action="store_true", help="Create the webhook disabled")
    webhook_create.add_argument("--id", dest="ids", action="store_true", help="Show internal ids in output")
    webhook_create.set_defaults(func=handle_webhook_create)

    webhook_list = webhook_sub.add_parser("list", help="List webhooks")
    webhook_list.add_argument("--id", dest="ids", action="store_true", help="Show internal ids in output")
    webhook_list.add_argument(
        "-s",
        "--sortby",
        default="created",
        choices=["code", "created"],
        help="Sort results by field (default: created)",
    )
    webhook_list.add_argument("-r", "--reverse", action="store_true", help="Reverse the result of the sort")
    webhook_list.add_argument("-t", "--time", action="store_true", help="Show created and modified times")
    webhook_list.set_defaults(func=handle_webhook_list)

    webhook_update = webhook_sub.add_parser("update", help="Update a webhook")
    webhook_update.add_argument("code", metavar="WEBHOOK_CODE", help="Webhook code")
    webhook_update.add_argument("-e", "--events", help=events_help)
    webhook_update.add_argument("-u", "--url", help="ENDPOINT secure url of the webhook handler")
    toggle = webhook_update.add_mutually_exclusive_group()
    toggle.add_argument("--enable", action="store_true", help="Enable the webhook if disabled")
    toggle.add_argument("--disable", action="store_true", help="Disable the webhook if enabled")
    webhook_update.add_argument("--id", dest="ids", action="store_true", help="Show internal ids in output")
    webhook_update.set_defaults(func=handle_webhook_update)

    webhook_delete = webhook_sub.add_parser("delete", help="Delete a webhook")
    webhook_delete.add_argument("code", metavar="WEBHOOK_CODE", help="Webhook code")
    webhook_delete.set_defaults(func=handle_webhook_delete)

    return parser


def run(args: argparse.Namespace) -> None:
    config = load_config(Path(args.env_file), endpoint=args.endpoint, debug=args.debug)
    if args.func in SESSIONLESS_HANDLERS:
        args.func(args, config)
        return
    session = bootstrap(config)
    args.func(args, session)


def main(argv: Optional[List[str]] = None) -> None:
    # Prevent BrokenPipeError when piping output
    if hasattr(signal, "SIGPIPE"):
        signal.signal(signal.SIGPIPE, signal.SIG_DFL)

    args = build_parser().parse_args(argv)
    try:
        run(args)
    except TokenFileNotFound:
        print("No account configured. Run capturoo account login to begin.", file=sys.stderr)
        raise SystemExit(1)
    except CapturooError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1)
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
