from __future__ import annotations
"""Command-line entry point."""
from dataclasses import replace
import logging

import boto3
import click

from .errors import BatchTooLargeError, ListingError
from .orchestrator import DeleteOrchestrator
from .profiles import ConnectionProfile, ProfileNotFoundError, ProfileStorage
from .reporting import load_package_info, render_report
from .services import BatchDeleter, ListingPager, create_client
from .settings import AppSettings, SettingsStorage

EXIT_OK = 0
EXIT_DELETE_FAILURES = 1
EXIT_LISTING_ERROR = 2
EXIT_CONTRACT_VIOLATION = 3

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

LOGGER = logging.getLogger(__name__)


def _settings_storage(ctx: click.Context) -> SettingsStorage:
    return ctx.obj.get("settings_storage") or SettingsStorage()


def _profile_storage(ctx: click.Context) -> ProfileStorage:
    return ctx.obj.get("profile_storage") or ProfileStorage()


@click.group(help="Manage AWS S3 buckets and objects from the terminal.")
@click.option("-v", "--verbose", is_flag=True, help="Log progress at DEBUG level.")
@click.version_option(version=load_package_info().version, prog_name="s3magic")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    ctx.ensure_object(dict)
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=LOG_FORMAT)
    if verbose:
        # botocore logs every request body at DEBUG
        logging.getLogger("botocore").setLevel(logging.INFO)


@cli.command()
@click.argument("bucket")
@click.option("--prefix", default="", help="Only delete keys starting with this prefix.")
@click.option("--profile", "profile_name", help="Saved connection profile to use.")
@click.option("--endpoint-url", help="Custom S3-compatible endpoint.")
@click.option("--region", help="Region of the bucket.")
@click.option("--max-concurrency", type=click.IntRange(min=1), help="Concurrent delete requests.")
@click.option("--page-size", type=click.IntRange(1, 1000), help="Keys requested per listing page.")
@click.option(
    "--passes",
    type=click.IntRange(1, 2),
    help="1 deletes each page once; 2 deletes every page again after listing.",
)
@click.pass_context
def delete(
    ctx: click.Context,
    bucket: str,
    prefix: str,
    profile_name: str | None,
    endpoint_url: str | None,
    region: str | None,
    max_concurrency: int | None,
    page_size: int | None,
    passes: int | None,
) -> None:
    """Delete every object in BUCKET."""

    settings = _settings_storage(ctx).load()
    max_concurrency = max_concurrency or settings.max_concurrency
    page_size = page_size or settings.page_size
    second_pass = settings.second_pass if passes is None else passes == 2

    connection: dict[str, str | None] = {"endpoint_url": endpoint_url, "region": region}
    if profile_name:
        try:
            saved = _profile_storage(ctx).get(profile_name)
        except ProfileNotFoundError as exc:
            raise click.BadParameter(str(exc), param_hint="--profile") from exc
        if not saved.secret_key:
            LOGGER.warning("Profile '%s' has no stored secret key", saved.name)
        connection = {
            "endpoint_url": endpoint_url or saved.endpoint_url,
            "region": region or saved.region or None,
            "access_key": saved.access_key,
            "secret_key": saved.secret_key,
        }

    client = create_client(
        max_pool_connections=max_concurrency,
        client_factory=ctx.obj.get("client_factory") or boto3.client,
        **connection,
    )
    orchestrator = DeleteOrchestrator(
        ListingPager(client, page_size=page_size),
        BatchDeleter(client),
        max_concurrency=max_concurrency,
        second_pass=second_pass,
    )

    try:
        summary = orchestrator.run(bucket, prefix=prefix)
    except ListingError as exc:
        LOGGER.debug("Listing failed for bucket '%s'", bucket, exc_info=True)
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(EXIT_LISTING_ERROR)
    except BatchTooLargeError as exc:
        LOGGER.exception("Oversized delete batch for bucket '%s'", bucket)
        click.echo(f"Internal error: {exc}", err=True)
        ctx.exit(EXIT_CONTRACT_VIOLATION)

    for line in render_report(summary):
        click.echo(line)
    ctx.exit(EXIT_OK if summary.ok else EXIT_DELETE_FAILURES)


@cli.group()
def profile() -> None:
    """Manage saved connection profiles."""


@profile.command("save")
@click.argument("name")
@click.option("--endpoint-url", required=True)
@click.option("--access-key", required=True)
@click.option("--secret-key", prompt=True, hide_input=True)
@click.option("--region", default="")
@click.pass_context
def save_profile(
    ctx: click.Context,
    name: str,
    endpoint_url: str,
    access_key: str,
    secret_key: str,
    region: str,
) -> None:
    _profile_storage(ctx).upsert(
        ConnectionProfile(
            name=name,
            endpoint_url=endpoint_url,
            access_key=access_key,
            secret_key=secret_key,
            region=region,
        )
    )
    click.echo(f"Saved profile '{name}'")


@profile.command("list")
@click.pass_context
def list_profiles(ctx: click.Context) -> None:
    for entry in _profile_storage(ctx).load():
        click.echo(f"{entry.name}\t{entry.endpoint_url}\t{entry.region or '-'}")


@profile.command("remove")
@click.argument("name")
@click.pass_context
def remove_profile(ctx: click.Context, name: str) -> None:
    try:
        _profile_storage(ctx).remove(name)
    except ProfileNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Removed profile '{name}'")


@cli.group()
def config() -> None:
    """Show or change default run settings."""


@config.command("show")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    settings = _settings_storage(ctx).load()
    click.echo(f"max_concurrency = {settings.max_concurrency}")
    click.echo(f"page_size = {settings.page_size}")
    click.echo(f"passes = {2 if settings.second_pass else 1}")


@config.command("set")
@click.option("--max-concurrency", type=click.IntRange(min=1))
@click.option("--page-size", type=click.IntRange(1, 1000))
@click.option("--passes", type=click.IntRange(1, 2))
@click.pass_context
def set_config(
    ctx: click.Context,
    max_concurrency: int | None,
    page_size: int | None,
    passes: int | None,
) -> None:
    if max_concurrency is None and page_size is None and passes is None:
        raise click.UsageError("Nothing to change; pass at least one option.")
    storage = _settings_storage(ctx)
    settings: AppSettings = storage.load()
    if max_concurrency is not None:
        settings = replace(settings, max_concurrency=max_concurrency)
    if page_size is not None:
        settings = replace(settings, page_size=page_size)
    if passes is not None:
        settings = replace(settings, second_pass=passes == 2)
    try:
        storage.save(settings)
    except OSError as exc:
        LOGGER.debug("Writing settings to %s failed", storage.path, exc_info=True)
        raise click.ClickException(f"Unable to write settings to {storage.path}: {exc}") from exc
    click.echo(f"Saved settings to {storage.path}")


def main() -> None:
    cli(prog_name="s3magic")
