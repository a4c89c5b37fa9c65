"""
pgsend entry point.

Usage:
    pgsend --server-id <id>              Run the sender forever
    pgsend --test                        Collect once, report size, exit
    pgsend check                         Same as --test
    pgsend --mock --server-id dev        Send synthetic snapshots (no Postgres)

Every option can also come from the environment (or a .env file).
"""

from __future__ import annotations

import logging

import click
from dotenv import load_dotenv

from pgsend import __version__
from pgsend.client.admission import AdmissionClient
from pgsend.client.upload import UploadClient
from pgsend.collector.base import SnapshotCollector
from pgsend.collector.mock_collector import MockCollector
from pgsend.collector.pgmetrics import PgmetricsCollector
from pgsend.config import (
    DEFAULT_API_BASE_URL,
    DEFAULT_OMIT,
    DEFAULT_PG_HOST,
    DEFAULT_PG_PORT,
    DEFAULT_PG_USER,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SQL_LENGTH,
    DEFAULT_STATEMENTS_LIMIT,
    DEFAULT_TIMEOUT_SECONDS,
    CollectionSettings,
    ConfigError,
    ConnectionSettings,
    SenderConfig,
    parse_databases,
)
from pgsend.report import print_banner, print_check
from pgsend.sender.check import run_check
from pgsend.sender.loop import SendLoop


log = logging.getLogger("pgsend")


def build_collector(config: SenderConfig, mock: bool) -> SnapshotCollector:
    if mock:
        return MockCollector(databases=config.collection.databases or ("postgres",))
    return PgmetricsCollector(config.connection, config.collection, binary=config.pgmetrics_bin)


def run_validation(config: SenderConfig, collector: SnapshotCollector) -> int:
    """Test mode: one collection, no network. Returns the exit status."""
    result = run_check(collector, config.effective_identity)
    print_check(config, result)
    return 0 if result.ok else 1


def run_sender(config: SenderConfig, collector: SnapshotCollector):
    identity = config.effective_identity
    admission = AdmissionClient(config.api_base_url, identity, timeout_seconds=config.request_timeout)
    uploader = UploadClient(config.api_base_url, identity, timeout_seconds=config.request_timeout)

    print_banner(config, collector.name())
    loop = SendLoop(identity, admission, uploader, collector)
    try:
        loop.run_forever()
    except KeyboardInterrupt:
        log.info("Sender stopped.")
    finally:
        admission.close()
        uploader.close()


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="pgsend")
@click.option("--server-id", envvar="SERVER_ID", default=None, help="Identity sent to the metrics service")
@click.option("--api-base-url", envvar="API_BASE_URL", default=DEFAULT_API_BASE_URL, show_default=True,
              help="Metrics service base URL")
@click.option("--pg-user", envvar="PG_USER", default=DEFAULT_PG_USER, show_default=True)
@click.option("--pg-password", envvar="PG_PASSWORD", default=None,
              help="Postgres password (passed to pgmetrics via PGPASSWORD)")
@click.option("--pg-host", envvar="PG_HOST", default=DEFAULT_PG_HOST, show_default=True)
@click.option("--pg-port", envvar="PG_PORT", default=DEFAULT_PG_PORT, type=int, show_default=True)
@click.option("--pg-databases", envvar="PG_DATABASES", default="all", show_default=True,
              help='"all" or a comma-separated list of databases')
@click.option("--pg-timeout", envvar="PG_TIMEOUT", default=DEFAULT_TIMEOUT_SECONDS, type=int, show_default=True,
              help="pgmetrics --timeout in seconds")
@click.option("--pg-omit", envvar="PG_OMIT", default=DEFAULT_OMIT, show_default=True,
              help="pgmetrics --omit sections")
@click.option("--pg-sql-length", envvar="PG_SQL_LENGTH", default=DEFAULT_SQL_LENGTH, type=int, show_default=True)
@click.option("--pg-statements-limit", envvar="PG_STATEMENTS_LIMIT", default=DEFAULT_STATEMENTS_LIMIT,
              type=int, show_default=True)
@click.option("--pgmetrics-bin", envvar="PGMETRICS_BIN", default="pgmetrics", show_default=True,
              help="pgmetrics executable")
@click.option("--request-timeout", envvar="REQUEST_TIMEOUT", default=DEFAULT_REQUEST_TIMEOUT,
              type=float, show_default=True, help="HTTP timeout in seconds")
@click.option("--test", "test_mode", envvar="TEST_MODE", is_flag=True, default=False,
              help="Run pgmetrics once without contacting the service, then exit")
@click.option("--mock", is_flag=True, default=False, help="Use synthetic snapshots instead of pgmetrics")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx, server_id, api_base_url, pg_user, pg_password, pg_host, pg_port, pg_databases,
        pg_timeout, pg_omit, pg_sql_length, pg_statements_limit, pgmetrics_bin,
        request_timeout, test_mode, mock, verbose):
    """pgsend - ships pgmetrics snapshots to the metrics service."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if ctx.invoked_subcommand == "check":
        test_mode = True

    config = SenderConfig(
        identity=server_id or None,
        api_base_url=api_base_url,
        connection=ConnectionSettings(
            host=pg_host,
            port=pg_port,
            user=pg_user,
            password=pg_password or None,
        ),
        collection=CollectionSettings(
            databases=parse_databases(pg_databases),
            timeout_seconds=pg_timeout,
            omit=pg_omit,
            sql_length=pg_sql_length,
            statements_limit=pg_statements_limit,
        ),
        pgmetrics_bin=pgmetrics_bin,
        request_timeout=request_timeout,
        test_mode=test_mode,
    )
    try:
        config.validate()
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["mock"] = mock

    if ctx.invoked_subcommand is None:
        collector = build_collector(config, mock)
        if config.test_mode:
            raise SystemExit(run_validation(config, collector))
        run_sender(config, collector)


@cli.command()
@click.pass_context
def check(ctx):
    """Run pgmetrics once without contacting the service, then exit."""
    config = ctx.obj["config"]
    raise SystemExit(run_validation(config, build_collector(config, ctx.obj["mock"])))


def main():
    load_dotenv()
    cli()


if __name__ == "__main__":
    main()
