"""
kcl command line.

    echo -e 'k1\\tv1\\tk2\\tv2' | kcl produce -K '\\t' my-topic
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click

from . import __version__
from .produce.client import KafkaDeliveryClient
from .produce.pipeline import run_produce
from .utils.config import COMPRESSION_CHOICES, KclConfig, load_config
from .utils.errors import KclError
from .utils.logging import get_logger, setup_logging

logger = get_logger("kcl.cli")


PRODUCE_HELP = """Produce records to TOPIC, taking input from stdin or a file.

By default, producing consumes newline delimited, unkeyed records from stdin.
The flags allow for switching the delimiter, or using the delimiter for
keys and values, or consuming from a file.

If the keyed-record delimiter option is used, the record-only option is
ignored.

Each key or value must be under 64KiB in length. This can be changed with
the --max-read-buf flag.

The input delimiter understands \\n, \\r, \\t, and \\xXX (hex) escape sequences.
"""


def _set(target: Dict[str, Any], section: str, key: str, value: Any) -> None:
    if value is not None:
        target.setdefault(section, {})[key] = value


def _configure_logging(config: KclConfig) -> None:
    setup_logging(
        log_level=config.logging.level,
        log_format=config.logging.format,
        log_dir=config.logging.directory,
        enable_sentry=config.logging.enable_sentry,
        sentry_dsn=config.logging.sentry_dsn,
    )


@click.group()
@click.version_option(__version__, prog_name="kcl")
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="KCL_CONFIG",
    help="configuration file (yaml, json or toml)"
)
@click.option("-b", "--brokers", help="comma separated seed brokers")
@click.option("--client-id", help="client id sent to the brokers")
@click.option(
    "-l", "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="diagnostic log level (logs go to stderr)"
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[Path],
    brokers: Optional[str],
    client_id: Optional[str],
    log_level: Optional[str]
):
    """Kafka command line: produce records to Kafka from the command line."""
    ctx.ensure_object(dict)
    overrides = ctx.obj.setdefault("overrides", {})
    _set(overrides, "producer", "brokers", brokers)
    _set(overrides, "producer", "client_id", client_id)
    _set(overrides, "logging", "level", log_level)
    ctx.obj["config_path"] = config_path


@cli.command(help=PRODUCE_HELP)
@click.argument("topic")
@click.option("-D", "--delim", help="record only delimiter  [default: \\n]")
@click.option("-K", "--keyed-record-delim", help="key and record delimiter")
@click.option(
    "-v", "--verbose", is_flag=True,
    help="verbose information of the producing of records"
)
@click.option(
    "--max-read-buf", type=click.IntRange(min=1),
    help="maximum input to buffer before a delimiter is required  [default: 65536]"
)
@click.option(
    "-z", "--compression", type=click.Choice(COMPRESSION_CHOICES),
    help="compression to use for producing batches  [default: snappy]"
)
@click.option(
    "-f", "--file", "input_path", default="-", show_default=True,
    help="file to read records from, - for stdin"
)
@click.pass_context
def produce(
    ctx: click.Context,
    topic: str,
    delim: Optional[str],
    keyed_record_delim: Optional[str],
    verbose: bool,
    max_read_buf: Optional[int],
    compression: Optional[str],
    input_path: str
):
    overrides = ctx.obj.setdefault("overrides", {})
    _set(overrides, "produce", "delim", delim)
    _set(overrides, "produce", "keyed_delim", keyed_record_delim)
    _set(overrides, "produce", "verbose", verbose or None)
    _set(overrides, "produce", "max_read_buf", max_read_buf)
    _set(overrides, "producer", "compression", compression)

    try:
        config = load_config(ctx.obj.get("config_path"), overrides)
        _configure_logging(config)

        client_factory = ctx.obj.get("client_factory", KafkaDeliveryClient)
        client = client_factory(config.producer)

        summary = asyncio.run(run_produce(
            topic,
            config,
            input_path=input_path,
            client=client,
            out=ctx.obj.get("out")
        ))
    except KclError as e:
        click.echo(e.message, err=True)
        ctx.exit(1)
    except KeyboardInterrupt:
        click.echo("interrupted", err=True)
        ctx.exit(130)

    logger.info("produce_finished", topic=topic, **summary.to_dict())


def main() -> None:
    """Console script entry point."""
    cli(prog_name="kcl")


if __name__ == "__main__":
    sys.exit(main())
