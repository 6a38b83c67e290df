"""Command-line entry point: run SQL against a database and print the rows."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from sqld_client.client import Client
from sqld_client.config import BACKEND_NAMES, Config, get_log_level, get_timeout
from sqld_client.errors import ClientError
from sqld_client.result import BatchResult, ResultSet
from sqld_client.value import Value

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="sqld-client", description="Run SQL statements against libSQL or sqld."
    )
    parser.add_argument("statements", nargs="+", help="SQL statements to execute, in order")
    parser.add_argument("--url", help="Database URL (default: $LIBSQL_CLIENT_URL)")
    parser.add_argument("--token", help="Auth token (default: $LIBSQL_CLIENT_TOKEN)")
    parser.add_argument("--backend", choices=BACKEND_NAMES, help="Force a backend")
    parser.add_argument(
        "--raw",
        action="store_true",
        help="Run statements independently instead of in one transaction",
    )
    return parser.parse_args(argv)


def format_value(value: Value) -> str:
    """Render a cell for display."""
    if value is None:
        return "NULL"
    if isinstance(value, bytes):
        return f"x'{value.hex()}'"
    return str(value)


def format_result(result: ResultSet) -> str:
    """Render a result set as an aligned text table."""
    if not result.columns:
        return f"({result.affected_row_count} rows affected)"
    header = [name or "?" for name in result.column_names]
    body = [[format_value(v) for v in row.values] for row in result.rows]
    widths = [len(h) for h in header]
    for line in body:
        for i, cell in enumerate(line):
            widths[i] = max(widths[i], len(cell))

    def render(cells: list[str]) -> str:
        return " | ".join(cell.ljust(width) for cell, width in zip(cells, widths)).rstrip()

    lines = [render(header), "-+-".join("-" * w for w in widths)]
    lines.extend(render(line) for line in body)
    return "\n".join(lines)


def _format_raw(result: BatchResult) -> list[str]:
    out = []
    for i, (result_set, error) in enumerate(zip(result.step_results, result.step_errors)):
        if error is not None:
            out.append(f"step {i}: error: {error.message}")
        elif result_set is not None:
            out.append(format_result(result_set))
    return out


async def run(args: argparse.Namespace) -> list[str]:
    """Execute the statements from ``args`` and return printable blocks."""
    if args.url:
        config = Config(
            args.url, auth_token=args.token, backend=args.backend, timeout=get_timeout()
        )
    else:
        env = Config.from_env()
        config = Config(
            env.url,
            auth_token=args.token or env.auth_token,
            backend=args.backend or env.backend,
            timeout=env.timeout,
        )

    async with await Client.from_config(config) as client:
        if args.raw:
            return _format_raw(await client.raw_batch(args.statements))
        return [format_result(r) for r in await client.batch(args.statements)]


def main(argv: Sequence[str] | None = None) -> int:
    """Run the sqld-client CLI."""
    args = parse_args(argv)
    # Logs go to stderr so stdout only carries results
    logging.basicConfig(
        level=getattr(logging, get_log_level().upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    try:
        blocks = asyncio.run(run(args))
    except ClientError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1
    print("\n\n".join(blocks))
    return 0


if __name__ == "__main__":
    sys.exit(main())
