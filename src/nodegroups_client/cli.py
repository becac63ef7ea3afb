"""Command line interface for the nodegroups client.

Usage:
    nodegroups-client [options] nodes NODEGROUP
    nodegroups-client [options] expand EXPRESSION
    nodegroups-client [options] nodegroups NODE [--app APP]

Results are printed one per line. On failure the error is printed to
stderr and the exit status is 1; configuration errors exit with 2.
"""

import argparse
import logging
import sys
from typing import Any

import pydantic
import structlog

from . import __version__
from .client import NodegroupsClient
from .config import ConfigFileError

logger = structlog.get_logger(__name__)


def configure_logging(log_level_name: str) -> None:
    """Configure structlog for logfmt output on stderr."""
    log_level = getattr(logging, log_level_name.upper(), logging.WARNING)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="nodegroups-client",
        description="Query a nodegroups API",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument("--config", help="Path to an INI configuration file")
    parser.add_argument("--uri-ro", help="Read-only API base URI")
    parser.add_argument("--uri-rw", help="Read-write API base URI")
    parser.add_argument("--user-agent", help="User-Agent request header")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    nodes = subparsers.add_parser("nodes", help="List the nodes of a nodegroup")
    nodes.add_argument("nodegroup")

    expand = subparsers.add_parser("expand", help="Expand a nodegroup expression")
    expand.add_argument("expression")

    nodegroups = subparsers.add_parser(
        "nodegroups",
        help="List the nodegroups a node belongs to",
    )
    nodegroups.add_argument("node")
    nodegroups.add_argument("--app", help="Sort nodegroups by this app's order")

    return parser


def client_options(args: argparse.Namespace) -> dict[str, Any]:
    """Translate parsed arguments into client options, skipping unset ones."""
    options: dict[str, Any] = {}
    uri = {}
    if args.uri_ro:
        uri["ro"] = args.uri_ro
    if args.uri_rw:
        uri["rw"] = args.uri_rw
    if uri:
        options["uri"] = uri
    if args.user_agent:
        options["user_agent"] = args.user_agent
    if args.timeout is not None:
        options["timeout"] = args.timeout
    return options


def run(client: NodegroupsClient, args: argparse.Namespace) -> list[str] | None:
    """Dispatch the selected command."""
    if args.command == "nodes":
        return client.get_nodes_from_nodegroup(args.nodegroup)
    if args.command == "expand":
        return client.get_nodes_from_expression(args.expression)
    return client.get_nodegroups_from_node(args.node, args.app)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``nodegroups-client`` command."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        client = NodegroupsClient(args.config, **client_options(args))
    except (ConfigFileError, pydantic.ValidationError) as exc:
        print(f"nodegroups-client: {exc}", file=sys.stderr)
        return 2

    with client:
        results = run(client, args)

    if results is None:
        print(f"nodegroups-client: {client.errstr}", file=sys.stderr)
        return 1

    for result in results:
        print(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
