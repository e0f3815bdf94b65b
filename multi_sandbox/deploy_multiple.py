#!/usr/bin/env python3
"""Deploy multiple sandbox nodes of the same database version on this host.

For defaults it uses the same env variables as the rest of the package (see
`multi_sandbox.utils.configuration`).
"""

import argparse
import logging
import pathlib as pl
import signal
import sys
import types as tt

from multi_sandbox.provisioning import exceptions
from multi_sandbox.provisioning import orchestrator
from multi_sandbox.provisioning import scheduler
from multi_sandbox.utils import configuration
from multi_sandbox.utils import helpers

LOGGER = logging.getLogger(__name__)


def get_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Get command line arguments."""
    parser = argparse.ArgumentParser(description=__doc__.split("\n", maxsplit=1)[0])
    parser.add_argument(
        "version",
        help="Version of the database server, e.g. 8.0.11",
    )
    parser.add_argument(
        "-b",
        "--basedir",
        type=helpers.check_dir_arg,
        help="Directory with the database server binaries "
        "(default: '$SANDBOX_BINARY/<version>')",
    )
    parser.add_argument(
        "-n",
        "--nodes",
        type=int,
        default=3,
        help="Number of nodes (default: 3)",
    )
    parser.add_argument(
        "--sandbox-home",
        default=str(configuration.SANDBOX_HOME),
        help=f"Parent directory of the deployment (default: {configuration.SANDBOX_HOME})",
    )
    parser.add_argument(
        "--base-port",
        type=helpers.check_port_arg,
        help="Port preceding the ports of the nodes (default: derived from version)",
    )
    parser.add_argument(
        "--dir-name",
        default="",
        help="Name of the deployment directory (default: derived from version)",
    )
    parser.add_argument(
        "-c",
        "--concurrent",
        action="store_true",
        help="Run the installation steps of the nodes in parallel (default: false)",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=0,
        help="Maximal number of parallel workers (default: number of nodes)",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Replace an existing deployment in the deployment directory (default: false)",
    )
    parser.add_argument(
        "--disable-mysqlx",
        action="store_true",
        help="Disable the X protocol plugin on versions that support it (default: false)",
    )
    parser.add_argument(
        "--no-load-grants",
        action="store_true",
        help="Don't load grants after the nodes are started (default: false)",
    )
    return parser.parse_args(argv)


def _sigterm_handler(signum: int, frame: tt.FrameType | None) -> None:  # noqa: ARG001
    # Raising `SystemExit` makes the orchestrator roll back the partial deployment
    sys.exit(128 + signum)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(format="%(levelname)s:%(message)s", level=logging.INFO)
    args = get_args(argv)

    basedir = args.basedir or configuration.SANDBOX_BINARY / args.version
    mode = (
        scheduler.ConcurrencyMode.CONCURRENT
        if args.concurrent
        else scheduler.ConcurrencyMode.SEQUENTIAL
    )

    request = orchestrator.SandboxBatchRequest(
        version=args.version,
        basedir=pl.Path(basedir),
        nodes=args.nodes,
        sandbox_home=pl.Path(args.sandbox_home).expanduser().resolve(),
        base_port=args.base_port,
        mode=mode,
        dir_name=args.dir_name,
        force=args.force,
        disable_auxiliary=args.disable_mysqlx,
        max_workers=args.max_workers,
        load_grants=not args.no_load_grants,
    )

    signal.signal(signal.SIGTERM, _sigterm_handler)

    try:
        result = orchestrator.Orchestrator(log_func=LOGGER.info).create_multiple_sandbox(request)
    except (exceptions.SandboxError, RuntimeError) as exc:
        LOGGER.error(str(exc))  # noqa: TRY400
        return 1

    LOGGER.info(
        f"{result.sb_type} directory installed in "
        f"{helpers.replace_literal_home(result.sandbox_dir)}"
    )
    LOGGER.info(f"Ports: {', '.join(str(p) for p in result.ports)}")
    LOGGER.info(f"Use '{result.sandbox_dir / 'use_all'} \"<query>\"' to run a query on all nodes")
    return 0


if __name__ == "__main__":
    sys.exit(main())
