import argparse
import asyncio
import logging
import sys

from lbfleet.bootstrap import HostInitializer
from lbfleet.config import Settings, load_settings
from lbfleet.errors import (
    ConfigurationError,
    HostInitError,
    HostPushError,
    LBFleetError,
)
from lbfleet.inventory import FleetRegistry, load_registry
from lbfleet.push import ConfigPusher
from lbfleet.render import CommandRenderer
from lbfleet.repository import RepositoryGuard
from lbfleet.ssh import SSHExecutor
from lbfleet.status import StatusCollector, format_rows

log = logging.getLogger(__name__)

COMMANDS_HELP = """\
commands:
  help                    show this message
  status                  show nginx/keepalived state on every host
  push                    sync configuration and TLS material to every host
  init-host ADDR [ADDR..] copy the bootstrap tree onto new hosts
  dashboard               interactive status dashboard
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lbfleet",
        description="Manage a fleet of load balancer hosts",
        epilog=COMMANDS_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to settings YAML file (default: ./lbfleet.yaml if present)",
    )
    parser.add_argument(
        "--inventory", "-i",
        default="hosts.yaml",
        help="Path to host inventory YAML file (default: %(default)s)",
    )
    parser.add_argument(
        "--log", "-l",
        default=None,
        help="Path to log file (if omitted, only warnings are printed)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log at debug level",
    )
    parser.add_argument(
        "--keep-going", "-k",
        action="store_true",
        help="push: continue with the remaining hosts after a host fails",
    )
    parser.add_argument(
        "--allow-active",
        action="store_true",
        help="push: also push to hosts marked active in the inventory",
    )
    parser.add_argument("command", nargs="?", default="help", help="Command to run")
    parser.add_argument("hosts", nargs="*", help="Host addresses (init-host)")
    return parser


def _setup_logging(path: str | None, verbose: bool) -> None:
    if path:
        logging.basicConfig(
            filename=path,
            level=logging.DEBUG if verbose else logging.INFO,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )
    else:
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.WARNING,
            format="%(levelname)s: %(message)s",
        )


def _open_executor(settings: Settings) -> SSHExecutor:
    return SSHExecutor.from_settings(settings)


def _require_registry(registry: FleetRegistry | None, command: str) -> bool:
    if registry is None:
        print(f"error: {command} needs a host inventory (see --inventory)", file=sys.stderr)
        return False
    return True


async def _status(args, settings: Settings, registry: FleetRegistry | None) -> int:
    if not _require_registry(registry, "status"):
        return 1
    async with _open_executor(settings) as executor:
        collector = StatusCollector(
            executor,
            frontend_service=settings.frontend_service,
            failover_service=settings.failover_service,
        )
        rows = await collector.collect(registry)
    if rows:
        print(format_rows(rows))
    return 0


async def _push(args, settings: Settings, registry: FleetRegistry | None) -> int:
    if not _require_registry(registry, "push"):
        return 1
    async with _open_executor(settings) as executor:
        pusher = ConfigPusher(
            executor,
            RepositoryGuard(settings.repository),
            CommandRenderer(settings.render_command, timeout=settings.command_timeout),
            settings,
            allow_active=args.allow_active,
            keep_going=args.keep_going,
        )
        try:
            report = await pusher.push(registry)
        except HostPushError as exc:
            for host in exc.report.pushed:
                print(f"pushed\t{host.index}\t{host.address}")
            for failure in exc.failures:
                print(f"error: {failure}", file=sys.stderr)
            return 1
    for host in report.pushed:
        print(f"pushed\t{host.index}\t{host.address}")
    for host in report.skipped:
        print(f"skipped\t{host.index}\t{host.address}\t(active)")
    return 0


async def _init_host(args, settings: Settings, registry: FleetRegistry | None) -> int:
    async with _open_executor(settings) as executor:
        initializer = HostInitializer(executor, settings.bootstrap_dir, settings.bootstrap_remote_dir)
        try:
            report = await initializer.init(args.hosts)
        except HostInitError as exc:
            for address in exc.report.succeeded:
                print(f"initialized\t{address}")
            for failure in exc.failures:
                print(f"error: {failure}", file=sys.stderr)
            return 1
    for address in report.succeeded:
        print(f"initialized\t{address}")
    return 0


def _dashboard(args, settings: Settings, registry: FleetRegistry | None) -> int:
    if not _require_registry(registry, "dashboard"):
        return 1
    from lbfleet.app import LBFleetApp

    app = LBFleetApp(settings=settings, registry=registry)
    app.run()
    return 0


ASYNC_COMMANDS = {
    "status": _status,
    "push": _push,
    "init-host": _init_host,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.log, args.verbose)

    if args.command == "help":
        parser.print_help()
        return 0
    if args.command not in ASYNC_COMMANDS and args.command != "dashboard":
        print(f"error: unknown command {args.command!r}", file=sys.stderr)
        parser.print_help(sys.stderr)
        return 1
    if args.hosts and args.command != "init-host":
        print(f"error: {args.command} takes no host arguments (got {' '.join(args.hosts)})", file=sys.stderr)
        return 1

    try:
        settings = load_settings(args.config)

        registry = None
        try:
            registry = load_registry(args.inventory)
        except ConfigurationError as exc:
            log.warning("%s", exc)

        if args.command == "dashboard":
            return _dashboard(args, settings, registry)
        return asyncio.run(ASYNC_COMMANDS[args.command](args, settings, registry))
    except LBFleetError as exc:
        log.debug("%s failed", args.command, exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        # Traceback goes to the log file only, never to the terminal
        if args.log:
            log.exception("Unexpected error running %s", args.command)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
