import sys
import asyncio
import argparse
import logging
import logging.handlers

from blocksync import __name__ as blocksync_name, __version__ as blocksync_version
from blocksync.conf import Config, NOT_SET
from blocksync.console import Basic, Advanced
from blocksync.error import BaseError, UserInputError, FatalSyncError
from blocksync.exchange.server import SyncServer
from blocksync.exchange.client import SyncClient
from blocksync.prometheus import MetricsServer
from blocksync.retry import policy_from_config
from blocksync.utils import ensure_directory_exists, split_host_port

log = logging.getLogger(blocksync_name)
log.addHandler(logging.NullHandler())


class ArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, add_help=False, **kwargs)
        self.add_argument(
            '--help', dest='help', action='store_true', default=False,
            help='show this help message and exit'
        )


def add_logging_arguments(parser: argparse.ArgumentParser):
    parser.add_argument(
        '--quiet', dest='quiet', action="store_true",
        help='Disable all console output.'
    )
    parser.add_argument(
        '--verbose', nargs="*",
        help=('Enable debug output. Optionally specify loggers for which debug output '
              'should selectively be applied.')
    )


def get_argument_parser():
    main = ArgumentParser(blocksync_name)
    main.add_argument(
        '--version', dest='cli_version', action="store_true",
        help='Show blocksync version and exit.'
    )
    main.set_defaults(command=None)
    sub = main.add_subparsers(parser_class=argparse.ArgumentParser)

    serve = sub.add_parser('serve', help='Serve files to every destination that connects.')
    serve.add_argument('files', metavar='FILE', nargs='+', help='files to serve, in the order they are sent')
    serve.set_defaults(command='serve')
    add_logging_arguments(serve)
    Config.contribute_to_argparse(serve)

    fetch = sub.add_parser('fetch', help='Synchronize every file served by a source.')
    fetch.add_argument('host', metavar='HOST', help='host name or address of the source, optionally followed by :PORT')
    fetch.set_defaults(command='fetch')
    add_logging_arguments(fetch)
    Config.contribute_to_argparse(fetch)

    return main


def setup_logging(logger: logging.Logger, args: argparse.Namespace, conf: Config):
    default_formatter = logging.Formatter("%(asctime)s %(levelname)-8s %(name)s:%(lineno)d: %(message)s")
    file_handler = logging.handlers.RotatingFileHandler(
        conf.log_file_path, maxBytes=2097152, backupCount=5
    )
    file_handler.setFormatter(default_formatter)
    logger.addHandler(file_handler)

    if not args.quiet:
        handler = logging.StreamHandler()
        handler.setFormatter(default_formatter)
        logger.addHandler(handler)
    # mostly disable third part logging
    logging.getLogger('aiohttp').setLevel(logging.CRITICAL)

    if args.verbose is None:
        logger.setLevel(logging.INFO)
    elif not args.verbose:
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)
        for name in args.verbose:
            logging.getLogger(name).setLevel(logging.DEBUG)


async def start_metrics(conf: Config):
    if not conf.prometheus_port:
        return None
    metrics = MetricsServer()
    await metrics.start(conf.network_interface, conf.prometheus_port)
    return metrics


async def run_server(conf: Config, files):
    server = SyncServer(asyncio.get_running_loop(), files, conf.block_size, conf.precompute_checksums)
    metrics = await start_metrics(conf)
    try:
        await server.start_server(conf.tcp_port, conf.network_interface)
        await server.serve_forever()
    finally:
        server.stop_server()
        if metrics:
            await metrics.stop()


async def run_client(conf: Config, host: str, port: int, quiet: bool = False):
    client = SyncClient(
        asyncio.get_running_loop(), conf.download_dir, conf.block_size,
        retry_policy=policy_from_config(conf), connect_timeout=conf.peer_connect_timeout,
        max_file_size=conf.max_file_size, listener=Basic(lambda _: None) if quiet else Advanced()
    )
    metrics = await start_metrics(conf)
    try:
        return await client.sync(host, port)
    finally:
        if metrics:
            await metrics.stop()


def main(argv=None):
    argv = argv or sys.argv[1:]
    parser = get_argument_parser()
    args = parser.parse_args(argv)

    if args.cli_version:
        print(f"{blocksync_name} {blocksync_version}")
        return 0

    if args.command is None or args.help:
        parser.print_help()
        return 0

    try:
        conf = Config.create_from_arguments(args)
        if args.config is not NOT_SET:
            # a config file named on the command line must exist
            conf.set_persisted(conf.config)
        ensure_directory_exists(conf.data_dir)
        ensure_directory_exists(conf.download_dir)
    except UserInputError as err:
        print(f"{blocksync_name}: {err}", file=sys.stderr)
        return 1

    setup_logging(log, args, conf)
    log.debug('Final Settings: %s', conf.settings_dict)

    try:
        if args.command == 'serve':
            log.info("Starting %s %s source", blocksync_name, blocksync_version)
            asyncio.run(run_server(conf, args.files))
        else:
            log.info("Starting %s %s destination", blocksync_name, blocksync_version)
            host, port = split_host_port(args.host, conf.tcp_port)
            asyncio.run(run_client(conf, host, port, args.quiet))
    except KeyboardInterrupt:
        log.info("interrupted")
    except (UserInputError, FatalSyncError, ValueError) as err:
        log.error("%s", err)
        return 1
    except (BaseError, OSError) as err:
        # retries exhausted
        log.error("sync failed: %s", err)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
