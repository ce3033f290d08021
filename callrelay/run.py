"""CLI and serving functions for running a signaling relay server."""
from __future__ import annotations

import asyncio
import datetime
import logging
import logging.handlers
import os
import pprint
import signal
import ssl
import sys

import click
from websockets.asyncio.server import serve as websockets_serve

from callrelay.config import DEFAULT_PORT
from callrelay.config import ServingConfig
from callrelay.server import SignalingServer
from callrelay.utils.tasks import spawn_guarded_background_task

logger = logging.getLogger(__name__)


def periodic_user_logger(
    server: SignalingServer,
    interval: float = 60,
    limit: float | None = 32,
    level: int = logging.INFO,
) -> asyncio.Task[None]:
    """Create an asyncio task which logs currently registered users.

    Args:
        server: Relay server instance to log registered users of.
        interval: Seconds between logging registered users.
        limit: Only log the user ids if the number of users is less than
            this number. Useful for debugging or avoiding clobbering the
            logs by printing thousands of users. If `None`, user ids are
            never logged.
        level: Logging level.

    Returns:
        Asyncio task.
    """

    async def _log() -> None:
        while True:
            await asyncio.sleep(interval)
            user_ids = sorted(server.registry.user_ids())
            message = f'Registered users: {len(user_ids)}'
            if limit is not None and 0 < len(user_ids) < limit:
                message = f'{message}\n' + '\n'.join(user_ids)
            logger.log(level, message)

    return spawn_guarded_background_task(_log, name='relay-user-logger')


async def serve(config: ServingConfig) -> None:
    """Run the relay server.

    Initializes a [`SignalingServer`][callrelay.server.SignalingServer]
    and starts a websocket server listening for new connections
    and incoming messages. The server stops on SIGINT or SIGTERM.

    Note:
        This function will not configure any logging. Configuring logging
        according to
        [`ServingConfig.logging`][callrelay.config.ServingConfig]
        is the responsibility of the caller.

    Args:
        config: Serving configuration.
    """
    server = SignalingServer(max_message_bytes=config.max_message_bytes)

    # Set the stop condition when receiving SIGINT (ctrl-C) and SIGTERM.
    loop = asyncio.get_running_loop()
    stop = loop.create_future()
    loop.add_signal_handler(signal.SIGINT, stop.set_result, None)
    loop.add_signal_handler(signal.SIGTERM, stop.set_result, None)

    ssl_context: ssl.SSLContext | None = None
    if config.certfile is not None:
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_context.load_cert_chain(config.certfile, keyfile=config.keyfile)

    user_logger_task: asyncio.Task[None] | None = None
    if config.logging.current_user_interval is not None:
        level = (
            config.logging.default_level
            if isinstance(config.logging.default_level, int)
            else logging.getLevelName(config.logging.default_level)
        )
        user_logger_task = periodic_user_logger(
            server,
            config.logging.current_user_interval,
            config.logging.current_user_limit,
            level=level,
        )

    config_repr = pprint.pformat(config, indent=2)
    logger.info(f'Relay serving configuration:\n{config_repr}')

    async with websockets_serve(
        server.handler,
        config.host,
        config.port,
        process_request=server.process_request,
        ssl=ssl_context,
    ):
        logger.info(f'Relay server listening on port {config.port}')
        logger.info('Use ctrl-C to stop')
        await stop
        logger.info('Received stop signal, closing connections')

    if user_logger_task is not None:
        user_logger_task.cancel()
        try:
            await user_logger_task
        except asyncio.CancelledError:
            pass

    loop.remove_signal_handler(signal.SIGINT)
    loop.remove_signal_handler(signal.SIGTERM)

    logger.info('Relay server shutdown')


def configure_logging(config: ServingConfig) -> None:
    """Configure the root logger according to the serving config.

    Logs are written to stdout and, if `log_dir` is set, to a
    `server.log` file in that directory that is rotated weekly.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.logging.log_dir is not None:
        os.makedirs(config.logging.log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.TimedRotatingFileHandler(
                os.path.join(config.logging.log_dir, 'server.log'),
                # Rotate logs Sunday at midnight
                when='W6',
                atTime=datetime.time(hour=0, minute=0, second=0),
            ),
        )

    logging.basicConfig(
        format=(
            '[%(asctime)s.%(msecs)03d] %(levelname)-5s (%(name)s) :: '
            '%(message)s'
        ),
        datefmt='%Y-%m-%d %H:%M:%S',
        level=config.logging.default_level,
        handlers=handlers,
    )

    logging.getLogger('websockets').setLevel(config.logging.websockets_level)


@click.command()
@click.option('--config', '-c', 'config_path', help='Configuration file.')
@click.option('--host', metavar='ADDR', help='Interface to bind to.')
@click.option(
    '--port',
    type=int,
    metavar='PORT',
    envvar='PORT',
    help=f'Port to bind to [default: {DEFAULT_PORT}].',
)
@click.option('--log-dir', metavar='PATH', help='Logging directory.')
@click.option(
    '--log-level',
    type=click.Choice(
        ['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG'],
        case_sensitive=False,
    ),
    help='Minimum logging level.',
)
def cli(
    config_path: str | None,
    host: str | None,
    port: int | None,
    log_dir: str | None,
    log_level: str | None,
) -> None:
    """Run a signaling relay server instance.

    The relay server forwards call offers, answers, and ICE candidates
    between registered users so they can establish peer-to-peer WebRTC
    calls. If no configuration file is provided, a default configuration
    will be created from
    [`ServingConfig()`][callrelay.config.ServingConfig].
    The remaining CLI options will override the options provided in the
    configuration object. The port can also be set with the `PORT`
    environment variable.
    """
    config = (
        ServingConfig()
        if config_path is None
        else ServingConfig.from_toml(config_path)
    )

    # Override config with CLI options if given
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port
    if log_dir is not None:
        config.logging.log_dir = log_dir
    if log_level is not None:
        config.logging.default_level = logging.getLevelName(log_level.upper())

    configure_logging(config)

    asyncio.run(serve(config))
