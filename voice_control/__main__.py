"""
Entry point for running the audio bridge.

Usage:
    python -m voice_control

Startup order: configuration, logging, device selection and validation,
stream pipeline, Discord login. SIGINT/SIGTERM run the shutdown sequence.

Exit codes:
    0    the Discord client stopped on its own
    1    startup failed (configuration, audio device, login)
    130  interrupted; shutdown sequence ran
"""
import asyncio
import contextlib
import signal
import sys
from typing import Optional

import uvicorn

from audio_stream.device import AudioDevice, UnsupportedDeviceError
from audio_stream.pipeline import StreamPipeline
from audio_stream.selection import choose_device
from logging_setup import setup_logging, get_logger, Component
from .bot import BridgeClient
from .config import BridgeConfig, load_env_files
from .control_api import create_app
from .controller import VoiceController
from .session import SessionRegistry
from .shutdown import ShutdownHandler

EXIT_OK = 0
EXIT_STARTUP_FAILURE = 1
EXIT_INTERRUPTED = 130

logger = get_logger(Component.DISCORD_CLIENT)


class EmbeddedServer(uvicorn.Server):
    """uvicorn server sharing the bot's event loop; signals stay with the runner."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


class PipelineSlot:
    """Holds the runner's one stream pipeline; a second initialize is refused."""

    def __init__(self):
        self.pipeline: Optional[StreamPipeline] = None

    def initialize(self, device: AudioDevice) -> StreamPipeline:
        if self.pipeline is not None:
            raise RuntimeError("stream pipeline already initialized")
        self.pipeline = StreamPipeline.initialize(device)
        return self.pipeline


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, interrupted: asyncio.Event) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, interrupted.set)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(interrupted.set))


async def run_bridge(config: BridgeConfig, pipeline: StreamPipeline) -> int:
    """Run the Discord client until it stops or a termination signal arrives."""
    registry = SessionRegistry()
    controller = VoiceController(registry, pipeline, connect_timeout=config.connect_timeout_seconds)
    client = BridgeClient(controller)
    shutdown = ShutdownHandler(
        registry,
        controller,
        pipeline,
        release_client=client.release,
        session_timeout=config.shutdown_timeout_seconds,
    )

    interrupted = asyncio.Event()
    _install_signal_handlers(asyncio.get_running_loop(), interrupted)

    tasks = set()
    server: Optional[EmbeddedServer] = None
    if config.control_api_port:
        app = create_app(registry, controller, guild_resolver=client.get_guild)
        server = EmbeddedServer(uvicorn.Config(
            app,
            host=config.control_api_host,
            port=config.control_api_port,
            log_level=config.log_level.lower(),
        ))
        tasks.add(asyncio.create_task(server.serve(), name="control-api"))
        logger.info("Control API enabled", host=config.control_api_host, port=config.control_api_port)

    client_task = asyncio.create_task(client.start(config.discord_token), name="discord-client")
    signal_task = asyncio.create_task(interrupted.wait(), name="signal")
    logger.info("Initializing server")

    done, _ = await asyncio.wait({client_task, signal_task}, return_when=asyncio.FIRST_COMPLETED)

    if signal_task in done:
        logger.info("Stopping server")
        exit_code = EXIT_INTERRUPTED
    else:
        signal_task.cancel()
        error = client_task.exception()
        if error is not None:
            logger.critical("Discord client failed", error=str(error), error_type=type(error).__name__)
            exit_code = EXIT_STARTUP_FAILURE
        else:
            exit_code = EXIT_OK

    report = await shutdown.run()
    logger.info(
        "Shutdown finished",
        left=len(report.left),
        failed=len(report.failed),
        clean=report.clean,
    )

    if server is not None:
        server.should_exit = True
    if not client_task.done():
        client_task.cancel()
    await asyncio.gather(client_task, *tasks, return_exceptions=True)
    return exit_code


def main() -> int:
    load_env_files()

    try:
        config = BridgeConfig.from_env()
    except ValueError as e:
        setup_logging(level="INFO", use_json=True)
        logger.critical("Invalid configuration", error=str(e))
        return EXIT_STARTUP_FAILURE

    setup_logging(level=config.log_level, use_json=config.log_json)

    try:
        device = choose_device(preferred=config.audio_device)
        pipeline = PipelineSlot().initialize(device)
    except UnsupportedDeviceError as e:
        logger.critical(str(e), device=e.device.name if e.device else None)
        return EXIT_STARTUP_FAILURE
    except (EOFError, KeyboardInterrupt):
        logger.info("Device selection cancelled")
        return EXIT_INTERRUPTED
    except Exception as e:
        # PortAudio missing or the device refused to open
        logger.critical("Audio capture failed to start", error=str(e), error_type=type(e).__name__)
        return EXIT_STARTUP_FAILURE

    return asyncio.run(run_bridge(config, pipeline))


if __name__ == "__main__":
    sys.exit(main())
