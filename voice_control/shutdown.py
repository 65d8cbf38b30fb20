"""
Process shutdown sequence.

Leaves every voice channel, stops the stream pipeline, then releases the
Discord client. A connection left open after the process dies shows the
bot as present until Discord times it out, so every step runs to the end:
a session whose teardown hangs or fails is logged and skipped.

Signal handling lives in the runner; this module only exposes run().
"""
import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from audio_stream.pipeline import StreamPipeline
from logging_setup import get_logger, Component
from observability.events import Component as EventComponent, EventEmitter, Severity
from .controller import VoiceController
from .session import GroupVoiceSession, SessionRegistry

logger = get_logger(Component.SHUTDOWN)
emitter = EventEmitter(EventComponent.SHUTDOWN)

DEFAULT_SESSION_TIMEOUT = 5.0


@dataclass
class ShutdownReport:
    """What the shutdown sequence managed to do."""

    left: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    pipeline_stopped: bool = False
    client_released: bool = False

    @property
    def clean(self) -> bool:
        return not self.failed and self.pipeline_stopped and self.client_released


class ShutdownHandler:
    def __init__(
        self,
        registry: SessionRegistry,
        controller: VoiceController,
        pipeline: StreamPipeline,
        release_client: Optional[Callable[[], Awaitable[None]]] = None,
        session_timeout: float = DEFAULT_SESSION_TIMEOUT,
    ):
        self.registry = registry
        self.controller = controller
        self.pipeline = pipeline
        self.release_client = release_client
        self.session_timeout = session_timeout
        self._report: Optional[ShutdownReport] = None

    async def run(self) -> ShutdownReport:
        """Run the shutdown sequence once; later calls return the first report."""
        if self._report is not None:
            return self._report
        report = self._report = ShutdownReport()

        self.controller.begin_shutdown()

        sessions = self.registry.all()
        logger.info("Leaving voice channels", sessions=len(sessions))
        for session in sessions:
            try:
                await asyncio.wait_for(self._leave(session), timeout=self.session_timeout)
            except asyncio.TimeoutError:
                report.failed.append(session.guild_id)
                logger.warning(
                    "Timed out leaving voice channel",
                    guild_id=session.guild_id,
                    channel_id=session.channel_id,
                    timeout_s=self.session_timeout,
                )
            except Exception as e:
                report.failed.append(session.guild_id)
                logger.error(
                    "Failed to leave voice channel",
                    guild_id=session.guild_id,
                    channel_id=session.channel_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                report.left.append(session.guild_id)
                logger.info("Left voice channel", guild_id=session.guild_id, channel_id=session.channel_id)
                emitter.emit("shutdown.session_left", session.guild_id, channel_id=session.channel_id)
            finally:
                if self.registry.lookup(session.guild_id) is session:
                    self.registry.destroy(session.guild_id)

        logger.info("Stopping audio stream")
        try:
            self.pipeline.stop()
            report.pipeline_stopped = True
        except Exception as e:
            logger.error("Failed to stop audio stream", error=str(e), error_type=type(e).__name__)

        if self.release_client is None:
            report.client_released = True
        else:
            logger.info("Disconnecting from Discord")
            try:
                await asyncio.wait_for(self.release_client(), timeout=self.session_timeout)
                report.client_released = True
            except asyncio.TimeoutError:
                logger.warning("Timed out disconnecting from Discord", timeout_s=self.session_timeout)
            except Exception as e:
                logger.error("Failed to disconnect from Discord", error=str(e), error_type=type(e).__name__)

        emitter.emit(
            "shutdown.completed",
            severity=Severity.INFO if report.clean else Severity.WARN,
            left=report.left,
            failed=report.failed,
        )
        return report

    async def _leave(self, session: GroupVoiceSession) -> None:
        # A stop that won the guild lock first has already torn the session down.
        async with self.controller.lock_for(session.guild_id):
            if self.registry.lookup(session.guild_id) is not session:
                return
            await self.controller.teardown(session)
