"""
Tunnel client.

Keeps one websocket to the relay open, registers the local port, replays
every request the relay forwards against the local service and writes the
answers back. Lost connections are retried forever after a fixed delay.
"""

import asyncio
import signal

import aiohttp

from comzy.codec import decode_message, encode_message
from comzy.config import Settings, get_settings
from comzy.encoder import encode_response, error_response
from comzy.exceptions import ConnectionLost, FatalConfigurationError, LocalDispatchError, MalformedMessage
from comzy.logging import get_logger
from comzy.models import InboundRequestMessage, RegisteredMessage, RegisterMessage
from comzy.replay import ReplayEngine
from comzy.session import AuthMode, Session, SessionStatus
from comzy.writer import OutboundWriter

logger = get_logger(__name__)


class TunnelClient:
    """Client that exposes a local port through the relay."""

    def __init__(self, local_port: int, token: str = "", settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.local_port = local_port
        self.token = token
        self.mode = AuthMode.AUTHENTICATED if token else AuthMode.ANONYMOUS
        self.replay = ReplayEngine(
            local_port,
            host=self.settings.local_host,
            timeout=self.settings.request_timeout,
        )
        self.session: Session | None = None
        self.expired = False

        self._tasks: set[asyncio.Task[None]] = set()
        self._stopped = asyncio.Event()
        self._expiry: asyncio.TimerHandle | None = None

    @property
    def anonymous(self) -> bool:
        return self.mode is AuthMode.ANONYMOUS

    async def run(self) -> None:
        """Run the tunnel until it is stopped or the anonymous session expires."""
        loop = asyncio.get_running_loop()

        if self.anonymous:
            logger.warning("Running in anonymous mode")
            logger.info(f"Login at: {self.settings.login_url} to avoid connection timeout")
            logger.debug('Use "comzy login" to authenticate')
        logger.info(f"Starting tunnel on {self.settings.local_host}:{self.local_port}")

        handles_sigterm = self._install_signal_handler(loop)
        connector = asyncio.create_task(self._connect_forever(), name="relay-connector")
        stop_waiter = asyncio.create_task(self._stopped.wait())
        try:
            await asyncio.wait({connector, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
            if connector.done():
                # only ever finishes by raising
                connector.result()
        finally:
            stop_waiter.cancel()
            connector.cancel()
            await asyncio.gather(connector, return_exceptions=True)
            self._shutdown()
            if handles_sigterm:
                loop.remove_signal_handler(signal.SIGTERM)

    def stop(self) -> None:
        """Request shutdown. In-flight replay tasks are not waited for."""
        if not self._stopped.is_set():
            logger.info("Shutting down tunnel...")
        self._stopped.set()

    def _install_signal_handler(self, loop: asyncio.AbstractEventLoop) -> bool:
        # SIGINT reaches us as KeyboardInterrupt through the event loop runner
        try:
            loop.add_signal_handler(signal.SIGTERM, self.stop)
        except (NotImplementedError, RuntimeError):
            return False
        return True

    def _shutdown(self) -> None:
        if self._expiry is not None:
            self._expiry.cancel()
        for task in list(self._tasks):
            task.cancel()

    async def _connect_forever(self) -> None:
        delay = self.settings.reconnect_delay
        async with aiohttp.ClientSession() as http:
            while True:
                try:
                    await self._run_session(http)
                except ConnectionLost as exc:
                    logger.warning(str(exc))
                logger.info(f"Reconnecting in {delay:g} seconds...")
                await asyncio.sleep(delay)

    async def _run_session(self, http: aiohttp.ClientSession) -> None:
        """Drive one connection from connect to disconnect. Ends in ConnectionLost unless the relay URL is unusable."""
        try:
            ws = await http.ws_connect(
                self.settings.relay_url,
                max_msg_size=self.settings.max_message_size,
            )
        except aiohttp.InvalidURL as exc:
            raise FatalConfigurationError(f"Invalid relay URL: {self.settings.relay_url}") from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise ConnectionLost(f"Connection error: {exc}") from exc

        session = Session(ws=ws, writer=OutboundWriter(ws), mode=self.mode, port=self.local_port)
        self.session = session
        session.writer.start()
        logger.info("Connected to tunnel server")

        keepalive: asyncio.Task[None] | None = None
        try:
            register = RegisterMessage(user_id=self.token or "anonymous", port=self.local_port)
            try:
                await session.writer.submit(encode_message(register))
            except ConnectionLost as exc:
                raise ConnectionLost(f"Failed to register: {exc}") from exc

            keepalive = asyncio.create_task(self._keepalive(session), name="relay-keepalive")
            await self._receive_loop(session)
        finally:
            session.status = SessionStatus.DISCONNECTED
            if keepalive is not None:
                keepalive.cancel()
            await ws.close()
            await session.writer.close()

        raise ConnectionLost("Disconnected from tunnel server")

    async def _keepalive(self, session: Session) -> None:
        while True:
            await asyncio.sleep(self.settings.keepalive_interval)
            try:
                await session.writer.ping()
            except ConnectionLost as exc:
                logger.warning(f"Keepalive failed: {exc}")
                # unblocks the receive loop
                await session.ws.close()
                return

    async def _receive_loop(self, session: Session) -> None:
        async for msg in session.ws:
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                self._handle_frame(session, msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error(f"WebSocket error: {session.ws.exception()}")
                break

    def _handle_frame(self, session: Session, data: str | bytes) -> None:
        try:
            message = decode_message(data)
        except MalformedMessage as exc:
            logger.error(f"Failed to parse message: {exc}")
            return

        if isinstance(message, RegisteredMessage):
            self._on_registered(session, message)
            return

        task = asyncio.create_task(self._replay(session, message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_registered(self, session: Session, message: RegisteredMessage) -> None:
        session.alias = message.alias
        session.status = SessionStatus.REGISTERED

        logger.info("Tunnel established")
        logger.info(f"Public URL:     {self.settings.public_url(message.alias)}")
        logger.info(f"Forwarding to:  {self.replay.base_url}")
        if self.anonymous:
            logger.debug(f"Anonymous session will expire in {self.settings.anonymous_lifetime / 60:g} minutes")
            self._arm_expiry()
        logger.debug("Waiting for connections...")

    def _arm_expiry(self) -> None:
        if self._expiry is None:
            loop = asyncio.get_running_loop()
            self._expiry = loop.call_later(self.settings.anonymous_lifetime, self._expire)

    def _expire(self) -> None:
        self.expired = True
        logger.warning(f"Anonymous session expired ({self.settings.anonymous_lifetime / 60:g} minute limit)")
        logger.info(f"Login at: {self.settings.login_url} for unlimited access")
        self._stopped.set()

    async def _replay(self, session: Session, request: InboundRequestMessage) -> None:
        """Answer one relayed request. Always writes exactly one response."""
        try:
            response = await self.replay.dispatch(request)
            outbound = encode_response(request.id, response)
        except LocalDispatchError as exc:
            logger.error(f"Proxy error: {exc}")
            outbound = error_response(request.id)
        except Exception as exc:
            logger.exception(f"Unexpected error while replaying {request.method} {request.path}: {exc}")
            outbound = error_response(request.id)

        try:
            await session.writer.submit(encode_message(outbound))
        except ConnectionLost as exc:
            logger.error(f"Failed to send response: {exc}")
