# asset_agent/actors/actor_base.py
"""
Minimal actor: one asyncio task draining one event queue.

Bus clients opened by ``start()`` are pumped into the event queue next to
the pipe commands, so the actor handles everything sequentially. ``run()``
closes the clients on every exit path.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from asset_agent.bus.broker import Broker, BusMessage, MlmClient
from asset_agent.core.errors import BusError
from asset_agent.core.logger import app_logger, clear_request_context, set_actor_name, set_request_context

TERM = "$TERM"
SOURCE_PIPE = "pipe"


@dataclass
class ActorCommand:
    name: str
    args: Tuple[Any, ...] = field(default_factory=tuple)
    reply: Optional[asyncio.Future] = None


class Actor:
    def __init__(self, broker: Broker, name: str) -> None:
        self.broker = broker
        self.name = name
        self._events: asyncio.Queue = asyncio.Queue()
        self._clients: List[Tuple[str, MlmClient]] = []
        self._pumps: List[asyncio.Task] = []
        self._started = False

    # -------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------
    def register_client(self, source: str, client: MlmClient) -> None:
        """Messages received by the client are queued as events of ``source``."""
        self._clients.append((source, client))

    def connect_client(self, source: str, client_name: str) -> MlmClient:
        client = MlmClient(self.broker, client_name).connect()
        self.register_client(source, client)
        return client

    def setup(self) -> None:
        """Opens the bus clients of the actor."""

    def start(self) -> None:
        """
        Connects the actor to the bus. Raises BusError when a client name is
        already taken, leaving nothing connected.
        """
        try:
            self.setup()
        except Exception:
            self.stop()
            raise
        self._started = True
        app_logger.info("Actor started", extra={"actor": self.name})

    def stop(self) -> None:
        for task in self._pumps:
            task.cancel()
        self._pumps = []
        for _, client in self._clients:
            client.close()
        self._clients = []
        self._fail_pending_commands()
        self._started = False

    def _fail_pending_commands(self) -> None:
        while not self._events.empty():
            source, item = self._events.get_nowait()
            if source == SOURCE_PIPE and item.reply is not None and not item.reply.done():
                item.reply.set_exception(BusError(f"actor '{self.name}' stopped"))

    async def _pump(self, source: str, client: MlmClient) -> None:
        while True:
            message = await client.recv()
            await self._events.put((source, message))

    async def run(self) -> None:
        if not self._started:
            self.start()
        set_actor_name(self.name)
        self._pumps = [asyncio.create_task(self._pump(source, client)) for source, client in self._clients]
        try:
            await self.on_run()
            while True:
                source, item = await self._events.get()
                if source == SOURCE_PIPE:
                    if item.name == TERM:
                        break
                    await self._dispatch_command(item)
                else:
                    await self._dispatch_message(source, item)
        finally:
            self.stop()
            app_logger.info("Actor stopped", extra={"actor": self.name})

    # -------------------------------------------------------
    # Pipe
    # -------------------------------------------------------
    def send(self, command: str, *args: Any) -> None:
        """Queues a command without waiting for it."""
        self._events.put_nowait((SOURCE_PIPE, ActorCommand(command, args)))

    async def execute(self, command: str, *args: Any) -> Any:
        """Queues a command and waits for its result (or exception)."""
        future = asyncio.get_running_loop().create_future()
        await self._events.put((SOURCE_PIPE, ActorCommand(command, args, future)))
        return await future

    async def _dispatch_command(self, command: ActorCommand) -> None:
        try:
            result = await self.handle_command(command.name, *command.args)
        except Exception as e:
            if command.reply is not None and not command.reply.done():
                command.reply.set_exception(e)
            else:
                app_logger.exception("Command failed", extra={"command": command.name})
            return
        if command.reply is not None and not command.reply.done():
            command.reply.set_result(result)

    async def _dispatch_message(self, source: str, message: BusMessage) -> None:
        set_request_context(source=source, subject=message.subject, sender=message.sender)
        try:
            await self.handle_message(source, message)
        except Exception:
            app_logger.exception("Unhandled error while processing message")
        finally:
            clear_request_context()

    # -------------------------------------------------------
    # Overridables
    # -------------------------------------------------------
    async def on_run(self) -> None:
        """Called once on the actor task before the first event."""

    async def handle_command(self, command: str, *args: Any) -> Any:
        app_logger.warning("Unknown command", extra={"command": command})
        return None

    async def handle_message(self, source: str, message: BusMessage) -> None:
        return None
