"""Message ingestion and the event consumer that drives it."""
import asyncio
from typing import Optional

from .document import DocumentBuilder, SearchDocument
from .events import MessageReceived, RoomEvent, RoomRenamed, RoomReplaced
from .lifecycle import RoomLifecycleHandler
from .logger import get_logger
from .search import SearchClient
from .store import MappingStore

logger = get_logger(__name__)


class IngestionCoordinator:
    def __init__(
        self,
        store: MappingStore,
        builder: DocumentBuilder,
        search: SearchClient,
    ) -> None:
        self.store = store
        self.builder = builder
        self.search = search

    async def handle_message(self, event: MessageReceived) -> Optional[SearchDocument]:
        """Index one message event.

        Returns the submitted document, or None when the event was skipped
        (own message, unsupported type, or a room without an index).
        Search engine errors propagate so the caller can log them.
        """
        document = self.builder.build(event.room, event.source)
        if document is None:
            return None

        index_name = self.store.get_index(event.room_id)
        if index_name is None:
            logger.debug(f"Room {event.room_id} is not bound to an index, skipping")
            return None

        await self.search.upsert(index_name, document)
        return document


class EventDispatcher:
    """Single consumer of the event queue.

    Events are handled one at a time in delivery order. A failing event is
    logged and the consumer moves on to the next one.
    """

    def __init__(
        self,
        coordinator: IngestionCoordinator,
        lifecycle: RoomLifecycleHandler,
        queue: Optional[asyncio.Queue] = None,
    ) -> None:
        self.coordinator = coordinator
        self.lifecycle = lifecycle
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def submit(self, event: RoomEvent) -> None:
        self.queue.put_nowait(event)

    async def dispatch(self, event: RoomEvent) -> None:
        match event:
            case MessageReceived():
                await self.coordinator.handle_message(event)
            case RoomRenamed(room_id=room_id, name=name):
                self.lifecycle.handle_rename(room_id, name)
            case RoomReplaced(room_id=room_id, replacement_room=replacement_room):
                await self.lifecycle.handle_tombstone(room_id, replacement_room)
            case _:
                logger.warning(f"Dropping unknown event {event!r}")

    async def process(self, event: RoomEvent) -> None:
        """Dispatch one event, logging instead of raising on failure"""
        try:
            await self.dispatch(event)
        except Exception as e:
            logger.error(f"Failed to process {type(event).__name__} in {event.room_id}: {e}")

    async def run(self) -> None:
        """Consume events until stop() is called"""
        stop_waiter = asyncio.ensure_future(self._stopping.wait())
        try:
            while not self._stopping.is_set():
                getter = asyncio.ensure_future(self.queue.get())
                await asyncio.wait(
                    {getter, stop_waiter}, return_when=asyncio.FIRST_COMPLETED
                )
                if not getter.done():
                    getter.cancel()
                    break
                await self.process(getter.result())
                self.queue.task_done()
        finally:
            stop_waiter.cancel()

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self, timeout: float) -> None:
        """Let the in-flight event finish, then stop waiting for new ones.

        The consumer is cancelled if it has not finished within ``timeout``
        seconds.
        """
        self._stopping.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Event consumer did not stop within {timeout}s, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        pending = self.queue.qsize()
        if pending:
            logger.info(f"Stopped with {pending} undelivered events in the queue")
