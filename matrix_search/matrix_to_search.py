import asyncio
import json
import signal
from typing import Optional

from nio import (
    AsyncClient,
    Event,
    JoinError,
    LoginResponse,
    MatrixRoom,
    RoomMessage,
    RoomNameEvent,
    RoomResolveAliasResponse,
)

from .config import Settings
from .document import DocumentBuilder
from .events import MessageReceived, RoomRenamed, RoomReplaced
from .exceptions import JoinRoomError, LoginError
from .ingest import EventDispatcher, IngestionCoordinator
from .lifecycle import RoomLifecycleHandler
from .logger import get_logger, setup_logging
from .search import SearchClient, create_client
from .store import MappingStore

# Create logger for this module
logger = get_logger(__name__)

TOMBSTONE_EVENT_TYPE = "m.room.tombstone"
STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class MatrixSearchBot:
    def __init__(self, settings: Settings) -> None:
        self.settings: Settings = settings
        self.matrix_client: AsyncClient = AsyncClient(
            settings.matrix.homeserver, settings.matrix.user
        )
        self.store = MappingStore(settings.state.location)
        self.search = SearchClient(create_client(settings.search))
        self.dispatcher: Optional[EventDispatcher] = None

    def load_session(self) -> Optional[dict]:
        """Load saved login credentials from the session file"""
        try:
            with open(self.settings.session_file, "r") as f:
                session = json.load(f)
        except FileNotFoundError:
            logger.info("No saved session found")
            return None
        except json.JSONDecodeError:
            logger.warning("Corrupted session file found, ignoring it")
            return None
        if not all(session.get(key) for key in ("user_id", "device_id", "access_token")):
            logger.warning("Incomplete session file found, ignoring it")
            return None
        return session

    def save_session(self, response: LoginResponse) -> None:
        """Save login credentials so later starts can skip the password"""
        with open(self.settings.session_file, "w") as f:
            json.dump(
                {
                    "user_id": response.user_id,
                    "device_id": response.device_id,
                    "access_token": response.access_token,
                },
                f,
            )

    async def connect_to_matrix(self) -> None:
        """Restore a saved session, or log in with the configured password"""
        session = self.load_session()
        if session is not None:
            self.matrix_client.restore_login(
                user_id=session["user_id"],
                device_id=session["device_id"],
                access_token=session["access_token"],
            )
            logger.info(f"Restored session for {session['user_id']}")
            return

        if not self.settings.matrix.password:
            raise LoginError("No saved session and no password configured")

        logger.info(f"Logging in to Matrix as {self.settings.matrix.user}...")
        response = await self.matrix_client.login(
            password=self.settings.matrix.password,
            device_name=self.settings.matrix.device_name,
        )
        if not isinstance(response, LoginResponse):
            logger.error(f"Failed to log in: {response}")
            raise LoginError(f"Failed to log in: {response}")
        self.save_session(response)
        logger.info("Successfully logged in")

    async def join_room(self, room_id: str) -> None:
        response = await self.matrix_client.join(room_id)
        if isinstance(response, JoinError):
            raise JoinRoomError(room_id, response.message)

    async def resolve_room(self, room: str) -> str:
        """Turn a ``#alias:server`` into a room id; room ids pass through"""
        if not room.startswith("#"):
            return room
        response = await self.matrix_client.room_resolve_alias(room)
        if not isinstance(response, RoomResolveAliasResponse):
            raise JoinRoomError(room, f"could not resolve alias: {response}")
        return response.room_id

    async def update_state(self) -> None:
        """Bind every configured room to its index in the mapping store"""
        for index_name, room in self.settings.matrix.indices.items():
            room_id = await self.resolve_room(room)
            await self.join_room(room_id)
            matrix_room = self.matrix_client.rooms.get(room_id)
            name = matrix_room.name if matrix_room is not None else None
            self.store.set_entry(room_id, index_name=index_name, display_name=name)
            logger.info(f"Indexing room {room_id} into {index_name}")

    def update_names(self) -> None:
        """Record the names of bound rooms known from the last sync"""
        for room_id, room in self.matrix_client.rooms.items():
            if room.name and self.store.get_index(room_id) is not None:
                self.store.set_name(room_id, room.name)

    async def update_indices(self) -> None:
        """Create the configured search indices that do not exist yet"""
        for index_name in self.settings.matrix.indices:
            await self.search.ensure_index(index_name)

    async def message_callback(self, room: MatrixRoom, event: RoomMessage) -> None:
        """Callback for new messages"""
        logger.debug(f"New message in {room.room_id} from {event.sender}")
        self.dispatcher.submit(MessageReceived(room=room, source=event.source))

    async def name_callback(self, room: MatrixRoom, event: RoomNameEvent) -> None:
        self.dispatcher.submit(RoomRenamed(room_id=room.room_id, name=event.name))

    async def tombstone_callback(self, room: MatrixRoom, event: Event) -> None:
        # nio has no tombstone event class, so match on the raw type
        if event.source.get("type") != TOMBSTONE_EVENT_TYPE:
            return
        replacement_room = event.source.get("content", {}).get("replacement_room")
        if not replacement_room:
            logger.warning(f"Tombstone in {room.room_id} without a replacement room")
            return
        self.dispatcher.submit(
            RoomReplaced(room_id=room.room_id, replacement_room=replacement_room)
        )

    def create_dispatcher(self) -> EventDispatcher:
        builder = DocumentBuilder(self.matrix_client.user_id, self.settings.matrix.homeserver)
        coordinator = IngestionCoordinator(self.store, builder, self.search)
        lifecycle = RoomLifecycleHandler(self.store, self.join_room)
        return EventDispatcher(coordinator, lifecycle)

    async def run(self) -> None:
        """Main run loop"""
        await self.connect_to_matrix()

        # Join configured rooms first so the initial sync covers their backlog
        await self.update_state()
        await self.update_indices()

        # Initial sync so the backlog is not fed to the callbacks
        logger.info("Initial sync beginning...")
        await self.matrix_client.sync(timeout=30000, full_state=True)
        self.update_names()

        self.dispatcher = self.create_dispatcher()
        self.dispatcher.start()

        self.matrix_client.add_event_callback(self.message_callback, RoomMessage)
        self.matrix_client.add_event_callback(self.name_callback, RoomNameEvent)
        self.matrix_client.add_event_callback(self.tombstone_callback, Event)

        logger.info("Starting sync loop for new messages...")
        await self.matrix_client.sync_forever(timeout=30000)

    async def close(self) -> None:
        """Drain the event consumer, then release clients"""
        if self.dispatcher is not None:
            await self.dispatcher.stop(self.settings.shutdown_timeout)
        await self.matrix_client.close()
        await self.search.close()
        self.store.close()


async def main() -> None:
    settings: Settings = Settings()

    # Set up logging before creating the bot
    setup_logging(settings, "bot")
    logger.info("Starting Matrix search indexer")

    bot: MatrixSearchBot = MatrixSearchBot(settings)

    # SIGTERM and SIGINT cancel the run so close() can drain the consumer
    loop = asyncio.get_running_loop()
    for sig in STOP_SIGNALS:
        loop.add_signal_handler(sig, asyncio.current_task().cancel)
    try:
        await bot.run()
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Shutting down...")
    finally:
        for sig in STOP_SIGNALS:
            loop.remove_signal_handler(sig)
        await bot.close()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
