#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
AbletonLive -- application-level entry point for controlling one Ableton Live instance,
and SongListeners, which subscribes to song property change notifications pushed by
AbletonOSC.
"""

from __future__ import annotations

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    DEFAULT_HOST,
    DEFAULT_SEND_PORT,
    DEFAULT_RECEIVE_PORT,
    DEFAULT_QUERY_TIMEOUT,
  )
from .exceptions import OscError
from .osc_message import OscMessage
from .osc_socket import OscMessageHandler, OscErrorHandler, OscMessageSubscriber
from .client import AbletonOscClient

SONG_GET_PREFIX = "/live/song/get/"

SongPropertyCallback = Callable[[Optional[OscArg]], None]
"""A callback invoked with the new value of a song property."""

class SongListeners:
    """Routes song property notifications pushed by AbletonOSC to callbacks.

    AbletonOSC starts pushing /live/song/get/<prop> messages after receiving
    /live/song/start_listen/<prop>, and stops after /live/song/stop_listen/<prop>. A
    reference count per property makes the first listener start the stream and the
    removal of the last listener stop it.

    The routing handler is only installed between start() and stop(). Note that replies
    to queries of /live/song/get/<prop> are routed to the listeners too.
    """

    client: AbletonOscClient
    callbacks: Dict[int, Tuple[str, SongPropertyCallback]]
    """Registered callbacks, indexed by handle."""

    ref_counts: Dict[str, int]
    """The number of registered callbacks per property."""

    i_next_handle: int = 0
    handler_id: Optional[int] = None

    def __init__(self, client: AbletonOscClient):
        self.client = client
        self.callbacks = {}
        self.ref_counts = {}

    @property
    def started(self) -> bool:
        return self.handler_id is not None

    @property
    def properties(self) -> List[str]:
        """The properties that currently have at least one listener."""
        return list(self.ref_counts.keys())

    def start(self) -> None:
        """Installs the routing handler, and starts listening on AbletonOSC for any property
           that already has listeners."""
        if self.handler_id is not None:
            return
        self.handler_id = self.client.add_message_handler(self._on_message)
        if not self.client.is_connected:
            logger.debug("Not connected; song listeners will not be started on AbletonOSC")
            return
        for prop in self.ref_counts:
            self.client.send(f"/live/song/start_listen/{prop}")

    def stop(self) -> None:
        """Stops listening on AbletonOSC for every property and removes the routing handler.
           Registered callbacks are kept and resume after the next start()."""
        if self.handler_id is None:
            return
        self.client.remove_message_handler(self.handler_id)
        self.handler_id = None
        if self.client.is_connected:
            for prop in self.ref_counts:
                self.client.send(f"/live/song/stop_listen/{prop}")

    def add_listener(self, prop: str, callback: SongPropertyCallback) -> int:
        """Adds a callback for changes to a song property, e.g. "tempo" or "is_playing".
           Returns a handle for remove_listener()."""
        n = self.ref_counts.get(prop, 0)
        if n == 0 and self.started:
            logger.debug(f"First listener for song property {prop}; starting notifications")
            # nothing is registered if the send fails
            self.client.send(f"/live/song/start_listen/{prop}")
        handle = self.i_next_handle
        self.i_next_handle += 1
        self.callbacks[handle] = (prop, callback)
        self.ref_counts[prop] = n + 1
        return handle

    def remove_listener(self, handle: int) -> None:
        prop, _ = self.callbacks.pop(handle)
        n = self.ref_counts[prop] - 1
        if n > 0:
            self.ref_counts[prop] = n
            return
        del self.ref_counts[prop]
        if self.started and self.client.is_connected:
            logger.debug(f"Last listener for song property {prop} removed; stopping notifications")
            self.client.send(f"/live/song/stop_listen/{prop}")

    def add_beat_listener(self, callback: SongPropertyCallback) -> int:
        return self.add_listener("beat", callback)

    def _on_message(self, message: OscMessage) -> None:
        if not message.address.startswith(SONG_GET_PREFIX):
            return
        prop = message.address[len(SONG_GET_PREFIX):]
        if prop not in self.ref_counts:
            return
        value = message.arg(0)
        for p, callback in list(self.callbacks.values()):
            if p == prop:
                try:
                    callback(value)
                except Exception as e:
                    logger.warning(f"Song listener for {prop} raised exception: {e}")

class AbletonLive(AsyncContextManager['AbletonLive']):
    """
    Controls one Ableton Live instance running the AbletonOSC remote script.

    Usage:
        async with AbletonLive(host="192.168.1.72") as live:
            major, minor = await live.get_version()
            live.show_message("Hello from Python")
    """

    client: AbletonOscClient
    song: SongListeners

    def __init__(
            self,
            host: str=DEFAULT_HOST,
            send_port: int=DEFAULT_SEND_PORT,
            receive_port: int=DEFAULT_RECEIVE_PORT,
            timeout: float=DEFAULT_QUERY_TIMEOUT,
            bind_address: Optional[str]=None,
            client: Optional[AbletonOscClient]=None,
          ) -> None:
        if client is None:
            client = AbletonOscClient(
                host=host,
                send_port=send_port,
                receive_port=receive_port,
                timeout=timeout,
                bind_address=bind_address,
              )
        self.client = client
        self.song = SongListeners(client)

    def __str__(self) -> str:
        return f"AbletonLive({self.client})"

    @property
    def connected(self) -> bool:
        return self.client.is_connected

    async def connect(self) -> None:
        logger.info(f"Connecting to Ableton Live at {self.client.host}:{self.client.send_port}")
        await self.client.connect()
        self.song.start()

    def disconnect(self) -> None:
        self.song.stop()
        self.client.close()

    def close(self) -> None:
        self.disconnect()

    async def ping(self) -> bool:
        return await self.client.ping()

    async def get_version(self) -> Tuple[int, int]:
        """Returns the (major, minor) version of Ableton Live."""
        response = await self.client.query("/live/application/get/version")
        major, minor = response.arg(0), response.arg(1)
        if not isinstance(major, int) or not isinstance(minor, int):
            raise OscError(f"Unexpected reply to version query: {response}")
        return (major, minor)

    def show_message(self, message: str) -> None:
        """Shows a message in Live's status bar."""
        self.client.send("/live/api/show_message", message)

    def send(self, address: str, *args: OscArg) -> None:
        self.client.send(address, *args)

    async def query(self, address: str, *args: OscArg, timeout: Optional[float]=None) -> OscMessage:
        return await self.client.query(address, *args, timeout=timeout)

    def add_message_handler(self, handler: OscMessageHandler) -> int:
        return self.client.add_message_handler(handler)

    def remove_message_handler(self, i: int) -> None:
        self.client.remove_message_handler(i)

    def add_error_handler(self, handler: OscErrorHandler) -> int:
        return self.client.add_error_handler(handler)

    def remove_error_handler(self, i: int) -> None:
        self.client.remove_error_handler(i)

    def subscribe(self) -> OscMessageSubscriber:
        return self.client.subscribe()

    async def __aenter__(self) -> AbletonLive:
        await self.connect()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.disconnect()
        return False
