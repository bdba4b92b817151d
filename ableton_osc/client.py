#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
AbletonOscClient -- An OSC client for the AbletonOSC remote script that can:

  1. Send fire-and-forget commands to AbletonOSC (typically 127.0.0.1:11000)
  2. Send queries and correlate each reply to its query by address
  3. Deliver unsolicited notifications (e.g., listener updates) to message handlers
     and subscribers

AbletonOSC replies to a query with a message bearing the same address as the query, and
has no request-id convention. Queries to the same address are therefore serialized: a
query is not sent until the previous query to the same address has a reply, has timed
out, or has been cancelled. Queries to different addresses run concurrently.
"""

from __future__ import annotations


import asyncio
from asyncio import Future
import socket

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    DEFAULT_HOST,
    DEFAULT_SEND_PORT,
    DEFAULT_RECEIVE_PORT,
    DEFAULT_QUERY_TIMEOUT,
    PING_ADDRESS,
    PING_OK,
  )
from .exceptions import (
    OscConnectError,
    OscConnectionClosedError,
    OscNotConnectedError,
    OscQueryTimeoutError,
  )
from .osc_message import OscMessage
from .osc_socket import OscSocket

class PendingQuery:
    """An outstanding query waiting for a reply with a matching address."""

    address: str
    future: Future[OscMessage]
    deadline: float
    """The loop time at which the query times out."""

    timer: Optional[asyncio.TimerHandle] = None

    def __init__(self, address: str, future: Future[OscMessage], deadline: float):
        self.address = address
        self.future = future
        self.deadline = deadline

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def resolve(self, message: OscMessage) -> None:
        self.cancel_timer()
        if not self.future.done():
            self.future.set_result(message)

    def fail(self, exc: BaseException) -> None:
        self.cancel_timer()
        if not self.future.done():
            self.future.set_exception(exc)

    def __str__(self) -> str:
        return f"PendingQuery('{self.address}', deadline={self.deadline:.3f})"

    def __repr__(self) -> str:
        return str(self)

class _AddressSlot:
    """Serializes queries to a single address."""

    lock: asyncio.Lock
    users: int = 0

    def __init__(self) -> None:
        self.lock = asyncio.Lock()

class AbletonOscClient(OscSocket, AsyncContextManager['AbletonOscClient']):
    """
    An OSC client bound to the local receive port, talking to one AbletonOSC instance.

    Usage:
        async with AbletonOscClient(host="192.168.1.72") as client:
            reply = await client.query("/live/song/get/tempo")
            print(reply.args[0])
            client.send("/live/song/start_playing")
    """

    host: str
    """The host running AbletonOSC."""

    send_port: int
    """The UDP port AbletonOSC listens on."""

    receive_port: int
    """The local UDP port that replies and notifications arrive on."""

    timeout: float
    """The default amount of time (in seconds) to wait for the reply to a query."""

    remote_addr: Optional[HostAndPort] = None
    """The resolved (ip, port) that requests are sent to. Set by connect()."""

    _pending: Dict[str, PendingQuery]
    _address_slots: Dict[str, _AddressSlot]

    def __init__(
            self,
            host: str=DEFAULT_HOST,
            send_port: int=DEFAULT_SEND_PORT,
            receive_port: int=DEFAULT_RECEIVE_PORT,
            timeout: float=DEFAULT_QUERY_TIMEOUT,
            bind_address: Optional[str]=None,
          ) -> None:
        super().__init__(bind_address='' if bind_address is None else bind_address, bind_port=receive_port)
        self.host = host
        self.send_port = send_port
        self.receive_port = receive_port
        self.timeout = timeout
        self._pending = {}
        self._address_slots = {}

    def __str__(self) -> str:
        return f"AbletonOscClient({self.host}:{self.send_port}<->{self.bind_address or '*'}:{self.receive_port}, {self.state.value})"

    @property
    def pending_addresses(self) -> List[str]:
        """The addresses of the queries currently waiting for a reply."""
        return list(self._pending.keys())

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            addrinfos = await loop.getaddrinfo(self.host, self.send_port, type=socket.SOCK_DGRAM)
        except OSError as e:
            exc = OscConnectError(f"Unable to resolve AbletonOSC host {self.host}: {e}")
            self.emit_error(exc)
            raise exc from e
        family, _, _, _, sockaddr = addrinfos[0]
        self.address_family = socket.AddressFamily(family)
        self.remote_addr = (sockaddr[0], sockaddr[1])
        await super().start()
        logger.debug(f"Connected {self}; sending to {self.remote_addr}")

    async def connect(self) -> None:
        """Binds the receive port and starts receiving replies and notifications."""
        await self.start()

    def close(self) -> None:
        """Closes the socket. Outstanding queries fail with OscConnectionClosedError."""
        self.stop()

    def disconnect(self) -> None:
        self.close()

    def on_closing(self) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for p in pending:
            logger.debug(f"Abandoning {p}: connection closed")
            p.fail(OscConnectionClosedError(f"Connection closed while waiting for response to {p.address}"))

    def _check_connected(self, address: str) -> None:
        if not self.is_connected:
            raise OscNotConnectedError(f"Not connected; cannot send {address}")

    def send(self, address: str, *args: OscArg) -> None:
        """Sends a one-way OSC message. Returns once the datagram is handed to the network stack;
           there is no acknowledgement that AbletonOSC received or applied it."""
        self._check_connected(address)
        assert self.remote_addr is not None
        self.sendto(OscMessage(address, args), self.remote_addr)

    async def query(self, address: str, *args: OscArg, timeout: Optional[float]=None) -> OscMessage:
        """Sends an OSC message and waits for the reply bearing the same address.

        Parameters:
            address:   The OSC address to query; e.g., "/live/song/get/tempo".
            args:      The message arguments.
            timeout:   The time (in seconds) to wait for the reply once the query is sent.
                          Defaults to self.timeout.

        Raises OscQueryTimeoutError if no reply arrives in time, OscNotConnectedError if not
        connected, and OscConnectionClosedError if the client is closed while waiting.
        """
        self._check_connected(address)
        message = OscMessage(address, args)
        # encode now so a bad argument fails before anything is registered
        _ = message.raw_data
        if timeout is None:
            timeout = self.timeout
        loop = asyncio.get_running_loop()

        slot = self._address_slots.get(address)
        if slot is None:
            slot = _AddressSlot()
            self._address_slots[address] = slot
        slot.users += 1
        try:
            async with slot.lock:
                if not self.is_connected:
                    raise OscConnectionClosedError(f"Connection closed while waiting to send {address}")
                pending = PendingQuery(address, loop.create_future(), loop.time() + timeout)
                self._pending[address] = pending
                pending.timer = loop.call_at(pending.deadline, self._on_query_timeout, pending, timeout)
                try:
                    assert self.remote_addr is not None
                    self.sendto(message, self.remote_addr)
                    return await pending.future
                finally:
                    pending.cancel_timer()
                    if self._pending.get(address) is pending:
                        del self._pending[address]
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._address_slots[address]

    def _on_query_timeout(self, pending: PendingQuery, timeout: float) -> None:
        pending.timer = None
        if self._pending.get(pending.address) is pending:
            del self._pending[pending.address]
        logger.debug(f"Timed out waiting for response to {pending.address}")
        pending.fail(OscQueryTimeoutError(f"Timeout waiting for response to {pending.address} after {timeout} seconds"))

    def message_received(self, addr: HostAndPort, message: OscMessage) -> None:
        pending = self._pending.pop(message.address, None)
        if pending is not None:
            logger.debug(f"Resolving {pending} with {message}")
            pending.resolve(message)

    async def ping(self) -> bool:
        """Returns True if AbletonOSC answers the test query with "ok". Never raises; any
           failure, including a timeout, returns False."""
        try:
            response = await self.query(PING_ADDRESS)
        except Exception as e:
            logger.debug(f"Ping failed: {e!r}")
            return False
        return len(response.args) > 0 and response.args[0] == PING_OK

    async def __aenter__(self) -> AbletonOscClient:
        await super().__aenter__()
        return self
