#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
OscSocket -- A base class for an asyncio OSC datagram endpoint that can:

  1. Bind a local UDP port and receive datagrams on it
  2. Decode each datagram into an OscMessage and deliver it to any number of message
     handlers and async subscribers
  3. Report malformed datagrams and transport errors to any number of error handlers
  4. Send OscMessages to a remote address

  The subscriber interface is a simple async iterator that returns a sequence of
  (HostAndPort, OscMessage) tuples until the socket is closed.

  Subclasses may override message_received() to act on each decoded message after it has
  been delivered to handlers and subscribers, and on_closing() to release resources
  when the socket is stopped.
"""

from __future__ import annotations


import asyncio
from asyncio import Future
import socket
from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import MAX_QUEUE_SIZE
from .exceptions import OscError, OscBindError, OscDecodeError, OscNotConnectedError, OscSendError
from .osc_message import OscMessage, decode_osc_message

OscMessageHandler = Callable[[OscMessage], None]
"""A callback for every decoded inbound message."""

OscErrorHandler = Callable[[Exception], None]
"""A callback for errors that have no caller to be raised to."""

class OscSocketState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    CLOSED = "closed"

class _OscSocketProtocol(asyncio.DatagramProtocol):
    """An adapter between the asyncio transport and OscSocket."""

    osc_socket: OscSocket

    def __init__(self, osc_socket: OscSocket):
        self.osc_socket = osc_socket

    def connection_made(self, transport: asyncio.BaseTransport):
        """Called when a connection is made."""
        logger.debug(f"Connection made: {self.osc_socket}")

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        """Called when some datagram is received."""
        try:
            self.osc_socket.datagram_received(addr, data)
        except Exception as e:
            logger.error(f"Unexpected error dispatching datagram from {addr}: {e}")

    def error_received(self, exc: Exception):
        """Called when a send or receive operation raises an OSError.

        (Other than BlockingIOError or InterruptedError.)
        """
        self.osc_socket.error_received(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        """Called when the connection is lost or closed."""
        self.osc_socket.connection_lost(exc)


class OscMessageSubscriber(
        AsyncContextManager['OscMessageSubscriber'],
        AsyncIterable[Tuple[HostAndPort, OscMessage]]
      ):
    osc_socket: OscSocket
    queue: asyncio.Queue[Optional[Tuple[HostAndPort, OscMessage]]]
    eos: bool = False

    def __init__(self, osc_socket: OscSocket, max_queue_size: int=MAX_QUEUE_SIZE):
        self.osc_socket = osc_socket
        self.queue = asyncio.Queue(max_queue_size)

    async def __aenter__(self) -> OscMessageSubscriber:
        self.osc_socket.add_subscriber(self)
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.osc_socket.remove_subscriber(self)
        self.on_end_of_stream()
        return False

    async def iter_messages(self) -> AsyncIterator[Tuple[HostAndPort, OscMessage]]:
        while True:
            result = await self.receive()
            if result is None:
                break
            yield result

    def __aiter__(self) -> AsyncIterator[Tuple[HostAndPort, OscMessage]]:
        return self.iter_messages()

    async def receive(self) -> Optional[Tuple[HostAndPort, OscMessage]]:
        """Returns the next (src_addr, message) tuple, or None once the socket has closed
           and all buffered messages have been returned."""
        if self.eos and self.queue.empty():
            return None
        result = await self.queue.get()
        self.queue.task_done()
        if result is None:
            # keep the end-of-stream marker visible to any other waiter
            self._put_eos_marker()
        return result

    def on_message(self, addr: HostAndPort, message: OscMessage) -> None:
        if not self.eos:
            try:
                self.queue.put_nowait((addr, message))
            except asyncio.QueueFull:
                logger.warning(f"Queue full, dropping message from {addr}: {message}")

    def on_end_of_stream(self) -> None:
        if not self.eos:
            self.eos = True
            self._put_eos_marker()

    def _put_eos_marker(self) -> None:
        try:
            # wake up any waiting tasks
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            # queue is full so waiters will wake up soon
            pass

class OscSocket(AsyncContextManager['OscSocket']):
    """
    An async OSC datagram endpoint bound to a single local UDP port.

    State machine: DISCONNECTED --start()--> CONNECTED --stop()--> CLOSED. A closed
    OscSocket cannot be restarted; create a new instance instead.
    """

    bind_address: str
    """The local IP address to bind to. '' binds all interfaces."""

    bind_port: int
    """The local UDP port to bind to. 0 lets the OS pick a free port."""

    address_family: socket.AddressFamily
    """The address family of the bound socket."""

    sock: Optional[socket.socket] = None
    """The low-level bound socket."""

    transport: Optional[asyncio.DatagramTransport] = None
    """The asyncio transport attached to sock while connected."""

    final_result: Optional[Future[None]] = None
    """A future that is set when the socket is stopped. Created by start()."""

    state: OscSocketState

    message_subscribers: Set[OscMessageSubscriber]
    """Subscribers that wish to receive every decoded inbound message."""

    message_handlers: Dict[int, OscMessageHandler]
    """Callbacks invoked for every decoded inbound message, indexed by ID number."""

    error_handlers: Dict[int, OscErrorHandler]
    """Callbacks invoked for receive-path and transport errors, indexed by ID number."""

    i_next_handler: int = 0
    """The next handler ID to assign."""

    def __init__(
            self,
            bind_address: str='',
            bind_port: int=0,
            address_family: socket.AddressFamily=socket.AF_INET
          ) -> None:
        self.bind_address = bind_address
        self.bind_port = bind_port
        self.address_family = address_family
        self.state = OscSocketState.DISCONNECTED
        self.message_subscribers = set()
        self.message_handlers = {}
        self.error_handlers = {}

    def __str__(self) -> str:
        return f"{type(self).__name__}({self.bind_address or '*'}:{self.bind_port}, {self.state.value})"

    def __repr__(self) -> str:
        return str(self)

    @property
    def is_connected(self) -> bool:
        return self.state == OscSocketState.CONNECTED

    @property
    def local_addr(self) -> Optional[HostAndPort]:
        """The (host, port) the socket is bound to, or None if not connected."""
        if self.sock is None:
            return None
        sockname = self.sock.getsockname()
        return (sockname[0], sockname[1])

    def add_subscriber(self, subscriber: OscMessageSubscriber) -> None:
        self.message_subscribers.add(subscriber)
        if self.state == OscSocketState.CLOSED:
            subscriber.on_end_of_stream()

    def remove_subscriber(self, subscriber: OscMessageSubscriber) -> None:
        self.message_subscribers.discard(subscriber)

    def subscribe(self, max_queue_size: int=MAX_QUEUE_SIZE) -> OscMessageSubscriber:
        """Create an async context manager/iterable that yields every inbound message.

        Usage:
            async with osc_socket.subscribe() as subscriber:
                async for src_addr, message in subscriber:
                    print(message)
        """
        return OscMessageSubscriber(self, max_queue_size=max_queue_size)

    def add_message_handler(self, handler: OscMessageHandler) -> int:
        """Adds a handler to be called with every decoded inbound message. Returns an ID
           that can be passed to remove_message_handler()."""
        i = self.i_next_handler
        self.i_next_handler += 1
        self.message_handlers[i] = handler
        return i

    def remove_message_handler(self, i: int) -> None:
        """Removes a previously added message handler."""
        del self.message_handlers[i]

    def add_error_handler(self, handler: OscErrorHandler) -> int:
        """Adds a handler to be called with errors that are not raised to any caller: malformed
           datagrams, transport errors, and bind/send failures."""
        i = self.i_next_handler
        self.i_next_handler += 1
        self.error_handlers[i] = handler
        return i

    def remove_error_handler(self, i: int) -> None:
        """Removes a previously added error handler."""
        del self.error_handlers[i]

    def create_socket(self) -> socket.socket:
        """Creates and binds the low-level datagram socket. Subclasses may override to set
           additional socket options."""
        sock = socket.socket(self.address_family, socket.SOCK_DGRAM)
        try:
            sock.setblocking(False)
            sock.bind((self.bind_address, self.bind_port))
        except BaseException:
            sock.close()
            raise
        return sock

    async def finish_start(self) -> None:
        """Called after the socket is up and running.  Subclasses can override to do additional
           initialization."""
        pass

    async def start(self) -> None:
        if self.state != OscSocketState.DISCONNECTED:
            raise OscError(f"Cannot start {self}; create a new instance to reconnect")
        loop = asyncio.get_running_loop()
        try:
            sock = self.create_socket()
        except OSError as e:
            exc = OscBindError(f"Unable to bind UDP port {self.bind_address or '*'}:{self.bind_port}: {e}")
            self.emit_error(exc)
            raise exc from e
        try:
            untyped_transport, protocol = await loop.create_datagram_endpoint(
                lambda: _OscSocketProtocol(self),
                sock=sock
              )
        except BaseException:
            sock.close()
            raise
        # Note: asyncio datagram transports do not inherit from asyncio.DatagramTransport, though
        # they implement the same interface.
        self.transport = untyped_transport # type: ignore[assignment]
        self.sock = sock
        self.final_result = loop.create_future()
        self.state = OscSocketState.CONNECTED
        logger.debug(f"Bound {self} to {self.local_addr}")
        try:
            await self.finish_start()
        except BaseException:
            self.stop()
            raise

    def stop(self) -> None:
        """Stops the OscSocket. Safe to call more than once."""
        if self.state == OscSocketState.CLOSED:
            return
        was_connected = self.state == OscSocketState.CONNECTED
        self.state = OscSocketState.CLOSED
        if was_connected:
            logger.debug(f"Closing {self}")
        try:
            self.on_closing()
        finally:
            self._close_transport()
            for subscriber in list(self.message_subscribers):
                subscriber.on_end_of_stream()
            if self.final_result is not None and not self.final_result.done():
                self.final_result.set_result(None)

    def on_closing(self) -> None:
        """Called once when the socket is stopped, before the transport is closed.  Subclasses
           can override to release dependent resources."""
        pass

    async def wait_for_done(self) -> None:
        if self.final_result is None:
            raise OscNotConnectedError(f"{self} was never started")
        await asyncio.shield(self.final_result)

    def sendto(self, message: OscMessage, addr: HostAndPort) -> None:
        """Sends one datagram. Raises OscNotConnectedError if not connected, or OscSendError if
           the datagram could not be handed to the network stack."""
        if self.transport is None or self.state != OscSocketState.CONNECTED:
            raise OscNotConnectedError(f"Not connected; cannot send {message.address}")
        data = message.raw_data
        logger.debug(f"Sending {message} to {addr}")
        try:
            if self.sock is not None and self.transport.get_write_buffer_size() == 0:
                try:
                    self.sock.sendto(data, addr)
                    return
                except (BlockingIOError, InterruptedError):
                    pass
            # the transport buffers the datagram until the socket is writable again
            self.transport.sendto(data, addr)
        except OSError as e:
            exc = OscSendError(f"Unable to send {message.address} to {addr}: {e}")
            self.emit_error(exc)
            raise exc from e

    def emit_error(self, exc: Exception) -> None:
        for handler in list(self.error_handlers.values()):
            try:
                handler(exc)
            except Exception as e:
                logger.warning(f"Error handler raised exception processing {exc!r}: {e}")

    def datagram_received(self, addr: HostAndPort, data: bytes) -> None:
        """Called when some datagram is received."""
        try:
            message = decode_osc_message(data)
        except OscDecodeError as e:
            logger.warning(f"Dropping malformed datagram from {addr}, raw=[{data!r}]: {e}")
            self.emit_error(e)
            return
        logger.debug(f"Received from {addr}: {message}")
        for handler in list(self.message_handlers.values()):
            try:
                handler(message)
            except Exception as e:
                logger.warning(f"Message handler raised exception processing {message}: {e}")
        for subscriber in list(self.message_subscribers):
            subscriber.on_message(addr, message)
        self.message_received(addr, message)

    def message_received(self, addr: HostAndPort, message: OscMessage) -> None:
        """Called for each decoded message after handlers and subscribers have seen it.
           Subclasses can override."""
        pass

    def error_received(self, exc: Exception) -> None:
        """Called when a send or receive operation raises an OSError.

        (Other than BlockingIOError or InterruptedError.) The socket stays open; for example
        an ICMP port-unreachable from a remote that is not running lands here.
        """
        logger.info(f"Error received from transport on {self}: {exc}")
        self.emit_error(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        """Called when the transport is closed."""
        logger.debug(f"Transport closed on {self}, exc={exc}")
        if exc is not None:
            self.emit_error(exc)
        self.stop()

    def _close_transport(self) -> None:
        if self.transport is not None:
            try:
                self.transport.close()
            except Exception as e:
                logger.error(f"Error closing transport on {self}: {e}")
            self.transport = None
        # the transport owns sock and closes it
        self.sock = None

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.stop()
        return False
