"""
An in-process stand-in for the AbletonOSC remote script, used by the tests.

It binds a loopback UDP port, records every message it receives, and answers queries
from a table of canned replies, sending each reply back to the sender with the address
of the request.
"""

from __future__ import annotations

import asyncio

from ableton_osc.internal_types import *
from ableton_osc import OscMessage, encode_osc_message, decode_osc_message

Reply = Union[Sequence[OscArg], Callable[[OscMessage], Optional[Sequence[OscArg]]]]

class FakeLiveServer(asyncio.DatagramProtocol):
    replies: Dict[str, Reply]
    received: List[Tuple[HostAndPort, OscMessage]]
    transport: Optional[asyncio.DatagramTransport] = None

    def __init__(self, replies: Optional[Mapping[str, Reply]]=None):
        self.replies = {} if replies is None else dict(replies)
        self.received = []
        self.message_event = asyncio.Event()

    @property
    def port(self) -> int:
        assert self.transport is not None
        return self.transport.get_extra_info('sockname')[1]

    def connection_made(self, transport: asyncio.BaseTransport):
        self.transport = transport # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        message = decode_osc_message(data)
        self.received.append((addr, message))
        self.message_event.set()
        reply = self.replies.get(message.address)
        if reply is None:
            return
        args = reply(message) if callable(reply) else reply
        if args is not None:
            self.push(addr, message.address, *args)

    def push(self, addr: HostAndPort, address: str, *args: OscArg) -> None:
        assert self.transport is not None
        self.transport.sendto(encode_osc_message(address, *args), addr)

    def push_raw(self, addr: HostAndPort, data: bytes) -> None:
        assert self.transport is not None
        self.transport.sendto(data, addr)

    def addresses(self) -> List[str]:
        return [message.address for _, message in self.received]

    async def wait_for_messages(self, n: int, timeout: float=2.0) -> None:
        async def _wait() -> None:
            while len(self.received) < n:
                self.message_event.clear()
                await self.message_event.wait()
        await asyncio.wait_for(_wait(), timeout)

    def close(self) -> None:
        if self.transport is not None:
            self.transport.close()
            self.transport = None

async def start_fake_server(replies: Optional[Mapping[str, Reply]]=None) -> FakeLiveServer:
    loop = asyncio.get_running_loop()
    server = FakeLiveServer(replies)
    await loop.create_datagram_endpoint(lambda: server, local_addr=('127.0.0.1', 0))
    return server
