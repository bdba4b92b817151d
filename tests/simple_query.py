#!/usr/bin/env python3

import logging
import asyncio
import ableton_osc

#logging.basicConfig(level=logging.DEBUG)

async def amain():
    # all parameters to AbletonLive are optional; they allow you to set the host, ports, query timeout, etc.
    async with ableton_osc.AbletonLive() as live:
        if not await live.ping():
            print("AbletonOSC is not responding")
            return
        major, minor = await live.get_version()
        print(f"Ableton Live {major}.{minor}")
        # live.query() sends a message and waits for the reply with the same address
        response = await live.query("/live/song/get/tempo")
        print(f"Tempo: {response.arg(0)}")
        live.show_message("Hello from Python")

loop = asyncio.new_event_loop()
try:
    asyncio.set_event_loop(loop)
    loop.run_until_complete(amain())
finally:
    loop.close()
