#!/usr/bin/env python3

import logging
import asyncio
import ableton_osc

#logging.basicConfig(level=logging.DEBUG)

async def amain():
    async with ableton_osc.AbletonLive() as live:
        # AbletonOSC pushes /live/song/get/beat on every beat while at least one listener is registered
        live.song.add_beat_listener(lambda beat: print(f"Beat {beat}"))
        live.send("/live/song/start_playing")
        # stop listening after eight seconds; leaving the context manager stops the listener
        await asyncio.sleep(8.0)
        live.send("/live/song/stop_playing")

loop = asyncio.new_event_loop()
try:
    asyncio.set_event_loop(loop)
    loop.run_until_complete(amain())
finally:
    loop.close()
