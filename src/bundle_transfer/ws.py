# bundle_transfer/ws.py
"""
WebSocket listener for the Jito tip stream that:
1. Maintains a persistent connection to the tip stream endpoint
2. Parses each message into TipInfo records
3. Publishes them to a queue for the caller
4. Handles reconnection with exponential backoff
"""
import asyncio
import json
import logging

import websockets

from bundle_transfer.tip_info import TipInfo

log = logging.getLogger("bundle_transfer.ws")

RECONNECT_BASE = 1.0
RECONNECT_MAX = 10.0


async def tip_stream_listener(stop: asyncio.Event, ws_url: str, tip_queue: asyncio.Queue) -> None:
    """
    Connect to the tip stream and publish TipInfo to tip_queue until stop is set.

    Parameters
    ----------
    stop:
        Event to signal graceful shutdown
    ws_url:
        WebSocket URL (e.g., "wss://bundles.jito.wtf/api/v1/bundles/tip_stream")
    tip_queue:
        Queue receiving parsed TipInfo records
    """
    backoff = RECONNECT_BASE

    while not stop.is_set():
        try:
            async with websockets.connect(ws_url, ping_interval=20, ping_timeout=20, close_timeout=1) as ws:
                log.info("WS connected: %s", ws_url)
                backoff = RECONNECT_BASE

                while not stop.is_set():
                    recv_task = asyncio.create_task(ws.recv())
                    halt_task = asyncio.create_task(stop.wait())

                    done, pending = await asyncio.wait(
                        {recv_task, halt_task},
                        return_when=asyncio.FIRST_COMPLETED
                    )
                    for t in pending:
                        t.cancel()

                    if halt_task in done:
                        log.info("WS listener received stop signal")
                        return

                    await _process_message(recv_task.result(), tip_queue)

        except asyncio.CancelledError:
            log.info("WS listener cancelled")
            raise
        except (OSError, websockets.WebSocketException) as e:
            log.error("WS connection error: %s", e)

        if stop.is_set():
            break

        log.info("WS reconnecting in %.1fs", backoff)
        await asyncio.sleep(backoff)
        backoff = min(backoff * 2, RECONNECT_MAX)

    log.info("WS listener stopped")


async def _process_message(raw_msg: str | bytes, queue: asyncio.Queue) -> None:
    """The stream sends a JSON array of tip snapshots; anything else is logged and skipped."""
    try:
        obj = json.loads(raw_msg)
    except json.JSONDecodeError:
        log.debug("WS raw (non-JSON): %s", raw_msg[:200])
        return

    entries = obj if isinstance(obj, list) else [obj]
    for entry in entries:
        try:
            await queue.put(TipInfo.from_stream_message(entry))
        except (AttributeError, KeyError, TypeError) as e:
            log.debug("WS unknown message %s: %s", entry, e)


async def log_tips(tip_queue: asyncio.Queue, stop: asyncio.Event) -> None:
    while not stop.is_set():
        try:
            tip = await asyncio.wait_for(tip_queue.get(), timeout=1.0)
        except asyncio.TimeoutError:
            continue
        log.info(
            "tips %s: p25=%s p50=%s p75=%s p95=%s p99=%s ema_p50=%s lamports",
            tip.time, tip.p25, tip.p50, tip.p75, tip.p95, tip.p99, tip.ema_p50,
        )
