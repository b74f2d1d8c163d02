import asyncio
import json
from unittest import IsolatedAsyncioTestCase, TestCase

from bundle_transfer.tip_info import TipInfo, sol_to_lamports
from bundle_transfer.ws import _process_message

SNAPSHOT = {
    "time": "2024-09-01T12:58:00Z",
    "landed_tips_25th_percentile": 6.001000000000001e-06,
    "landed_tips_50th_percentile": 1e-05,
    "landed_tips_75th_percentile": 3.6e-05,
    "landed_tips_95th_percentile": 0.00144,
    "landed_tips_99th_percentile": 0.010007999,
    "ema_landed_tips_50th_percentile": 9.836078125000002e-06,
}


class TestTipInfo(TestCase):
    def test_sol_to_lamports(self):
        self.assertEqual(sol_to_lamports(1), 1_000_000_000)
        self.assertEqual(sol_to_lamports(1e-05), 10_000)

    def test_from_stream_message(self):
        tip = TipInfo.from_stream_message(SNAPSHOT)
        self.assertEqual(tip.time, "2024-09-01T12:58:00Z")
        self.assertEqual((tip.p25, tip.p50, tip.p75), (6_001, 10_000, 36_000))
        self.assertEqual((tip.p95, tip.p99), (1_440_000, 10_007_999))
        self.assertEqual(tip.ema_p50, 9_836)

    def test_missing_percentile(self):
        with self.assertRaises(KeyError):
            TipInfo.from_stream_message({"time": "t"})


class TestProcessMessage(IsolatedAsyncioTestCase):
    async def drain(self, raw) -> list[TipInfo]:
        queue: asyncio.Queue = asyncio.Queue()
        await _process_message(raw, queue)
        out = []
        while not queue.empty():
            out.append(queue.get_nowait())
        return out

    async def test_array_of_snapshots(self):
        tips = await self.drain(json.dumps([SNAPSHOT, SNAPSHOT]))
        self.assertEqual(len(tips), 2)
        self.assertEqual(tips[0].p50, 10_000)

    async def test_single_object(self):
        tips = await self.drain(json.dumps(SNAPSHOT).encode())
        self.assertEqual([t.p99 for t in tips], [10_007_999])

    async def test_junk_is_skipped(self):
        self.assertEqual(await self.drain("not json"), [])
        self.assertEqual(await self.drain(json.dumps([{"hello": 1}, "x", SNAPSHOT])), [TipInfo.from_stream_message(SNAPSHOT)])
