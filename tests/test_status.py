import asyncio
import unittest
from raindrop_sync.status import StatusBroadcaster

class TestStatusBroadcaster(unittest.IsolatedAsyncioTestCase):
    async def test_delivery_is_deferred_to_the_loop(self):
        seen = []
        status = StatusBroadcaster()
        status.register(seen.append)

        status.emit("Fetching all...")
        self.assertEqual(seen, [])
        await asyncio.sleep(0)
        self.assertEqual(seen, ["Raindrop Bookmarks - Fetching all..."])

    async def test_count_formatting(self):
        seen = []
        status = StatusBroadcaster()
        status.register(seen.append)
        status.emit_count(3)
        status.emit("Up to date", count=3)
        await asyncio.sleep(0)
        self.assertEqual(seen, ["Raindrop Bookmarks (3)", "Raindrop Bookmarks (3) - Up to date"])
        self.assertEqual(status.last_message, "Raindrop Bookmarks (3) - Up to date")

    async def test_single_sink_replaced_and_unregistered(self):
        first, second = [], []
        status = StatusBroadcaster()
        status.register(first.append)
        status.register(second.append)
        status.emit("a")
        status.unregister()
        status.emit("b")
        await asyncio.sleep(0)
        self.assertEqual(first, [])
        self.assertEqual(second, ["Raindrop Bookmarks - a"])

    async def test_lent_sinks_released_out_of_order(self):
        persistent, first, second = [], [], []
        status = StatusBroadcaster()
        status.register(persistent.append)

        status.push(first.append)
        status.push(second.append)
        status.emit("a")
        # The earlier request finishes first
        status.pop(first.append)
        status.emit("b")
        status.pop(second.append)
        status.emit("c")
        await asyncio.sleep(0)

        self.assertEqual(first, [])
        self.assertEqual(second, ["Raindrop Bookmarks - a", "Raindrop Bookmarks - b"])
        self.assertEqual(persistent, ["Raindrop Bookmarks - c"])
        self.assertEqual(status.active_sink, persistent.append)

    async def test_failing_sink_is_contained(self):
        def broken(message):
            raise RuntimeError("picker closed")
        status = StatusBroadcaster()
        status.register(broken)
        with self.assertLogs("raindrop_sync.status", level="WARNING"):
            status.emit("Up to date")
            await asyncio.sleep(0)

class TestStatusWithoutLoop(unittest.TestCase):
    def test_immediate_delivery(self):
        seen = []
        status = StatusBroadcaster()
        status.register(seen.append)
        status.emit("Cache cleared")
        self.assertEqual(seen, ["Raindrop Bookmarks - Cache cleared"])

if __name__ == '__main__':
    unittest.main()
