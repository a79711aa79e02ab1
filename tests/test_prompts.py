"""
Tests for the peer prompt coordinator.

Tests:
  - delete decisions: announce-only, confirmed, cancelled, superseded
  - conflict decisions: empty list, per-file answers in any order, invalid answers
  - handle_confirmation: unknown answers are reported, not raised
  - cleanup: every pending prompt settles to its safe default
  - missing channel raises immediately
"""
import asyncio
import unittest


# ── Helpers ───────────────────────────────────────────────────────────────────

class FakeChannel:
    """Records sent messages; send never suspends."""

    def __init__(self):
        self.sent = []

    async def send(self, message):
        self.sent.append(message)
        return True


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


def _conflict(name):
    from canvassync.models import Conflict
    return Conflict(file_name=name, local_content="local", remote_content="remote",
                    last_synced_at=1000, local_clean=False)


# ── Tests ─────────────────────────────────────────────────────────────────────

class TestDeleteDecisions(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        from canvassync.operations.prompts import PromptCoordinator
        self.coord = PromptCoordinator()
        self.channel = FakeChannel()

    async def test_without_confirmation_only_announces(self):
        result = await self.coord.request_delete_decision(self.channel, "A.tsx", False)
        self.assertTrue(result)
        self.assertEqual(self.channel.sent, [
            {"type": "file-delete", "fileNames": ["A.tsx"], "requireConfirmation": False},
        ])
        self.assertEqual(len(self.coord), 0)

    async def test_confirmed_delete(self):
        task = asyncio.create_task(self.coord.request_delete_decision(self.channel, "A.tsx", True))
        await _settle()

        self.assertTrue(self.coord.has_pending("delete:A.tsx"))
        self.assertEqual(self.channel.sent[0]["requireConfirmation"], True)
        self.assertTrue(self.coord.handle_confirmation("delete:A.tsx", True))

        self.assertTrue(await asyncio.wait_for(task, 1))
        self.assertEqual(len(self.coord), 0)

    async def test_cancelled_delete(self):
        task = asyncio.create_task(self.coord.request_delete_decision(self.channel, "A.tsx", True))
        await _settle()
        self.coord.handle_confirmation("delete:A.tsx", False)
        self.assertFalse(await asyncio.wait_for(task, 1))

    async def test_second_request_supersedes_first(self):
        """The replaced waiter settles to False instead of hanging."""
        first = asyncio.create_task(self.coord.request_delete_decision(self.channel, "A.tsx", True))
        await _settle()
        second = asyncio.create_task(self.coord.request_delete_decision(self.channel, "A.tsx", True))
        await _settle()

        self.assertFalse(await asyncio.wait_for(first, 1))
        self.assertEqual(self.coord.pending_action_ids(), ["delete:A.tsx"])
        self.coord.handle_confirmation("delete:A.tsx", True)
        self.assertTrue(await asyncio.wait_for(second, 1))


class TestConflictDecisions(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        from canvassync.operations.prompts import PromptCoordinator
        self.coord = PromptCoordinator()
        self.channel = FakeChannel()

    async def test_empty_list_sends_nothing(self):
        result = await self.coord.request_conflict_decisions(self.channel, [])
        self.assertEqual(result, {})
        self.assertEqual(self.channel.sent, [])

    async def test_answers_in_any_order(self):
        from canvassync.models import Resolution
        conflicts = [_conflict("A.tsx"), _conflict("B.tsx")]
        task = asyncio.create_task(self.coord.request_conflict_decisions(self.channel, conflicts))
        await _settle()

        self.assertEqual(len(self.channel.sent), 1)
        message = self.channel.sent[0]
        self.assertEqual(message["type"], "conflicts-detected")
        self.assertEqual(message["conflicts"][0],
                         {"fileName": "A.tsx", "localContent": "local", "remoteContent": "remote"})

        self.coord.handle_confirmation("conflict:B.tsx", "remote")
        self.assertFalse(task.done())
        self.coord.handle_confirmation("conflict:A.tsx", "local")

        result = await asyncio.wait_for(task, 1)
        self.assertEqual(result, {"A.tsx": Resolution.LOCAL, "B.tsx": Resolution.REMOTE})

    async def test_invalid_answer_leaves_file_unresolved(self):
        from canvassync.models import Resolution
        conflicts = [_conflict("A.tsx"), _conflict("B.tsx")]
        task = asyncio.create_task(self.coord.request_conflict_decisions(self.channel, conflicts))
        await _settle()

        self.assertTrue(self.coord.handle_confirmation("conflict:A.tsx", "sideways"))
        self.coord.handle_confirmation("conflict:B.tsx", "remote")

        result = await asyncio.wait_for(task, 1)
        self.assertEqual(result, {"B.tsx": Resolution.REMOTE})


class TestConfirmationAndCleanup(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        from canvassync.operations.prompts import PromptCoordinator
        self.coord = PromptCoordinator()
        self.channel = FakeChannel()

    def test_unsolicited_answer_is_ignored(self):
        self.assertFalse(self.coord.handle_confirmation("delete:Nope.tsx", True))
        self.assertFalse(self.coord.handle_confirmation("conflict:Nope.tsx", "local"))

    async def test_duplicate_answer_is_ignored(self):
        task = asyncio.create_task(self.coord.request_delete_decision(self.channel, "A.tsx", True))
        await _settle()
        self.assertTrue(self.coord.handle_confirmation("delete:A.tsx", True))
        self.assertFalse(self.coord.handle_confirmation("delete:A.tsx", False))
        self.assertTrue(await asyncio.wait_for(task, 1))

    async def test_cleanup_settles_everything_to_safe_defaults(self):
        delete_task = asyncio.create_task(
            self.coord.request_delete_decision(self.channel, "A.tsx", True))
        conflict_task = asyncio.create_task(
            self.coord.request_conflict_decisions(self.channel, [_conflict("B.tsx"), _conflict("C.tsx")]))
        await _settle()
        self.assertEqual(len(self.coord), 3)

        self.coord.cleanup()
        self.assertEqual(len(self.coord), 0)

        self.assertFalse(await asyncio.wait_for(delete_task, 1))
        self.assertEqual(await asyncio.wait_for(conflict_task, 1), {})

    async def test_partial_answers_then_disconnect(self):
        task = asyncio.create_task(
            self.coord.request_conflict_decisions(self.channel, [_conflict("A.tsx"), _conflict("B.tsx")]))
        await _settle()
        self.coord.handle_confirmation("conflict:A.tsx", "local")
        self.coord.cleanup()
        self.assertEqual(await asyncio.wait_for(task, 1), {})

    async def test_missing_channel_raises(self):
        from canvassync.operations.prompts import ChannelUnavailableError
        with self.assertRaises(ChannelUnavailableError):
            await self.coord.request_delete_decision(None, "A.tsx", False)
        with self.assertRaises(ChannelUnavailableError):
            await self.coord.request_conflict_decisions(None, [])


if __name__ == "__main__":
    unittest.main()
