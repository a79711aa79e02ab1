"""
Peer prompt coordination

Turns "ask the peer and wait for the user's answer" into an ordinary
coroutine call. Each outstanding question is an asyncio.Future keyed by an
action id ("delete:<file>" or "conflict:<file>"); answers arriving on the
channel resolve them, and a disconnect fails all of them at once.

One coordinator belongs to one channel session.
"""
import asyncio
from typing import Optional, Protocol

from ..models import Conflict, Resolution
from ..utils.logging import vlog
from ..utils.paths import pluralize


class Channel(Protocol):
    async def send(self, message: dict) -> bool:
        ...


class PromptCancelledError(Exception):
    """A pending prompt ended without an answer."""


class PeerDisconnectedError(PromptCancelledError):
    def __init__(self):
        super().__init__("Peer disconnected")


class PromptSupersededError(PromptCancelledError):
    def __init__(self, action_id: str):
        super().__init__(f"Prompt {action_id} was replaced by a newer request")


class ChannelUnavailableError(RuntimeError):
    """A decision was requested with no channel at all."""


def delete_action_id(file_name: str) -> str:
    return f"delete:{file_name}"


def conflict_action_id(file_name: str) -> str:
    return f"conflict:{file_name}"


class PromptCoordinator:

    def __init__(self):
        self._pending: dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def has_pending(self, action_id: str) -> bool:
        return action_id in self._pending

    def pending_action_ids(self) -> list[str]:
        return list(self._pending)

    def _await_action(self, action_id: str, description: str) -> asyncio.Future:
        """Register a pending action; a previous one with the same id is superseded."""
        future = asyncio.get_running_loop().create_future()
        previous = self._pending.get(action_id)
        self._pending[action_id] = future
        if previous is not None and not previous.done():
            previous.set_exception(PromptSupersededError(action_id))
            vlog(f"[prompt] superseded pending {action_id}")
        vlog(f"[prompt] awaiting {description}: {action_id}")
        return future

    async def request_delete_decision(self, channel: Optional[Channel], file_name: str,
                                      require_confirmation: bool) -> bool:
        """
        Ask the peer whether file_name may be deleted there.

        Without confirmation the delete is only announced and True is returned.
        A prompt interrupted by a disconnect answers False (keep the file).
        """
        if channel is None:
            raise ChannelUnavailableError("Cannot request delete decision: peer not connected")

        if not require_confirmation:
            await channel.send({
                "type": "file-delete",
                "fileNames": [file_name],
                "requireConfirmation": False,
            })
            return True

        future = self._await_action(delete_action_id(file_name), "delete confirmation")
        await channel.send({
            "type": "file-delete",
            "fileNames": [file_name],
            "requireConfirmation": True,
        })

        try:
            return bool(await future)
        except PromptCancelledError as exc:
            vlog(f"[prompt] delete confirmation for {file_name} cancelled: {exc}")
            return False

    async def request_conflict_decisions(self, channel: Optional[Channel],
                                         conflicts: list[Conflict]) -> dict[str, Resolution]:
        """
        Send all conflicts in one notification, then wait for a separate answer
        per file; the peer may answer in any order.

        Returns {} if the prompts were cancelled: nothing is resolved this round.
        Files answered with something other than local/remote are left out.
        """
        if channel is None:
            raise ChannelUnavailableError("Cannot request conflict decisions: peer not connected")
        if not conflicts:
            return {}

        pending = [
            (c.file_name, self._await_action(conflict_action_id(c.file_name), "conflict resolution"))
            for c in conflicts
        ]

        await channel.send({
            "type": "conflicts-detected",
            "conflicts": [c.summary() for c in conflicts],
        })

        answers = await asyncio.gather(*(fut for _, fut in pending), return_exceptions=True)
        for answer in answers:
            if isinstance(answer, PromptCancelledError):
                vlog(f"[prompt] conflict resolution cancelled: {answer}")
                return {}
            if isinstance(answer, BaseException):
                raise answer

        decisions: dict[str, Resolution] = {}
        for (name, _), answer in zip(pending, answers):
            try:
                decisions[name] = Resolution(answer)
            except ValueError:
                # Left out: the conflict stays unresolved this round
                vlog(f"[prompt] invalid resolution {answer!r} for {name}")
        return decisions

    def handle_confirmation(self, action_id: str, value) -> bool:
        """
        Deliver an answer from the peer. Unknown, stale or duplicate answers are
        logged and reported with False, never raised.
        """
        future = self._pending.pop(action_id, None)
        if future is None:
            vlog(f"[prompt] unexpected confirmation for {action_id}")
            return False
        if future.done():
            vlog(f"[prompt] confirmation for {action_id} arrived after cancellation")
            return False
        future.set_result(value)
        vlog(f"[prompt] confirmed: {action_id}")
        return True

    def cleanup(self):
        """Fail every pending prompt (the channel is gone) and empty the registry."""
        pending, self._pending = self._pending, {}
        for action_id, future in pending.items():
            if not future.done():
                future.set_exception(PeerDisconnectedError())
            vlog(f"[prompt] cancelled pending action: {action_id}")
        if pending:
            vlog(f"[prompt] cleaned up {pluralize(len(pending), 'pending action')}")
