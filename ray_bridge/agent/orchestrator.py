"""Turn orchestration: surface content, run command batches, send results back."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from loguru import logger

from ray_bridge.agent.backups import FileBackupStore
from ray_bridge.agent.guards import BoundedKeySet, ExecutionGuard, payload_key
from ray_bridge.agent.history import ChatHistoryStore
from ray_bridge.agent.notifier import UiNotifier, tool_label
from ray_bridge.agent.session import SessionContext
from ray_bridge.agent.turn import Continue, Done, Ignored, Turn, TurnOutcome, TurnState
from ray_bridge.channel.errors import RemoteChannelError
from ray_bridge.commands.executor import CommandCall, CommandExecutionResult, CommandExecutor

if TYPE_CHECKING:
    from ray_bridge.channel.client import CancelResult, RemoteClient

BATCH_EXECUTION_COMMAND = "batch_execution"
DUPLICATE_SEND_NOTICE = "Command results were already sent; duplicate send skipped."


def _preview(text: str, limit: int = 100) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class TurnOrchestrator:
    """
    The conversation state machine.

    Every agent payload, whether returned synchronously from a POST or pushed
    through the webhook, enters through the same dedup and processing path.
    A payload carrying command calls runs them as one batch and produces a
    follow-up turn with the results; the loop continues until a payload with
    no command calls is surfaced as the final message.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        channel: RemoteClient,
        session: SessionContext,
        notifier: UiNotifier | None = None,
        *,
        backups: FileBackupStore | None = None,
        history: ChatHistoryStore | None = None,
        dedup_capacity: int = 100,
        outbound_dedup_capacity: int = 100,
        stop_on_error: bool = False,
    ):
        self.executor = executor
        self.channel = channel
        self.session = session
        self.notifier = notifier or UiNotifier()
        self.backups = backups
        self.history = history
        self.stop_on_error = stop_on_error
        self.state = TurnState.IDLE
        self.guard = ExecutionGuard()
        self._seen = BoundedKeySet(dedup_capacity)
        self._sent = BoundedKeySet(outbound_dedup_capacity)
        self._cancel_requested = False

    # Entry points

    async def send_user_message(self, text: str) -> TurnOutcome:
        """Start a conversation turn from user input and drive it to completion."""
        text = (text or "").strip()
        if not text:
            return Ignored("empty message")
        self._record("user", text)
        response = await self._send(text)
        if response is None:
            return Ignored("transport error")
        return await self._drive(response, synchronous=True)

    async def handle_inbound(self, payload: Any) -> TurnOutcome:
        """Process a payload pushed by the agent (webhook delivery)."""
        return await self._drive(payload, synchronous=False)

    async def cancel(self) -> CancelResult:
        """Stop the in-flight batch between calls and ask the agent to stop."""
        if self.guard.busy:
            self._cancel_requested = True
            logger.info("Cancellation requested for the running command batch")
        return await self.channel.cancel(
            task_id=self.session.last_task_id,
            chat_id=self.session.chat_id,
        )

    # Loop

    async def _drive(self, payload: Any, *, synchronous: bool) -> TurnOutcome:
        outcome = await self._accept(payload, synchronous=synchronous)
        while isinstance(outcome, Continue):
            response = await self.send_results(outcome.message, outcome.command_results)
            if response is None:
                return Ignored("results not delivered")
            outcome = await self._accept(response, synchronous=True)
        return outcome

    async def _accept(self, payload: Any, *, synchronous: bool) -> TurnOutcome:
        if not isinstance(payload, dict):
            logger.warning(f"Ignoring non-object payload: {type(payload).__name__}")
            return Ignored("invalid payload")

        turn = Turn.from_payload(payload)
        if synchronous and self._is_acknowledgement(turn):
            self.session.set_last_task_id(turn.task_id)
            logger.debug("Request acknowledged; waiting for webhook delivery")
            return Ignored("acknowledged")

        if not self._seen.add(payload_key(payload)):
            logger.info("Skipping duplicate payload")
            return Ignored("duplicate")
        return await self.process_turn(turn)

    @staticmethod
    def _is_acknowledgement(turn: Turn) -> bool:
        return (
            not turn.content
            and not turn.has_command_calls
            and not turn.command_results
            and not turn.is_working
        )

    # State machine step

    async def process_turn(self, turn: Turn) -> TurnOutcome:
        """
        Advance the state machine by one agent turn.

        Returns Done when content was surfaced as the final message, Continue
        when a batch ran and its results must be sent back, and Ignored when
        the turn did not advance the conversation.
        """
        self.session.set_last_task_id(turn.task_id)
        if turn.chat_id and turn.project_id:
            self.session.adopt_remote_session(turn.chat_id, turn.project_id)

        if turn.is_working:
            logger.info("Ray is working on the request")
            await self.notifier.working_notice()
            self.state = TurnState.IDLE
            return Ignored("working")

        logger.debug(
            f"Processing turn: content_length={len(turn.content)}, "
            f"command_calls={len(turn.command_calls)}, is_final={turn.is_final}"
        )

        if turn.has_command_calls:
            if turn.content:
                self._record("assistant", turn.content)
                await self.notifier.ray_response(turn.content, is_final=False)
            return await self._run_batch(turn)

        if not turn.content:
            if turn.command_results:
                return await self._finish_results_only(turn.command_results)
            logger.warning("Dropping turn with no content and no command calls")
            return Ignored("no content")

        logger.info(f"Final response: {_preview(turn.content)}")
        self._record("assistant", turn.content)
        await self.notifier.ray_response(turn.content, is_final=True)
        self.state = TurnState.FINALIZED
        return Done(turn.content)

    async def _finish_results_only(self, command_results: list[dict[str, Any]]) -> Done:
        total = len(command_results)
        ok = sum(1 for r in command_results if r.get("status") == "success" or r.get("ok") is True)
        summary = f"Command results received: {ok}/{total} successful"
        await self.notifier.tool_results_received(command_results)
        await self.notifier.ray_response(summary, is_final=True)
        self.state = TurnState.FINALIZED
        return Done(summary)

    async def _run_batch(self, turn: Turn) -> TurnOutcome:
        if not self.guard.try_acquire():
            logger.warning(
                f"Command batch already executing; dropping {len(turn.command_calls)} new command calls"
            )
            return Ignored("busy")

        self.state = TurnState.EXECUTING_TOOLS
        self._cancel_requested = False
        calls = [CommandCall.from_payload(c) for c in turn.command_calls]
        labels = [tool_label(call) for call in calls]
        logger.info(f"Executing {len(calls)} command call(s): {', '.join(labels)}")

        async def before_call(index: int, call: CommandCall) -> None:
            if self.backups is not None:
                self.backups.capture_for(call)
            await self.notifier.tool_progress(index, labels[index], len(labels))

        try:
            await self.notifier.tool_starting(labels)
            batch = await self.executor.execute_batch(
                calls,
                stop_on_error=self.stop_on_error,
                before_call=before_call,
                is_cancelled=lambda: self._cancel_requested,
            )
            results = batch.results
            logger.info(
                f"Command batch finished: {batch.success_count} succeeded, {batch.failed_count} failed"
            )
            await self.notifier.tool_finished(labels, results)
        except Exception as e:
            logger.error(f"Command batch failed: {e}")
            results = [
                CommandExecutionResult.failure(
                    BATCH_EXECUTION_COMMAND,
                    [],
                    f"Error executing commands: {e}",
                )
            ]
            await self.notifier.tool_failed(labels, str(e))
        finally:
            self.guard.release()
            self._cancel_requested = False
            if self.backups is not None:
                self.backups.prune()

        return Continue(
            message=turn.content,
            command_results=[result.to_wire() for result in results],
        )

    # Outbound

    async def send_results(
        self,
        message: str,
        command_results: list[dict[str, Any]],
    ) -> dict[str, Any] | None:
        """Send a batch's results back; an identical send at the same instant is skipped."""
        key = payload_key([message, command_results, time.time_ns()])
        if not self._sent.add(key):
            logger.warning("Skipping duplicate command results send")
            self.state = TurnState.IDLE
            await self.notifier.ray_response(DUPLICATE_SEND_NOTICE, is_final=True)
            return None
        return await self._send(message, command_results)

    async def _send(
        self,
        message: str,
        command_results: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any] | None:
        self.state = TurnState.AWAITING_REMOTE
        try:
            return await self.channel.send_message(message, command_results=command_results)
        except RemoteChannelError as e:
            logger.error(f"Failed to reach Ray API: {e}")
            self.state = TurnState.IDLE
            await self.notifier.ray_response(e.user_message(), is_final=True)
            return None

    def _record(self, role: str, content: str) -> None:
        if self.history is None or not content.strip():
            return
        self.history.append(self.session.chat_id, self.session.project_id, role, content)
