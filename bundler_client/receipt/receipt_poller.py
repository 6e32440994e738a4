import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable

from bundler_client.exceptions import ReceiptTimeoutException
from bundler_client.metrics.metrics import (
    RECEIPT_POLLS, RECEIPT_WAIT_OUTCOMES)
from bundler_client.typing import UserOperationHash
from bundler_client.user_operation.models import UserOperationReceiptInfo

DEFAULT_RECEIPT_TIMEOUT = 180.0
DEFAULT_POLL_INTERVAL = 2.0

FetchReceipt = Callable[
    [UserOperationHash], Awaitable[UserOperationReceiptInfo | None]]


class ReceiptPollerState(Enum):
    Waiting = "waiting"
    Found = "found"
    TimedOut = "timed_out"
    Failed = "failed"


class ReceiptPoller:
    """
    Waits for the receipt of one user operation.

    Waiting -> Found      the query returned a receipt
    Waiting -> TimedOut   an empty result once the timeout has elapsed
    Waiting -> Failed     the query raised; the error is re-raised

    Sleeps never run past the deadline and the query in flight is cut
    off at timeout + poll_interval, so a wait never lasts longer than
    that. A poller runs once; create one per wait.
    """
    fetch_receipt: FetchReceipt
    user_operation_hash: UserOperationHash
    timeout: float
    poll_interval: float
    state: ReceiptPollerState
    attempts: int
    receipt: UserOperationReceiptInfo | None
    error: BaseException | None

    def __init__(
        self,
        fetch_receipt: FetchReceipt,
        user_operation_hash: UserOperationHash,
        timeout: float = DEFAULT_RECEIPT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if timeout < 0:
            raise ValueError(f"Invalid receipt timeout : {timeout}")
        if poll_interval <= 0:
            raise ValueError(f"Invalid poll interval : {poll_interval}")
        self.fetch_receipt = fetch_receipt
        self.user_operation_hash = user_operation_hash
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.clock = clock
        self.sleep = sleep
        self.state = ReceiptPollerState.Waiting
        self.attempts = 0
        self.receipt = None
        self.error = None
        self._started = False

    async def run(self) -> UserOperationReceiptInfo:
        if self._started:
            raise RuntimeError("ReceiptPoller.run() can only be awaited once")
        self._started = True

        start = self.clock()
        hard_deadline = start + self.timeout + self.poll_interval
        logging.debug(
            f"Waiting for receipt of {self.user_operation_hash}, "
            f"timeout {self.timeout}s, poll interval {self.poll_interval}s"
        )
        while True:
            self.attempts += 1
            RECEIPT_POLLS.inc()
            try:
                async with asyncio.timeout(
                    max(hard_deadline - self.clock(), 0)
                ) as query_deadline:
                    receipt = await self.fetch_receipt(
                        self.user_operation_hash)
            except TimeoutError as excp:
                # only the deadline's own expiry is a timeout
                if query_deadline.expired():
                    self._time_out()
                self._fail(excp)
                raise
            except Exception as excp:
                self._fail(excp)
                raise

            if receipt is not None:
                self.receipt = receipt
                self._transition(ReceiptPollerState.Found)
                return receipt

            elapsed = self.clock() - start
            if elapsed >= self.timeout:
                self._time_out()
            await self.sleep(min(self.poll_interval, self.timeout - elapsed))

    def _time_out(self) -> None:
        self._transition(ReceiptPollerState.TimedOut)
        raise ReceiptTimeoutException(
            self.user_operation_hash, self.timeout, self.attempts)

    def _fail(self, excp: BaseException) -> None:
        self.error = excp
        self._transition(ReceiptPollerState.Failed)

    def _transition(self, state: ReceiptPollerState) -> None:
        logging.debug(
            f"Receipt poller for {self.user_operation_hash}: "
            f"{self.state.value} -> {state.value} after "
            f"{self.attempts} attempts"
        )
        self.state = state
        RECEIPT_WAIT_OUTCOMES.labels(state.value).inc()
