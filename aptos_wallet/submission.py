# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Submit signed transactions and wait for them to commit.

Submission is a single attempt. Resubmitting a transaction whose fate is
unknown could execute it twice, so only the confirmation poll retries.
"""

from __future__ import annotations

import asyncio
import logging
import unittest
import unittest.mock
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from . import ed25519
from .account_address import AccountAddress
from .async_client import (
    ClientConfig,
    TransactionState,
    TransactionStatus,
    Transport,
)
from .errors import SubmissionRejected, TransactionTimeout, TransportFailure
from .payloads import Transfer
from .transactions import RawTransaction, SignedTransaction


class Confirmation(Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ConfirmationOutcome:
    txn_hash: str
    result: Confirmation
    reason: Optional[str] = None
    waited: float = 0.0

    def raise_for_status(self) -> str:
        """Return the hash when confirmed, otherwise raise the matching error."""
        if self.result == Confirmation.CONFIRMED:
            return self.txn_hash
        if self.result == Confirmation.REJECTED:
            raise SubmissionRejected(self.reason or "", self.txn_hash)
        raise TransactionTimeout(self.txn_hash, self.waited)


class SubmissionCoordinator:
    def __init__(self, transport: Transport, config: Optional[ClientConfig] = None):
        self.transport = transport
        self.config = config or ClientConfig()

    async def submit(self, signed_transaction: SignedTransaction) -> str:
        raw = signed_transaction.transaction
        txn_hash = await self.transport.submit_bcs_transaction(signed_transaction)
        logging.info(
            f"Submitted {raw.payload} from {raw.sender} "
            f"with sequence number {raw.sequence_number}: {txn_hash}"
        )
        return txn_hash

    async def confirm(
        self, txn_hash: str, timeout: Optional[float] = None
    ) -> ConfirmationOutcome:
        """
        Poll until the transaction leaves the pending state or ``timeout``
        seconds pass. Retryable transport failures are retried on the next
        tick; a non-retryable one propagates.
        """
        if timeout is None:
            timeout = self.config.transaction_wait_in_seconds
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout

        while True:
            try:
                status = await self.transport.transaction_status(txn_hash)
            except TransportFailure as e:
                if not e.retryable:
                    raise
                logging.warning(f"Polling {txn_hash} failed, retrying: {e}")
                status = TransactionStatus.pending()

            if status.state == TransactionState.CONFIRMED:
                logging.info(f"Transaction {txn_hash} committed")
                return ConfirmationOutcome(txn_hash, Confirmation.CONFIRMED)
            if status.state == TransactionState.REJECTED:
                logging.warning(f"Transaction {txn_hash} failed: {status.reason}")
                return ConfirmationOutcome(
                    txn_hash, Confirmation.REJECTED, status.reason
                )

            now = loop.time()
            if now >= deadline:
                waited = now - started
                logging.warning(f"Transaction {txn_hash} pending after {waited:.1f}s")
                return ConfirmationOutcome(
                    txn_hash, Confirmation.TIMED_OUT, waited=waited
                )
            await asyncio.sleep(min(self.config.poll_interval_secs, deadline - now))

    async def submit_and_confirm(
        self, signed_transaction: SignedTransaction, timeout: Optional[float] = None
    ) -> str:
        txn_hash = await self.submit(signed_transaction)
        outcome = await self.confirm(txn_hash, timeout)
        return outcome.raise_for_status()


class Test(unittest.IsolatedAsyncioTestCase):
    def signed_transaction(self) -> SignedTransaction:
        key = ed25519.PrivateKey.random()
        raw = RawTransaction(
            AccountAddress.from_key(key.public_key()),
            0,
            Transfer("0x2", 1).to_payload(),
            1000,
            100,
            1_000_000,
            4,
        )
        return SignedTransaction(raw, raw.sign(key))

    def coordinator(self, **config) -> SubmissionCoordinator:
        self.transport = unittest.mock.AsyncMock()
        self.transport.submit_bcs_transaction.return_value = "0xhash"
        return SubmissionCoordinator(
            self.transport, ClientConfig(poll_interval_secs=0.01, **config)
        )

    async def test_confirmed(self):
        coordinator = self.coordinator()
        self.transport.transaction_status.side_effect = [
            TransactionStatus.pending(),
            TransportFailure("connection reset"),
            TransactionStatus.confirmed(),
        ]
        self.assertEqual(
            await coordinator.submit_and_confirm(self.signed_transaction()), "0xhash"
        )
        self.assertEqual(self.transport.transaction_status.await_count, 3)

    async def test_timeout_submits_once(self):
        coordinator = self.coordinator(transaction_wait_in_seconds=0.05)
        self.transport.transaction_status.return_value = TransactionStatus.pending()

        with self.assertRaises(TransactionTimeout) as cm:
            await coordinator.submit_and_confirm(self.signed_transaction())
        self.assertEqual(cm.exception.txn_hash, "0xhash")
        self.transport.submit_bcs_transaction.assert_awaited_once()

    async def test_confirm_reports_timeout(self):
        coordinator = self.coordinator()
        self.transport.transaction_status.return_value = TransactionStatus.pending()
        outcome = await coordinator.confirm("0xhash", timeout=0)
        self.assertEqual(outcome.result, Confirmation.TIMED_OUT)

    async def test_execution_failure(self):
        coordinator = self.coordinator()
        self.transport.transaction_status.return_value = TransactionStatus.rejected(
            "Move abort in 0x3::token: EINSUFFICIENT_BALANCE"
        )
        with self.assertRaises(SubmissionRejected) as cm:
            await coordinator.submit_and_confirm(self.signed_transaction())
        self.assertEqual(
            cm.exception.reason, "Move abort in 0x3::token: EINSUFFICIENT_BALANCE"
        )
        self.assertEqual(cm.exception.txn_hash, "0xhash")

    async def test_rejected_submission_is_not_retried(self):
        coordinator = self.coordinator()
        reason = "Invalid transaction: Type: Validation Code: SEQUENCE_NUMBER_TOO_OLD"
        self.transport.submit_bcs_transaction.side_effect = SubmissionRejected(reason)
        with self.assertRaises(SubmissionRejected) as cm:
            await coordinator.submit_and_confirm(self.signed_transaction())
        self.assertEqual(cm.exception.reason, reason)
        self.transport.submit_bcs_transaction.assert_awaited_once()
        self.transport.transaction_status.assert_not_awaited()

    async def test_non_retryable_poll_failure_propagates(self):
        coordinator = self.coordinator()
        self.transport.transaction_status.side_effect = TransportFailure(
            "forbidden", retryable=False
        )
        with self.assertRaises(TransportFailure):
            await coordinator.confirm("0xhash")

    async def test_cancellation_propagates(self):
        coordinator = self.coordinator(transaction_wait_in_seconds=60)
        self.transport.transaction_status.return_value = TransactionStatus.pending()
        task = asyncio.ensure_future(
            coordinator.submit_and_confirm(self.signed_transaction())
        )
        await asyncio.sleep(0.03)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.transport.submit_bcs_transaction.assert_awaited_once()


if __name__ == "__main__":
    unittest.main()
