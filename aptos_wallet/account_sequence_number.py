# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Per-account sequence number reservation.

Submissions from one account are serialized: the reservation holds an
``asyncio.Lock`` from reading the sequence number on chain until the signed
transaction has been handed to the node. Different accounts never wait on
each other.

The chain may lag behind what this process already submitted (the previous
transaction can still be in the mempool, or its confirmation may have timed
out). While the on-chain number has not moved past the last number this
process submitted, the next reservation continues from ``last_submitted + 1``
so a number is never reused.

Once the signed bytes are handed to the node the number stays used even if
the caller is cancelled or the connection drops, since the node may already
hold the transaction. Only a definite rejection by the node releases it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import unittest
import unittest.mock
from typing import AsyncIterator, Dict, Optional

from .account_address import AccountAddress
from .async_client import RestClient, Transport
from .errors import SubmissionRejected, TransportFailure


class AccountSequenceNumber:
    """A managed wrapper around sequence numbers for a single account."""

    _transport: Transport
    _account: AccountAddress
    _lock: asyncio.Lock
    _last_submitted: Optional[int]
    _in_flight: bool

    def __init__(self, transport: Transport, account: AccountAddress):
        self._transport = transport
        self._account = account
        self._lock = asyncio.Lock()
        self._last_submitted = None
        self._in_flight = False

    @property
    def last_submitted(self) -> Optional[int]:
        return self._last_submitted

    @contextlib.asynccontextmanager
    async def next_sequence_number(self) -> AsyncIterator[int]:
        """
        Hold the account's lock and yield the number to build with.

        The number counts as used if the body finishes without raising, or if
        it fails after :meth:`mark_in_flight` with anything but
        :class:`SubmissionRejected`.
        """
        async with self._lock:
            sequence_number = await self._current_sequence_number()
            self._in_flight = False
            try:
                yield sequence_number
            except SubmissionRejected:
                raise
            except BaseException:
                if self._in_flight:
                    logging.warning(
                        f"Submission of {self._account} at {sequence_number} "
                        "was interrupted, treating the number as used"
                    )
                    self._last_submitted = sequence_number
                raise
            finally:
                self._in_flight = False
            self._last_submitted = sequence_number

    def mark_in_flight(self):
        """Call right before handing the signed transaction to the node."""
        self._in_flight = True

    async def _current_sequence_number(self) -> int:
        on_chain = await self._transport.account_sequence_number(self._account)
        if self._last_submitted is not None and on_chain <= self._last_submitted:
            logging.info(
                f"{self._account} is at {on_chain} on chain, continuing from "
                f"{self._last_submitted + 1}"
            )
            return self._last_submitted + 1
        self._last_submitted = None
        return on_chain


class AccountSequenceNumbers:
    """One :class:`AccountSequenceNumber` per address, created on first use."""

    def __init__(self, transport: Transport):
        self._transport = transport
        self._accounts: Dict[AccountAddress, AccountSequenceNumber] = {}

    def __getitem__(self, account: AccountAddress) -> AccountSequenceNumber:
        if account not in self._accounts:
            self._accounts[account] = AccountSequenceNumber(self._transport, account)
        return self._accounts[account]


class Test(unittest.IsolatedAsyncioTestCase):
    ACCOUNT = AccountAddress.from_str_relaxed("0xf")

    def setUp(self):
        self.rest_client = RestClient("https://fullnode.devnet.aptoslabs.com/v1")

    async def asyncTearDown(self):
        await self.rest_client.close()

    def patch_chain(self, value: int):
        patcher = unittest.mock.patch(
            "aptos_wallet.async_client.RestClient.account_sequence_number",
            return_value=value,
        )
        mock = patcher.start()
        self.addCleanup(patcher.stop)
        return mock

    async def test_common_path(self):
        account_sequence_number = AccountSequenceNumber(self.rest_client, self.ACCOUNT)
        chain = self.patch_chain(0)

        async with account_sequence_number.next_sequence_number() as seq_num:
            self.assertEqual(seq_num, 0)
        # The chain has not caught up yet.
        async with account_sequence_number.next_sequence_number() as seq_num:
            self.assertEqual(seq_num, 1)
        self.assertEqual(account_sequence_number.last_submitted, 1)

        chain.return_value = 5
        async with account_sequence_number.next_sequence_number() as seq_num:
            self.assertEqual(seq_num, 5)

    async def test_failed_submission_does_not_consume(self):
        account_sequence_number = AccountSequenceNumber(self.rest_client, self.ACCOUNT)
        self.patch_chain(3)

        with self.assertRaises(RuntimeError):
            async with account_sequence_number.next_sequence_number():
                raise RuntimeError("rejected")
        async with account_sequence_number.next_sequence_number() as seq_num:
            self.assertEqual(seq_num, 3)

    async def test_interrupted_submission_consumes(self):
        account_sequence_number = AccountSequenceNumber(self.rest_client, self.ACCOUNT)
        self.patch_chain(3)

        with self.assertRaises(asyncio.CancelledError):
            async with account_sequence_number.next_sequence_number():
                account_sequence_number.mark_in_flight()
                raise asyncio.CancelledError()
        self.assertEqual(account_sequence_number.last_submitted, 3)

        with self.assertRaises(TransportFailure):
            async with account_sequence_number.next_sequence_number() as seq_num:
                self.assertEqual(seq_num, 4)
                account_sequence_number.mark_in_flight()
                raise TransportFailure("read timeout")
        async with account_sequence_number.next_sequence_number() as seq_num:
            self.assertEqual(seq_num, 5)

    async def test_rejected_submission_does_not_consume(self):
        account_sequence_number = AccountSequenceNumber(self.rest_client, self.ACCOUNT)
        self.patch_chain(3)

        with self.assertRaises(SubmissionRejected):
            async with account_sequence_number.next_sequence_number():
                account_sequence_number.mark_in_flight()
                raise SubmissionRejected("INVALID_SIGNATURE")
        async with account_sequence_number.next_sequence_number() as seq_num:
            self.assertEqual(seq_num, 3)

    async def test_reservations_are_serialized(self):
        account_sequence_number = AccountSequenceNumber(self.rest_client, self.ACCOUNT)
        self.patch_chain(0)
        active = []
        reserved = []

        async def submit():
            async with account_sequence_number.next_sequence_number() as seq_num:
                active.append(seq_num)
                self.assertEqual(len(active), 1)
                await asyncio.sleep(0)
                reserved.append(seq_num)
                active.remove(seq_num)

        await asyncio.gather(submit(), submit(), submit())
        self.assertEqual(sorted(reserved), [0, 1, 2])

    def test_registry(self):
        accounts = AccountSequenceNumbers(self.rest_client)
        same = AccountAddress.from_str_relaxed("f")
        other = AccountAddress.from_str_relaxed("e")
        self.assertIs(accounts[self.ACCOUNT], accounts[same])
        self.assertIsNot(accounts[self.ACCOUNT], accounts[other])


if __name__ == "__main__":
    unittest.main()
