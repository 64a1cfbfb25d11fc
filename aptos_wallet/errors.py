# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Structured failures raised by the wallet library.

Every failure that leaves the library is a :class:`WalletError` carrying an
:class:`ErrorKind` and a human readable reason. The kind tells the caller what
may be retried:

- ``INVALID_MNEMONIC``, ``INVALID_ARGUMENT`` and ``SIGNING_ERROR`` are local
  validation failures. Nothing was sent to the network; fix the input.
- ``SUBMISSION_REJECTED`` is terminal and reported by the chain. The reason is
  the node's message, unmodified.
- ``TIMEOUT`` means the transaction was accepted but not observed as committed
  within the configured bound. The caller may query the hash again later.
- ``TRANSPORT_FAILURE`` is a network or HTTP level failure. The library only
  retries these inside read-only loops (confirmation polling, event paging),
  never for submission.
"""

from __future__ import annotations

import unittest
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    INVALID_MNEMONIC = "invalid_mnemonic"
    INVALID_ARGUMENT = "invalid_argument"
    SIGNING_ERROR = "signing_error"
    SUBMISSION_REJECTED = "submission_rejected"
    TIMEOUT = "timeout"
    TRANSPORT_FAILURE = "transport_failure"


class WalletError(Exception):
    kind: ErrorKind
    reason: str

    def __init__(self, kind: ErrorKind, reason: str):
        super().__init__(reason)
        self.kind = kind
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.reason}"


class InvalidMnemonic(WalletError):
    def __init__(self, reason: str = "Incorrect mnemonic passed"):
        super().__init__(ErrorKind.INVALID_MNEMONIC, reason)


class InvalidArgument(WalletError):
    argument: Optional[str]

    def __init__(self, reason: str, argument: Optional[str] = None):
        super().__init__(ErrorKind.INVALID_ARGUMENT, reason)
        self.argument = argument


class SigningError(WalletError):
    def __init__(self, reason: str):
        super().__init__(ErrorKind.SIGNING_ERROR, reason)


class SubmissionRejected(WalletError):
    """The chain refused the transaction, either at submission or on execution."""

    txn_hash: Optional[str]

    def __init__(self, reason: str, txn_hash: Optional[str] = None):
        super().__init__(ErrorKind.SUBMISSION_REJECTED, reason)
        self.txn_hash = txn_hash


class TransactionTimeout(WalletError):
    txn_hash: str
    waited: float

    def __init__(self, txn_hash: str, waited: float):
        super().__init__(
            ErrorKind.TIMEOUT,
            f"transaction {txn_hash} still pending after {waited:.1f} seconds",
        )
        self.txn_hash = txn_hash
        self.waited = waited


class TransportFailure(WalletError):
    """A network or HTTP failure talking to a node or faucet."""

    retryable: bool

    def __init__(self, reason: str, retryable: bool = True):
        super().__init__(ErrorKind.TRANSPORT_FAILURE, reason)
        self.retryable = retryable


class Test(unittest.TestCase):
    def test_kind_and_reason(self):
        error = SubmissionRejected("SEQUENCE_NUMBER_TOO_OLD")
        self.assertEqual(error.kind, ErrorKind.SUBMISSION_REJECTED)
        self.assertEqual(error.reason, "SEQUENCE_NUMBER_TOO_OLD")
        self.assertEqual(str(error), "submission_rejected: SEQUENCE_NUMBER_TOO_OLD")
        self.assertIsInstance(error, WalletError)

    def test_timeout_carries_hash(self):
        error = TransactionTimeout("0xabc", 10)
        self.assertEqual(error.kind, ErrorKind.TIMEOUT)
        self.assertEqual(error.txn_hash, "0xabc")
        self.assertIn("0xabc", error.reason)

    def test_default_mnemonic_reason(self):
        self.assertEqual(InvalidMnemonic().reason, "Incorrect mnemonic passed")


if __name__ == "__main__":
    unittest.main()
