# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Accounts derived from BIP-39 mnemonic phrases.

The first 32 bytes of the 64-byte BIP-39 seed (empty passphrase) become the
Ed25519 signing key. This is not a BIP-32/SLIP-10 derivation path, so wallets
that use a derivation path will produce different accounts for the same phrase.
"""

from __future__ import annotations

import hashlib
import unittest
from typing import Optional, Union

from mnemonic import Mnemonic

from . import ed25519
from .account_address import AccountAddress
from .authenticator import AccountAuthenticator
from .errors import InvalidArgument, InvalidMnemonic
from .transactions import RawTransaction, SignedTransaction

WORDLIST = Mnemonic("english")


class Account:
    """A signing key pair plus the on-chain address it acts for."""

    account_address: AccountAddress
    private_key: ed25519.PrivateKey

    def __init__(
        self, account_address: AccountAddress, private_key: ed25519.PrivateKey
    ):
        self.account_address = account_address
        self.private_key = private_key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Account):
            return NotImplemented
        return (
            self.account_address == other.account_address
            and self.private_key == other.private_key
        )

    def __repr__(self) -> str:
        return f"Account({self.account_address})"

    @staticmethod
    def generate_mnemonic(strength: int = 128) -> str:
        return WORDLIST.generate(strength=strength)

    @staticmethod
    def from_mnemonic(
        code: str, address: Optional[Union[str, AccountAddress]] = None
    ) -> Account:
        """
        Derive an account from a mnemonic phrase.

        The phrase is checked against the English word list and its checksum
        before any seed is computed. Pass ``address`` for an account whose key
        was rotated: it becomes the sender and the address for chain reads,
        while the key pair still comes from ``code``.
        """
        if not isinstance(code, str) or not WORDLIST.check(code):
            raise InvalidMnemonic()

        seed = Mnemonic.to_seed(code, passphrase="")
        private_key = ed25519.PrivateKey.from_seed(seed[: ed25519.PrivateKey.LENGTH])
        return Account._with_address(private_key, address)

    @staticmethod
    def load_key(
        key: str, address: Optional[Union[str, AccountAddress]] = None
    ) -> Account:
        try:
            private_key = ed25519.PrivateKey.from_str(key)
        except InvalidArgument as e:
            raise InvalidArgument(f"Invalid private key: {e.reason}", "key") from e
        return Account._with_address(private_key, address)

    @staticmethod
    def _with_address(
        private_key: ed25519.PrivateKey,
        address: Optional[Union[str, AccountAddress]],
    ) -> Account:
        if address is None:
            account_address = AccountAddress.from_key(private_key.public_key())
        else:
            account_address = AccountAddress.ensure(address)
        return Account(account_address, private_key)

    def address(self) -> AccountAddress:
        return self.account_address

    def auth_key(self) -> str:
        """Derived from the public key, independent of any address override."""
        return str(AccountAddress.from_key(self.private_key.public_key()))

    def public_key(self) -> ed25519.PublicKey:
        return self.private_key.public_key()

    def sign(self, data: bytes) -> ed25519.Signature:
        return self.private_key.sign(data)

    def sign_transaction(self, transaction: RawTransaction) -> AccountAuthenticator:
        return transaction.sign(self.private_key)

    def create_signed_transaction(
        self, transaction: RawTransaction
    ) -> SignedTransaction:
        return SignedTransaction(transaction, self.sign_transaction(transaction))


class Test(unittest.TestCase):
    MNEMONIC = " ".join(["abandon"] * 11 + ["about"])

    def test_from_mnemonic_is_deterministic(self):
        first = Account.from_mnemonic(self.MNEMONIC)
        second = Account.from_mnemonic(self.MNEMONIC)
        self.assertEqual(first, second)
        self.assertEqual(first.address(), second.address())
        self.assertEqual(first.auth_key(), str(first.address()))

    def test_seed_truncation(self):
        seed = hashlib.pbkdf2_hmac(
            "sha512", self.MNEMONIC.encode(), b"mnemonic", 2048
        )
        expected = ed25519.PrivateKey.from_seed(seed[:32])
        self.assertEqual(Account.from_mnemonic(self.MNEMONIC).private_key, expected)

    def test_invalid_mnemonic(self):
        for code in [
            " ".join(["abandon"] * 12),
            "not a real phrase at all",
            "",
        ]:
            with self.assertRaises(InvalidMnemonic) as cm:
                Account.from_mnemonic(code)
            self.assertEqual(cm.exception.reason, "Incorrect mnemonic passed")

    def test_address_override(self):
        rotated = "0x" + "42" * 32
        account = Account.from_mnemonic(self.MNEMONIC, rotated)
        original = Account.from_mnemonic(self.MNEMONIC)
        self.assertEqual(str(account.address()), rotated)
        self.assertEqual(account.auth_key(), original.auth_key())
        self.assertEqual(account.public_key(), original.public_key())

    def test_generate_mnemonic(self):
        code = Account.generate_mnemonic()
        self.assertEqual(len(code.split()), 12)
        self.assertTrue(WORDLIST.check(code))
        Account.from_mnemonic(code)

    def test_load_key(self):
        account = Account.load_key(
            "0x4e5e3be60f4bbd5e98d086d932f3ce779ff4b58da99bf9e5241ae1212a29e5fe"
        )
        self.assertEqual(
            account.address(), AccountAddress.from_key(account.public_key())
        )
        with self.assertRaises(InvalidArgument):
            Account.load_key("0x1234")

    def test_sign(self):
        account = Account.from_mnemonic(self.MNEMONIC)
        signature = account.sign(b"message")
        self.assertTrue(account.public_key().verify(b"message", signature))


if __name__ == "__main__":
    unittest.main()
