# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
32-byte account addresses and authentication key derivation.

A single-key Ed25519 account's authentication key is
``sha3_256(public_key || 0x00)``. A fresh account's address equals its
authentication key; after an on-chain key rotation the two differ, which is
why addresses are parsed and carried independently of keys.
"""

from __future__ import annotations

import hashlib
import unittest
from typing import Union

from . import ed25519
from .bcs import Serializer
from .errors import InvalidArgument
from .hex_string import HexString


class AuthKeyScheme:
    Ed25519: bytes = b"\x00"


class ParseAddressError(InvalidArgument):
    def __init__(self, reason: str):
        super().__init__(reason, "address")


class AccountAddress:
    address: bytes
    LENGTH: int = 32

    def __init__(self, address: bytes):
        if len(address) != AccountAddress.LENGTH:
            raise ParseAddressError("Expected address of length 32")
        self.address = address

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AccountAddress):
            return NotImplemented
        return self.address == other.address

    def __hash__(self) -> int:
        return hash(self.address)

    def __str__(self):
        return HexString.from_bytes(self.address).hex()

    def __repr__(self):
        return self.__str__()

    def short(self) -> str:
        return HexString.from_bytes(self.address).to_short_string()

    def no_prefix(self) -> str:
        return self.address.hex()

    @staticmethod
    def from_str_relaxed(address: str) -> AccountAddress:
        """Parse ``0x1``, ``1`` or a full 64 character address, prefixed or not."""
        if not isinstance(address, str):
            raise ParseAddressError(
                f"Expected a hex string, got {type(address).__name__}"
            )

        addr = address[2:] if address[0:2] == "0x" else address
        if len(addr) < 1:
            raise ParseAddressError(
                "Hex string is too short, must be 1 to 64 chars long, excluding the "
                "leading 0x."
            )
        if len(addr) > AccountAddress.LENGTH * 2:
            raise ParseAddressError(
                "Hex string is too long, must be 1 to 64 chars long, excluding the "
                "leading 0x."
            )

        addr = addr.rjust(AccountAddress.LENGTH * 2, "0")
        try:
            return AccountAddress(bytes.fromhex(addr))
        except ValueError as e:
            raise ParseAddressError(f"Invalid hex in address {address}") from e

    @staticmethod
    def ensure(address: Union[str, AccountAddress]) -> AccountAddress:
        if isinstance(address, AccountAddress):
            return address
        return AccountAddress.from_str_relaxed(address)

    @staticmethod
    def from_key(key: ed25519.PublicKey) -> AccountAddress:
        hasher = hashlib.sha3_256()
        hasher.update(key.to_crypto_bytes())
        hasher.update(AuthKeyScheme.Ed25519)
        return AccountAddress(hasher.digest())

    def serialize(self, serializer: Serializer):
        serializer.fixed_bytes(self.address)


class Test(unittest.TestCase):
    LONG = "0xca843279e3427144cead5e4d5999a3d0ca843279e3427144cead5e4d5999a3d0"

    def test_from_str_relaxed(self):
        self.assertEqual(str(AccountAddress.from_str_relaxed(self.LONG)), self.LONG)
        self.assertEqual(
            AccountAddress.from_str_relaxed(self.LONG[2:]),
            AccountAddress.from_str_relaxed(self.LONG),
        )
        self.assertEqual(
            AccountAddress.from_str_relaxed("0xf").address, bytes([0] * 31 + [15])
        )
        self.assertEqual(
            AccountAddress.from_str_relaxed("0x0f"),
            AccountAddress.from_str_relaxed("f"),
        )

    def test_rendering(self):
        address = AccountAddress.from_str_relaxed("0x10")
        self.assertEqual(str(address), "0x" + "0" * 62 + "10")
        self.assertEqual(address.short(), "0x10")
        self.assertEqual(address.no_prefix(), "0" * 62 + "10")

    def test_invalid(self):
        for value in ["", "0x", "0xzz", "0x" + "1" * 65]:
            with self.assertRaises(ParseAddressError):
                AccountAddress.from_str_relaxed(value)
        with self.assertRaises(InvalidArgument):
            AccountAddress(b"\x01")

    def test_from_key(self):
        public_key = ed25519.PrivateKey.from_str(
            "4e5e3be60f4bbd5e98d086d932f3ce779ff4b58da99bf9e5241ae1212a29e5fe"
        ).public_key()
        expected = hashlib.sha3_256(public_key.to_crypto_bytes() + b"\x00").digest()
        self.assertEqual(AccountAddress.from_key(public_key).address, expected)

    def test_hashable(self):
        first = AccountAddress.from_str_relaxed("0x1")
        second = AccountAddress.from_str_relaxed("1")
        self.assertEqual(len({first, second}), 1)

    def test_serialization(self):
        address = AccountAddress.from_str_relaxed(self.LONG)
        ser = Serializer()
        address.serialize(ser)
        self.assertEqual(ser.output(), address.address)
        self.assertEqual(len(ser.output()), AccountAddress.LENGTH)


if __name__ == "__main__":
    unittest.main()
