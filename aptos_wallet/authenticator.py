# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import typing
import unittest

from . import ed25519
from .bcs import Serializer


class Authenticator:
    """Transaction level authenticator. Only single-signer Ed25519 is supported."""

    ED25519: int = 0

    variant: int
    authenticator: typing.Any

    def __init__(self, authenticator: typing.Any):
        if isinstance(authenticator, Ed25519Authenticator):
            self.variant = Authenticator.ED25519
        else:
            raise TypeError(
                f"Unsupported authenticator: {type(authenticator).__name__}"
            )
        self.authenticator = authenticator

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Authenticator):
            return NotImplemented
        return (
            self.variant == other.variant and self.authenticator == other.authenticator
        )

    def __str__(self) -> str:
        return self.authenticator.__str__()

    def verify(self, data: bytes) -> bool:
        return self.authenticator.verify(data)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        serializer.struct(self.authenticator)


class AccountAuthenticator:
    """Per-account authenticator produced by signing a raw transaction."""

    ED25519: int = 0

    variant: int
    authenticator: typing.Any

    def __init__(self, authenticator: typing.Any):
        if isinstance(authenticator, Ed25519Authenticator):
            self.variant = AccountAuthenticator.ED25519
        else:
            raise TypeError(
                f"Unsupported authenticator: {type(authenticator).__name__}"
            )
        self.authenticator = authenticator

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AccountAuthenticator):
            return NotImplemented
        return (
            self.variant == other.variant and self.authenticator == other.authenticator
        )

    def __repr__(self) -> str:
        return self.__str__()

    def __str__(self) -> str:
        return self.authenticator.__str__()

    def verify(self, data: bytes) -> bool:
        return self.authenticator.verify(data)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        serializer.struct(self.authenticator)


class Ed25519Authenticator:
    public_key: ed25519.PublicKey
    signature: ed25519.Signature

    def __init__(self, public_key: ed25519.PublicKey, signature: ed25519.Signature):
        self.public_key = public_key
        self.signature = signature

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ed25519Authenticator):
            return NotImplemented
        return self.public_key == other.public_key and self.signature == other.signature

    def __str__(self) -> str:
        return f"PublicKey: {self.public_key}, Signature: {self.signature}"

    def verify(self, data: bytes) -> bool:
        return self.public_key.verify(data, self.signature)

    def serialize(self, serializer: Serializer):
        serializer.struct(self.public_key)
        serializer.struct(self.signature)


class Test(unittest.TestCase):
    def test_serialization(self):
        private_key = ed25519.PrivateKey.random()
        signature = private_key.sign(b"payload")
        authenticator = Authenticator(
            Ed25519Authenticator(private_key.public_key(), signature)
        )

        ser = Serializer()
        authenticator.serialize(ser)
        data = ser.output()
        # variant, 32 byte key, 64 byte signature, each length prefixed
        self.assertEqual(len(data), 1 + 1 + 32 + 1 + 64)
        self.assertEqual(data[0], Authenticator.ED25519)
        self.assertEqual(data[2:34], private_key.public_key().to_crypto_bytes())
        self.assertEqual(data[35:], signature.data())
        self.assertTrue(authenticator.verify(b"payload"))

    def test_unsupported(self):
        with self.assertRaises(TypeError):
            AccountAuthenticator(object())


if __name__ == "__main__":
    unittest.main()
