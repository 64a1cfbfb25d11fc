# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Ed25519 keys and signatures, backed by PyNaCl.

Ed25519 signing is deterministic: the nonce is derived from the key and the
message, so signing the same bytes twice yields the same signature.
"""

from __future__ import annotations

import unittest
from typing import cast

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .bcs import Serializer
from .errors import InvalidArgument
from .hex_string import HexString


class PrivateKey:
    LENGTH: int = 32

    key: SigningKey

    def __init__(self, key: SigningKey):
        self.key = key

    def __eq__(self, other: object):
        if not isinstance(other, PrivateKey):
            return NotImplemented
        return self.key == other.key

    def __str__(self):
        return self.hex()

    def __repr__(self):
        # Never render key material in reprs or logs.
        return "PrivateKey(<redacted>)"

    @staticmethod
    def from_seed(seed: bytes) -> PrivateKey:
        if len(seed) != PrivateKey.LENGTH:
            raise InvalidArgument(
                f"Ed25519 seed must be {PrivateKey.LENGTH} bytes, got {len(seed)}",
                "seed",
            )
        return PrivateKey(SigningKey(seed))

    @staticmethod
    def from_str(value: str) -> PrivateKey:
        return PrivateKey.from_seed(HexString(value).to_bytes())

    @staticmethod
    def random() -> PrivateKey:
        return PrivateKey(SigningKey.generate())

    def hex(self) -> str:
        return HexString.from_bytes(self.key.encode()).hex()

    def public_key(self) -> PublicKey:
        return PublicKey(self.key.verify_key)

    def sign(self, data: bytes) -> Signature:
        return Signature(self.key.sign(data).signature)


class PublicKey:
    LENGTH: int = 32

    key: VerifyKey

    def __init__(self, key: VerifyKey):
        self.key = key

    def __eq__(self, other: object):
        if not isinstance(other, PublicKey):
            return NotImplemented
        return self.key == other.key

    def __str__(self) -> str:
        return HexString.from_bytes(self.key.encode()).hex()

    @staticmethod
    def from_str(value: str) -> PublicKey:
        return PublicKey(VerifyKey(HexString(value).to_bytes()))

    def verify(self, data: bytes, signature: Signature) -> bool:
        try:
            self.key.verify(data, cast(Signature, signature).data())
        except BadSignatureError:
            return False
        return True

    def to_crypto_bytes(self) -> bytes:
        return self.key.encode()

    def serialize(self, serializer: Serializer):
        serializer.to_bytes(self.key.encode())


class Signature:
    LENGTH: int = 64

    signature: bytes

    def __init__(self, signature: bytes):
        self.signature = signature

    def __eq__(self, other: object):
        if not isinstance(other, Signature):
            return NotImplemented
        return self.signature == other.signature

    def __str__(self) -> str:
        return HexString.from_bytes(self.signature).hex()

    def data(self) -> bytes:
        return self.signature

    def serialize(self, serializer: Serializer):
        serializer.to_bytes(self.signature)


class Test(unittest.TestCase):
    def test_sign_and_verify(self):
        in_value = b"test_message"

        private_key = PrivateKey.random()
        public_key = private_key.public_key()

        signature = private_key.sign(in_value)
        self.assertTrue(public_key.verify(in_value, signature))
        self.assertFalse(public_key.verify(b"other_message", signature))

    def test_deterministic_signature(self):
        private_key = PrivateKey.from_str(
            "0x4e5e3be60f4bbd5e98d086d932f3ce779ff4b58da99bf9e5241ae1212a29e5fe"
        )
        first = private_key.sign(b"same bytes")
        second = private_key.sign(b"same bytes")
        self.assertEqual(first, second)
        self.assertEqual(len(first.data()), Signature.LENGTH)

    def test_from_str_accepts_both_forms(self):
        raw = "4e5e3be60f4bbd5e98d086d932f3ce779ff4b58da99bf9e5241ae1212a29e5fe"
        self.assertEqual(PrivateKey.from_str(raw), PrivateKey.from_str(f"0x{raw}"))
        self.assertEqual(PrivateKey.from_str(raw).hex(), f"0x{raw}")

    def test_seed_length(self):
        with self.assertRaises(InvalidArgument):
            PrivateKey.from_seed(b"\x01" * 31)

    def test_public_key_serialization(self):
        public_key = PrivateKey.random().public_key()
        ser = Serializer()
        public_key.serialize(ser)
        self.assertEqual(ser.output()[0], PublicKey.LENGTH)
        self.assertEqual(ser.output()[1:], public_key.to_crypto_bytes())

    def test_signature_serialization(self):
        signature = PrivateKey.random().sign(b"another_message")
        ser = Serializer()
        signature.serialize(ser)
        self.assertEqual(ser.output()[0], Signature.LENGTH)
        self.assertEqual(ser.output()[1:], signature.data())

    def test_repr_hides_key(self):
        self.assertNotIn("0x", repr(PrivateKey.random()))


if __name__ == "__main__":
    unittest.main()
