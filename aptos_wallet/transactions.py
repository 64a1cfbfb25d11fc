# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Raw and signed transaction envelopes.

A :class:`RawTransaction` is serialized with BCS in this field order::

    sender | sequence_number | payload | max_gas_amount | gas_unit_price
           | expiration_timestamp_secs | chain_id

and signed over ``sha3_256(b"APTOS::RawTransaction") || bcs(raw_transaction)``.
Ed25519 signing is deterministic, so signing the same envelope with the same
key always produces the same bytes.
"""

from __future__ import annotations

import hashlib
import typing
import unittest
from typing import Any, Callable, List, Optional

from . import ed25519
from .account_address import AccountAddress
from .authenticator import AccountAuthenticator, Authenticator, Ed25519Authenticator
from .bcs import Serializer, encoder
from .errors import InvalidArgument, SigningError
from .hex_string import HexString
from .type_tag import TypeTag


class TransactionArgument:
    """An entry function argument paired with the BCS encoder for its Move type."""

    value: Any
    encoder: Callable[[Serializer, Any], None]

    def __init__(self, value: Any, encoder: Callable[[Serializer, Any], None]):
        self.value = value
        self.encoder = encoder

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransactionArgument):
            return NotImplemented
        return self.encode() == other.encode()

    def __repr__(self) -> str:
        return f"TransactionArgument({self.json()!r})"

    def encode(self) -> bytes:
        return encoder(self.value, self.encoder)

    def json(self) -> Any:
        return _render(self.value)

    @staticmethod
    def infer(value: Any) -> TransactionArgument:
        """Pick an encoder from the Python type of ``value``; ints encode as u64."""
        return TransactionArgument(value, _infer_encoder(value))


def _infer_encoder(value: Any) -> Callable[[Serializer, Any], None]:
    if isinstance(value, bool):
        return Serializer.bool
    if isinstance(value, int):
        return Serializer.u64
    if isinstance(value, str):
        return Serializer.str
    if isinstance(value, (bytes, bytearray)):
        return Serializer.to_bytes
    if isinstance(value, AccountAddress):
        return Serializer.struct
    if isinstance(value, (list, tuple)):
        if not value:
            # An empty vector encodes the same for every element type.
            return Serializer.sequence_serializer(Serializer.u8)
        return Serializer.sequence_serializer(_infer_encoder(value[0]))
    raise InvalidArgument(
        f"Cannot infer a Move type for {type(value).__name__}", "arguments"
    )


def _render(value: Any) -> Any:
    # JSON wire form: integers travel as decimal strings.
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, AccountAddress):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return HexString.from_bytes(bytes(value)).hex()
    if isinstance(value, (list, tuple)):
        return [_render(item) for item in value]
    return value


class ModuleId:
    address: AccountAddress
    name: str

    def __init__(self, address: AccountAddress, name: str):
        self.address = address
        self.name = name

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModuleId):
            return NotImplemented
        return self.address == other.address and self.name == other.name

    def __str__(self) -> str:
        return f"{self.address.short()}::{self.name}"

    @staticmethod
    def from_str(module_id: str) -> ModuleId:
        parts = module_id.split("::")
        if len(parts) != 2 or not all(parts):
            raise InvalidArgument(f"Invalid module id: {module_id}", "function")
        return ModuleId(AccountAddress.from_str_relaxed(parts[0]), parts[1])

    def serialize(self, serializer: Serializer):
        self.address.serialize(serializer)
        serializer.str(self.name)


class EntryFunction:
    module: ModuleId
    function: str
    ty_args: List[TypeTag]
    args: List[TransactionArgument]

    def __init__(
        self,
        module: ModuleId,
        function: str,
        ty_args: List[TypeTag],
        args: List[TransactionArgument],
    ):
        self.module = module
        self.function = function
        self.ty_args = ty_args
        self.args = args

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EntryFunction):
            return NotImplemented
        return (
            self.module == other.module
            and self.function == other.function
            and self.ty_args == other.ty_args
            and self.args == other.args
        )

    def __str__(self) -> str:
        return f"{self.module}::{self.function}"

    @staticmethod
    def natural(
        module: str,
        function: str,
        ty_args: List[TypeTag],
        args: List[TransactionArgument],
    ) -> EntryFunction:
        return EntryFunction(ModuleId.from_str(module), function, ty_args, args)

    def to_json(self) -> typing.Dict[str, Any]:
        return {
            "type": "entry_function_payload",
            "function": str(self),
            "type_arguments": [str(tag) for tag in self.ty_args],
            "arguments": [arg.json() for arg in self.args],
        }

    def serialize(self, serializer: Serializer):
        self.module.serialize(serializer)
        serializer.str(self.function)
        serializer.sequence(self.ty_args, Serializer.struct)
        serializer.sequence([arg.encode() for arg in self.args], Serializer.to_bytes)


class TransactionPayload:
    SCRIPT: int = 0
    MODULE_BUNDLE: int = 1
    ENTRY_FUNCTION: int = 2

    variant: int
    value: EntryFunction

    def __init__(self, payload: EntryFunction):
        if not isinstance(payload, EntryFunction):
            raise TypeError("Only entry function payloads are supported")
        self.variant = TransactionPayload.ENTRY_FUNCTION
        self.value = payload

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransactionPayload):
            return NotImplemented
        return self.variant == other.variant and self.value == other.value

    def __str__(self) -> str:
        return str(self.value)

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        self.value.serialize(serializer)


class RawTransaction:
    sender: Optional[AccountAddress]
    sequence_number: Optional[int]
    payload: Optional[TransactionPayload]
    max_gas_amount: Optional[int]
    gas_unit_price: Optional[int]
    expiration_timestamp_secs: Optional[int]
    chain_id: Optional[int]

    REQUIRED_FIELDS = (
        "sender",
        "sequence_number",
        "payload",
        "max_gas_amount",
        "gas_unit_price",
        "expiration_timestamp_secs",
        "chain_id",
    )

    def __init__(
        self,
        sender: Optional[AccountAddress],
        sequence_number: Optional[int],
        payload: Optional[TransactionPayload],
        max_gas_amount: Optional[int],
        gas_unit_price: Optional[int],
        expiration_timestamp_secs: Optional[int],
        chain_id: Optional[int],
    ):
        self.sender = sender
        self.sequence_number = sequence_number
        self.payload = payload
        self.max_gas_amount = max_gas_amount
        self.gas_unit_price = gas_unit_price
        self.expiration_timestamp_secs = expiration_timestamp_secs
        self.chain_id = chain_id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RawTransaction):
            return NotImplemented
        return all(
            getattr(self, field) == getattr(other, field)
            for field in RawTransaction.REQUIRED_FIELDS
        )

    def __str__(self):
        return f"""RawTransaction {{
    sender: {self.sender},
    sequence_number: {self.sequence_number},
    payload: {self.payload},
    max_gas_amount: {self.max_gas_amount},
    gas_unit_price: {self.gas_unit_price},
    expiration_timestamp_secs: {self.expiration_timestamp_secs},
    chain_id: {self.chain_id},
}}"""

    @staticmethod
    def prehash() -> bytes:
        hasher = hashlib.sha3_256()
        hasher.update(b"APTOS::RawTransaction")
        return hasher.digest()

    def missing_fields(self) -> List[str]:
        return [
            field
            for field in RawTransaction.REQUIRED_FIELDS
            if getattr(self, field) is None
        ]

    def keyed(self) -> bytes:
        """The exact bytes a signer signs."""
        missing = self.missing_fields()
        if missing:
            raise SigningError(f"Transaction is missing {', '.join(missing)}")

        ser = Serializer()
        self.serialize(ser)
        return RawTransaction.prehash() + ser.output()

    def sign(self, key: ed25519.PrivateKey) -> AccountAuthenticator:
        signature = key.sign(self.keyed())
        return AccountAuthenticator(Ed25519Authenticator(key.public_key(), signature))

    def verify(self, key: ed25519.PublicKey, signature: ed25519.Signature) -> bool:
        return key.verify(self.keyed(), signature)

    def serialize(self, serializer: Serializer):
        serializer.struct(self.sender)
        serializer.u64(self.sequence_number)
        serializer.struct(self.payload)
        serializer.u64(self.max_gas_amount)
        serializer.u64(self.gas_unit_price)
        serializer.u64(self.expiration_timestamp_secs)
        serializer.u8(self.chain_id)


class SignedTransaction:
    transaction: RawTransaction
    authenticator: Authenticator

    def __init__(
        self,
        transaction: RawTransaction,
        authenticator: typing.Union[AccountAuthenticator, Authenticator],
    ):
        self.transaction = transaction
        if isinstance(authenticator, AccountAuthenticator):
            authenticator = Authenticator(authenticator.authenticator)
        self.authenticator = authenticator

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SignedTransaction):
            return NotImplemented
        return (
            self.transaction == other.transaction
            and self.authenticator == other.authenticator
        )

    def __str__(self) -> str:
        return f"Transaction: {self.transaction}Authenticator: {self.authenticator}"

    def bytes(self) -> bytes:
        ser = Serializer()
        ser.struct(self)
        return ser.output()

    def verify(self) -> bool:
        return self.authenticator.verify(self.transaction.keyed())

    def serialize(self, serializer: Serializer):
        self.transaction.serialize(serializer)
        self.authenticator.serialize(serializer)


class Test(unittest.TestCase):
    SENDER_KEY = "9bf49a6a0755f953811fce125f2683d50429c3bb49e074147e0089a52eae155f"
    RECIPIENT = "0xde0f0b2b1d04f7c9efc4bbd1e6fd0e6d2f5e6f7d8c9b0a1f2e3d4c5b6a798071"

    def transfer(self) -> TransactionPayload:
        return TransactionPayload(
            EntryFunction.natural(
                "0x1::aptos_account",
                "transfer",
                [],
                [
                    TransactionArgument(
                        AccountAddress.from_str_relaxed(self.RECIPIENT),
                        Serializer.struct,
                    ),
                    TransactionArgument(100, Serializer.u64),
                ],
            )
        )

    def raw_transaction(self) -> RawTransaction:
        private_key = ed25519.PrivateKey.from_str(self.SENDER_KEY)
        return RawTransaction(
            AccountAddress.from_key(private_key.public_key()),
            7,
            self.transfer(),
            2000,
            100,
            18446744073709551615,
            4,
        )

    def test_entry_function_encoding(self):
        ser = Serializer()
        self.transfer().serialize(ser)
        recipient = AccountAddress.from_str_relaxed(self.RECIPIENT).address
        expected = (
            b"\x02"
            + bytes(31)
            + b"\x01"
            + b"\x0daptos_account"
            + b"\x08transfer"
            + b"\x00"
            + b"\x02"
            + b"\x20"
            + recipient
            + b"\x08"
            + (100).to_bytes(8, "little")
        )
        self.assertEqual(ser.output(), expected)

    def test_raw_transaction_field_order(self):
        raw = self.raw_transaction()
        ser = Serializer()
        raw.serialize(ser)
        payload = Serializer()
        raw.payload.serialize(payload)
        expected = (
            raw.sender.address
            + (7).to_bytes(8, "little")
            + payload.output()
            + (2000).to_bytes(8, "little")
            + (100).to_bytes(8, "little")
            + b"\xff" * 8
            + b"\x04"
        )
        self.assertEqual(ser.output(), expected)
        prefix = hashlib.sha3_256(b"APTOS::RawTransaction").digest()
        self.assertEqual(raw.keyed()[:32], prefix)

    def test_signing_is_deterministic(self):
        private_key = ed25519.PrivateKey.from_str(self.SENDER_KEY)
        raw = self.raw_transaction()
        first = SignedTransaction(raw, raw.sign(private_key))
        second = SignedTransaction(raw, self.raw_transaction().sign(private_key))
        self.assertEqual(first.bytes(), second.bytes())
        self.assertTrue(first.verify())

    def test_signing_requires_all_fields(self):
        raw = self.raw_transaction()
        raw.chain_id = None
        with self.assertRaises(SigningError) as cm:
            raw.sign(ed25519.PrivateKey.from_str(self.SENDER_KEY))
        self.assertIn("chain_id", cm.exception.reason)

    def test_json_rendering(self):
        payload = self.transfer().value.to_json()
        self.assertEqual(payload["function"], "0x1::aptos_account::transfer")
        self.assertEqual(
            payload["arguments"],
            [str(AccountAddress.from_str_relaxed(self.RECIPIENT)), "100"],
        )

    def test_infer(self):
        self.assertEqual(
            TransactionArgument.infer(5).encode(), encoder(5, Serializer.u64)
        )
        self.assertEqual(TransactionArgument.infer("ab").encode(), b"\x02ab")
        self.assertEqual(TransactionArgument.infer([True]).encode(), b"\x01\x01")
        self.assertEqual(TransactionArgument.infer([]).encode(), b"\x00")
        with self.assertRaises(InvalidArgument):
            TransactionArgument.infer(1.5)


if __name__ == "__main__":
    unittest.main()
