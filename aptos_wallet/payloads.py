# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Typed transaction payloads and the envelope builder.

Each payload is an immutable dataclass that validates its own arguments when
constructed, so a payload that exists is always well formed. The builder
combines a payload with a sender, a sequence number, gas parameters and a
chain id into a :class:`~aptos_wallet.transactions.RawTransaction` without
touching the network.
"""

from __future__ import annotations

import time
import unittest
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple, Union

from .account_address import AccountAddress
from .bcs import MAX_U8, MAX_U64, Serializer
from .errors import InvalidArgument
from .transactions import (
    EntryFunction,
    RawTransaction,
    TransactionArgument,
    TransactionPayload,
)
from .type_tag import TypeTag

MAX_NAME_LENGTH = 128
MAX_URI_LENGTH = 512
# Fixed by the token standard for tokens created through this library.
ROYALTY_POINTS_DENOMINATOR = 1_000_000

Address = Union[str, AccountAddress]


def _address(value: Address, argument: str) -> AccountAddress:
    if isinstance(value, AccountAddress):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{argument} must be a non-empty address", argument)
    try:
        return AccountAddress.from_str_relaxed(value.strip())
    except InvalidArgument as e:
        raise InvalidArgument(f"{argument}: {e.reason}", argument) from e


def _u64(value: Any, argument: str, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{argument} must be an integer", argument)
    if value < minimum or value > MAX_U64:
        raise InvalidArgument(
            f"{argument} must be between {minimum} and {MAX_U64}, got {value}", argument
        )
    return value


def _text(value: Any, argument: str, limit: int, allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        raise InvalidArgument(f"{argument} must be a string", argument)
    if not allow_empty and not value:
        raise InvalidArgument(f"{argument} must not be empty", argument)
    if len(value.encode()) > limit:
        raise InvalidArgument(f"{argument} is longer than {limit} bytes", argument)
    return value


class Payload:
    """Shared behavior of every payload variant."""

    FUNCTION: str = ""

    def function(self) -> str:
        return self.FUNCTION

    def type_arguments(self) -> List[TypeTag]:
        return []

    def transaction_arguments(self) -> List[TransactionArgument]:
        raise NotImplementedError

    def arguments(self) -> List[Any]:
        return [arg.json() for arg in self.transaction_arguments()]

    def to_payload(self) -> TransactionPayload:
        module, _, function = self.function().rpartition("::")
        return TransactionPayload(
            EntryFunction.natural(
                module, function, self.type_arguments(), self.transaction_arguments()
            )
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "type": "entry_function_payload",
            "function": self.function(),
            "type_arguments": [str(tag) for tag in self.type_arguments()],
            "arguments": self.arguments(),
        }


@dataclass(frozen=True)
class Transfer(Payload):
    recipient: AccountAddress
    amount: int

    FUNCTION = "0x1::aptos_account::transfer"

    def __post_init__(self):
        object.__setattr__(self, "recipient", _address(self.recipient, "recipient"))
        _u64(self.amount, "amount")

    def transaction_arguments(self) -> List[TransactionArgument]:
        return [
            TransactionArgument(self.recipient, Serializer.struct),
            TransactionArgument(self.amount, Serializer.u64),
        ]


@dataclass(frozen=True)
class CreateCollection(Payload):
    name: str
    description: str
    uri: str
    maximum: int = MAX_U64

    FUNCTION = "0x3::token::create_collection_script"

    def __post_init__(self):
        _text(self.name, "name", MAX_NAME_LENGTH)
        _text(self.description, "description", MAX_URI_LENGTH, allow_empty=True)
        _text(self.uri, "uri", MAX_URI_LENGTH, allow_empty=True)
        _u64(self.maximum, "maximum")

    def transaction_arguments(self) -> List[TransactionArgument]:
        return [
            TransactionArgument(self.name, Serializer.str),
            TransactionArgument(self.description, Serializer.str),
            TransactionArgument(self.uri, Serializer.str),
            TransactionArgument(self.maximum, Serializer.u64),
            # description, uri and maximum are immutable
            TransactionArgument(
                [False, False, False], Serializer.sequence_serializer(Serializer.bool)
            ),
        ]


@dataclass(frozen=True)
class CreateToken(Payload):
    creator: AccountAddress
    collection_name: str
    name: str
    description: str
    supply: int
    uri: str
    royalty_points_per_million: int = 0

    FUNCTION = "0x3::token::create_token_script"

    def __post_init__(self):
        object.__setattr__(self, "creator", _address(self.creator, "creator"))
        _text(self.collection_name, "collection_name", MAX_NAME_LENGTH)
        _text(self.name, "name", MAX_NAME_LENGTH)
        _text(self.description, "description", MAX_URI_LENGTH, allow_empty=True)
        _u64(self.supply, "supply", minimum=1)
        _text(self.uri, "uri", MAX_URI_LENGTH, allow_empty=True)
        _u64(self.royalty_points_per_million, "royalty_points_per_million")
        if self.royalty_points_per_million > ROYALTY_POINTS_DENOMINATOR:
            raise InvalidArgument(
                "royalty_points_per_million must not exceed the denominator",
                "royalty_points_per_million",
            )

    def transaction_arguments(self) -> List[TransactionArgument]:
        strings = Serializer.sequence_serializer(Serializer.str)
        return [
            TransactionArgument(self.collection_name, Serializer.str),
            TransactionArgument(self.name, Serializer.str),
            TransactionArgument(self.description, Serializer.str),
            TransactionArgument(self.supply, Serializer.u64),
            TransactionArgument(self.supply, Serializer.u64),
            TransactionArgument(self.uri, Serializer.str),
            TransactionArgument(self.creator, Serializer.struct),
            TransactionArgument(ROYALTY_POINTS_DENOMINATOR, Serializer.u64),
            TransactionArgument(self.royalty_points_per_million, Serializer.u64),
            TransactionArgument(
                [False] * 5, Serializer.sequence_serializer(Serializer.bool)
            ),
            # property keys, values and types
            TransactionArgument([], strings),
            TransactionArgument(
                [], Serializer.sequence_serializer(Serializer.to_bytes)
            ),
            TransactionArgument([], strings),
        ]


@dataclass(frozen=True)
class OfferToken(Payload):
    receiver: AccountAddress
    creator: AccountAddress
    collection_name: str
    token_name: str
    amount: int
    property_version: int = 0

    FUNCTION = "0x3::token_transfers::offer_script"

    def __post_init__(self):
        object.__setattr__(self, "receiver", _address(self.receiver, "receiver"))
        object.__setattr__(self, "creator", _address(self.creator, "creator"))
        _text(self.collection_name, "collection_name", MAX_NAME_LENGTH)
        _text(self.token_name, "token_name", MAX_NAME_LENGTH)
        _u64(self.amount, "amount", minimum=1)
        _u64(self.property_version, "property_version")

    def transaction_arguments(self) -> List[TransactionArgument]:
        return [
            TransactionArgument(self.receiver, Serializer.struct),
            TransactionArgument(self.creator, Serializer.struct),
            TransactionArgument(self.collection_name, Serializer.str),
            TransactionArgument(self.token_name, Serializer.str),
            TransactionArgument(self.property_version, Serializer.u64),
            TransactionArgument(self.amount, Serializer.u64),
        ]


@dataclass(frozen=True)
class CancelOffer(Payload):
    receiver: AccountAddress
    creator: AccountAddress
    collection_name: str
    token_name: str
    property_version: int = 0

    FUNCTION = "0x3::token_transfers::cancel_offer_script"

    def __post_init__(self):
        object.__setattr__(self, "receiver", _address(self.receiver, "receiver"))
        object.__setattr__(self, "creator", _address(self.creator, "creator"))
        _text(self.collection_name, "collection_name", MAX_NAME_LENGTH)
        _text(self.token_name, "token_name", MAX_NAME_LENGTH)
        _u64(self.property_version, "property_version")

    def transaction_arguments(self) -> List[TransactionArgument]:
        return [
            TransactionArgument(self.receiver, Serializer.struct),
            TransactionArgument(self.creator, Serializer.struct),
            TransactionArgument(self.collection_name, Serializer.str),
            TransactionArgument(self.token_name, Serializer.str),
            TransactionArgument(self.property_version, Serializer.u64),
        ]


@dataclass(frozen=True)
class ClaimToken(Payload):
    sender: AccountAddress
    creator: AccountAddress
    collection_name: str
    token_name: str
    property_version: int = 0

    FUNCTION = "0x3::token_transfers::claim_script"

    def __post_init__(self):
        object.__setattr__(self, "sender", _address(self.sender, "sender"))
        object.__setattr__(self, "creator", _address(self.creator, "creator"))
        _text(self.collection_name, "collection_name", MAX_NAME_LENGTH)
        _text(self.token_name, "token_name", MAX_NAME_LENGTH)
        _u64(self.property_version, "property_version")

    def transaction_arguments(self) -> List[TransactionArgument]:
        return [
            TransactionArgument(self.sender, Serializer.struct),
            TransactionArgument(self.creator, Serializer.struct),
            TransactionArgument(self.collection_name, Serializer.str),
            TransactionArgument(self.token_name, Serializer.str),
            TransactionArgument(self.property_version, Serializer.u64),
        ]


@dataclass(frozen=True)
class GenericCall(Payload):
    """
    Any entry function, e.g. ``0x1::coin::transfer``.

    Argument types are inferred from the Python values: ``bool`` -> bool,
    ``int`` -> u64, ``str`` -> string, ``bytes`` -> vector<u8>,
    :class:`AccountAddress` -> address, lists -> vectors. Pass a prepared
    :class:`TransactionArgument` for any other Move type.
    """

    function_id: str
    args: Tuple[Any, ...] = ()
    type_args: Tuple[str, ...] = field(default=())

    def __post_init__(self):
        if not isinstance(self.function_id, str):
            raise InvalidArgument("function must be a string", "function")
        parts = self.function_id.split("::")
        if len(parts) != 3 or not all(part.strip() for part in parts):
            raise InvalidArgument(
                f"function must be address::module::name, got {self.function_id!r}",
                "function",
            )
        _address(parts[0], "function")
        object.__setattr__(self, "args", tuple(self.args))
        object.__setattr__(self, "type_args", tuple(self.type_args))
        # Fail at construction rather than at signing time.
        self.type_arguments()
        self.transaction_arguments()

    def function(self) -> str:
        return self.function_id

    def type_arguments(self) -> List[TypeTag]:
        return [TypeTag.from_str(tag) for tag in self.type_args]

    def transaction_arguments(self) -> List[TransactionArgument]:
        arguments = []
        for arg in self.args:
            if isinstance(arg, TransactionArgument):
                arguments.append(arg)
            elif isinstance(arg, int) and not isinstance(arg, bool):
                arguments.append(
                    TransactionArgument(_u64(arg, "arguments"), Serializer.u64)
                )
            else:
                arguments.append(TransactionArgument.infer(arg))
        return arguments


@dataclass(frozen=True)
class GasParams:
    max_gas_amount: int
    gas_unit_price: int

    def __post_init__(self):
        _u64(self.max_gas_amount, "max_gas_amount", minimum=1)
        _u64(self.gas_unit_price, "gas_unit_price")


class TransactionBuilder:
    """Assembles unsigned envelopes. Performs no I/O."""

    def __init__(self, config: Any):
        self.config = config

    def default_gas(self) -> GasParams:
        return GasParams(self.config.max_gas_amount, self.config.gas_unit_price)

    def build(
        self,
        sender: AccountAddress,
        sequence_number: Optional[int],
        payload: Payload,
        chain_id: int,
        gas: Optional[GasParams] = None,
        now: Optional[float] = None,
    ) -> RawTransaction:
        if sequence_number is None:
            raise InvalidArgument("sequence_number is required", "sequence_number")
        _u64(sequence_number, "sequence_number")
        if isinstance(chain_id, bool) or not isinstance(chain_id, int):
            raise InvalidArgument("chain_id must be an integer", "chain_id")
        if chain_id < 0 or chain_id > MAX_U8:
            raise InvalidArgument(f"chain_id {chain_id} is out of range", "chain_id")
        if not isinstance(payload, Payload):
            raise InvalidArgument("payload must be a Payload", "payload")

        gas = gas or self.default_gas()
        now = time.time() if now is None else now
        return RawTransaction(
            AccountAddress.ensure(sender),
            sequence_number,
            payload.to_payload(),
            gas.max_gas_amount,
            gas.gas_unit_price,
            int(now) + self.config.expiration_ttl,
            chain_id,
        )


class Test(unittest.TestCase):
    ALICE = "0x" + "a1" * 32
    BOB = "0x" + "b0" * 32

    def test_transfer(self):
        payload = Transfer(self.BOB, 1000)
        self.assertEqual(payload.function(), "0x1::aptos_account::transfer")
        self.assertEqual(payload.arguments(), [self.BOB, "1000"])
        self.assertEqual(payload.recipient, AccountAddress.from_str_relaxed(self.BOB))
        bob = AccountAddress.from_str_relaxed(self.BOB)
        self.assertEqual(payload, Transfer(bob, 1000))

    def test_transfer_validation(self):
        for recipient, amount in [
            ("", 1),
            ("0xzz", 1),
            (self.BOB, -1),
            (self.BOB, 2**64),
            (self.BOB, True),
            (self.BOB, "10"),
        ]:
            with self.assertRaises(InvalidArgument):
                Transfer(recipient, amount)

    def test_create_collection(self):
        payload = CreateCollection("AliceCollection", "Alice's", "https://aptos.dev")
        self.assertEqual(
            payload.arguments(),
            [
                "AliceCollection",
                "Alice's",
                "https://aptos.dev",
                str(MAX_U64),
                [False, False, False],
            ],
        )
        with self.assertRaises(InvalidArgument):
            CreateCollection("", "desc", "uri")
        with self.assertRaises(InvalidArgument):
            CreateCollection("x" * (MAX_NAME_LENGTH + 1), "desc", "uri")

    def test_create_token(self):
        payload = CreateToken(self.ALICE, "AliceCollection", "AliceToken", "d", 1, "u")
        arguments = payload.arguments()
        self.assertEqual(len(arguments), 13)
        self.assertEqual(arguments[3:5], ["1", "1"])
        self.assertEqual(arguments[6], self.ALICE)
        self.assertEqual(arguments[7], str(ROYALTY_POINTS_DENOMINATOR))
        self.assertEqual(arguments[9], [False] * 5)
        self.assertEqual(arguments[10:], [[], [], []])
        with self.assertRaises(InvalidArgument):
            CreateToken(self.ALICE, "AliceCollection", "AliceToken", "d", 0, "u")

    def test_offer_argument_order(self):
        payload = OfferToken(self.BOB, self.ALICE, "AliceCollection", "AliceToken", 1)
        self.assertEqual(
            payload.arguments(),
            [self.BOB, self.ALICE, "AliceCollection", "AliceToken", "0", "1"],
        )
        with self.assertRaises(InvalidArgument):
            OfferToken(self.BOB, self.ALICE, "AliceCollection", "AliceToken", 0)

    def test_claim_and_cancel(self):
        claim = ClaimToken(self.ALICE, self.ALICE, "AliceCollection", "AliceToken")
        self.assertEqual(claim.function(), "0x3::token_transfers::claim_script")
        self.assertEqual(claim.arguments()[-1], "0")
        cancel = CancelOffer(self.BOB, self.ALICE, "AliceCollection", "AliceToken")
        self.assertEqual(cancel.function(), "0x3::token_transfers::cancel_offer_script")
        self.assertEqual(len(cancel.arguments()), 5)

    def test_generic_call(self):
        bob = AccountAddress.from_str_relaxed(self.BOB)
        payload = GenericCall(
            "0x1::coin::transfer", (bob, 5), ("0x1::aptos_coin::AptosCoin",)
        )
        self.assertEqual(
            payload.to_json()["type_arguments"], ["0x1::aptos_coin::AptosCoin"]
        )
        self.assertEqual(payload.arguments(), [self.BOB, "5"])
        self.assertEqual(
            payload.to_payload(),
            TransactionPayload(
                EntryFunction.natural(
                    "0x1::coin",
                    "transfer",
                    [TypeTag.from_str("0x1::aptos_coin::AptosCoin")],
                    Transfer(bob, 5).transaction_arguments(),
                )
            ),
        )
        invalid = ["transfer", "0x1::coin", "0x1::::transfer", "zz::coin::transfer"]
        for function in invalid:
            with self.assertRaises(InvalidArgument):
                GenericCall(function)
        with self.assertRaises(InvalidArgument):
            GenericCall("0x1::coin::transfer", (-5,))
        with self.assertRaises(InvalidArgument):
            GenericCall("0x1::coin::transfer", (1.5,))

    def test_builder(self):
        config = SimpleNamespace(
            max_gas_amount=2000, gas_unit_price=100, expiration_ttl=600
        )
        builder = TransactionBuilder(config)
        raw = builder.build(self.ALICE, 3, Transfer(self.BOB, 10), 4, now=1000.5)
        self.assertEqual(raw.sender, AccountAddress.from_str_relaxed(self.ALICE))
        self.assertEqual(raw.sequence_number, 3)
        self.assertEqual(raw.expiration_timestamp_secs, 1600)
        self.assertEqual(raw.max_gas_amount, 2000)
        self.assertEqual(raw.chain_id, 4)
        self.assertEqual(raw.payload, Transfer(self.BOB, 10).to_payload())

        with self.assertRaises(InvalidArgument):
            builder.build(self.ALICE, None, Transfer(self.BOB, 10), 4)
        with self.assertRaises(InvalidArgument):
            builder.build(self.ALICE, -1, Transfer(self.BOB, 10), 4)
        with self.assertRaises(InvalidArgument):
            GasParams(0, 100)


if __name__ == "__main__":
    unittest.main()
