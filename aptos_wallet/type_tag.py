# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import unittest
from typing import List, Optional, Tuple, Union

from .account_address import AccountAddress
from .bcs import Serializer
from .errors import InvalidArgument


class TypeTag:
    """A Move type argument such as ``u64`` or ``0x1::aptos_coin::AptosCoin``."""

    BOOL: int = 0
    U8: int = 1
    U64: int = 2
    U128: int = 3
    ACCOUNT_ADDRESS: int = 4
    SIGNER: int = 5
    VECTOR: int = 6
    STRUCT: int = 7
    U16: int = 8
    U32: int = 9
    U256: int = 10

    PRIMITIVES = {
        "bool": BOOL,
        "u8": U8,
        "u16": U16,
        "u32": U32,
        "u64": U64,
        "u128": U128,
        "u256": U256,
        "address": ACCOUNT_ADDRESS,
        "signer": SIGNER,
    }

    variant: int
    value: Optional[Union[TypeTag, StructTag]]

    def __init__(self, variant: int, value: Optional[Union[TypeTag, StructTag]] = None):
        self.variant = variant
        self.value = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypeTag):
            return NotImplemented
        return self.variant == other.variant and self.value == other.value

    def __str__(self):
        if self.variant == TypeTag.VECTOR:
            return f"vector<{self.value}>"
        if self.variant == TypeTag.STRUCT:
            return str(self.value)
        for name, variant in TypeTag.PRIMITIVES.items():
            if variant == self.variant:
                return name
        raise ValueError(f"Unknown type tag variant {self.variant}")

    def __repr__(self):
        return self.__str__()

    @staticmethod
    def struct(tag: StructTag) -> TypeTag:
        return TypeTag(TypeTag.STRUCT, tag)

    @staticmethod
    def vector(inner: TypeTag) -> TypeTag:
        return TypeTag(TypeTag.VECTOR, inner)

    @staticmethod
    def from_str(type_tag: str) -> TypeTag:
        tag, index = _parse(type_tag, 0)
        if type_tag[index:].strip():
            raise InvalidArgument(
                f"Unexpected trailing input in type {type_tag}", "type"
            )
        return tag

    def serialize(self, serializer: Serializer):
        serializer.uleb128(self.variant)
        if self.value is not None:
            serializer.struct(self.value)


class StructTag:
    address: AccountAddress
    module: str
    name: str
    type_args: List[TypeTag]

    def __init__(
        self,
        address: AccountAddress,
        module: str,
        name: str,
        type_args: Optional[List[TypeTag]] = None,
    ):
        self.address = address
        self.module = module
        self.name = name
        self.type_args = type_args or []

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StructTag):
            return NotImplemented
        return (
            self.address == other.address
            and self.module == other.module
            and self.name == other.name
            and self.type_args == other.type_args
        )

    def __str__(self) -> str:
        value = f"{self.address.short()}::{self.module}::{self.name}"
        if self.type_args:
            value += "<" + ", ".join(str(arg) for arg in self.type_args) + ">"
        return value

    @staticmethod
    def from_str(type_tag: str) -> StructTag:
        tag = TypeTag.from_str(type_tag)
        if tag.variant != TypeTag.STRUCT:
            raise InvalidArgument(f"{type_tag} is not a struct type", "type")
        return tag.value  # type: ignore[return-value]

    def serialize(self, serializer: Serializer):
        self.address.serialize(serializer)
        serializer.str(self.module)
        serializer.str(self.name)
        serializer.sequence(self.type_args, Serializer.struct)


def _skip_spaces(text: str, index: int) -> int:
    while index < len(text) and text[index] == " ":
        index += 1
    return index


def _parse(text: str, index: int) -> Tuple[TypeTag, int]:
    index = _skip_spaces(text, index)
    start = index
    while index < len(text) and text[index] not in "<>, ":
        index += 1
    name = text[start:index]
    index = _skip_spaces(text, index)
    has_args = index < len(text) and text[index] == "<"

    if name == "vector":
        if not has_args:
            raise InvalidArgument(f"vector without element type in {text}", "type")
        inner, index = _parse(text, index + 1)
        index = _expect(text, _skip_spaces(text, index), ">")
        return TypeTag.vector(inner), index

    if name in TypeTag.PRIMITIVES:
        return TypeTag(TypeTag.PRIMITIVES[name]), index

    parts = name.split("::")
    if len(parts) != 3 or not all(parts):
        raise InvalidArgument(f"Invalid type {name!r} in {text}", "type")

    type_args: List[TypeTag] = []
    if has_args:
        index += 1
        while True:
            arg, index = _parse(text, index)
            type_args.append(arg)
            index = _skip_spaces(text, index)
            if index < len(text) and text[index] == ",":
                index += 1
                continue
            index = _expect(text, index, ">")
            break

    address = AccountAddress.from_str_relaxed(parts[0])
    return TypeTag.struct(StructTag(address, parts[1], parts[2], type_args)), index


def _expect(text: str, index: int, token: str) -> int:
    if index >= len(text) or text[index] != token:
        raise InvalidArgument(
            f"Expected {token!r} at position {index} in {text}", "type"
        )
    return index + 1


class Test(unittest.TestCase):
    def test_nested_structs(self):
        composite = "0x0::l0::L0<0x1::l10::L10<0x2::l20::L20>, 0x1::l11::L11>"
        derived = StructTag.from_str(composite)
        self.assertEqual(composite, f"{derived}")

    def test_struct_encoding(self):
        ser = Serializer()
        TypeTag.from_str("0x1::aptos_coin::AptosCoin").serialize(ser)
        self.assertEqual(
            ser.output(),
            b"\x07"
            + b"\x00" * 31
            + b"\x01"
            + b"\x0aaptos_coin"
            + b"\x09AptosCoin"
            + b"\x00",
        )

    def test_primitives_and_vectors(self):
        self.assertEqual(str(TypeTag.from_str("u64")), "u64")
        nested = "vector<vector<u8>>"
        self.assertEqual(str(TypeTag.from_str(nested)), nested)
        self.assertEqual(
            str(TypeTag.from_str("vector<0x1::string::String>")),
            "vector<0x1::string::String>",
        )

    def test_serialization(self):
        ser = Serializer()
        TypeTag.from_str("vector<u8>").serialize(ser)
        self.assertEqual(ser.output(), bytes([TypeTag.VECTOR, TypeTag.U8]))

        ser = Serializer()
        TypeTag.from_str("0x1::aptos_coin::AptosCoin").serialize(ser)
        expected = (
            bytes([TypeTag.STRUCT])
            + bytes(31)
            + b"\x01"
            + b"\x0aaptos_coin"
            + b"\x09AptosCoin"
            + b"\x00"
        )
        self.assertEqual(ser.output(), expected)

    def test_invalid(self):
        for value in ["0x1::coin", "vector", "vector<u8", "u64 u8", "0x1::a::B<u8"]:
            with self.assertRaises(InvalidArgument):
                TypeTag.from_str(value)


if __name__ == "__main__":
    unittest.main()
