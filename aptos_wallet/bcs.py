# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Binary Canonical Serialization (BCS).

The chain verifies signatures over the BCS bytes of a transaction, so field
order and integer widths here must match the node exactly. Integers are
little endian and fixed width; lengths and enum variants are ULEB128; byte
arrays and strings are length prefixed; structs are their fields in order.
"""

from __future__ import annotations

import io
import typing
import unittest

MAX_U8 = 2**8 - 1
MAX_U16 = 2**16 - 1
MAX_U32 = 2**32 - 1
MAX_U64 = 2**64 - 1
MAX_U128 = 2**128 - 1


class Serializer:
    _output: io.BytesIO

    def __init__(self):
        self._output = io.BytesIO()

    def output(self) -> bytes:
        return self._output.getvalue()

    def bool(self, value: bool):
        self._write_int(int(value), 1)

    def to_bytes(self, value: bytes):
        self.uleb128(len(value))
        self._output.write(value)

    def fixed_bytes(self, value: bytes):
        self._output.write(value)

    @staticmethod
    def sequence_serializer(
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        return lambda self, values: self.sequence(values, value_encoder)

    def sequence(
        self,
        values: typing.Sequence[typing.Any],
        value_encoder: typing.Callable[[Serializer, typing.Any], None],
    ):
        self.uleb128(len(values))
        for value in values:
            value_encoder(self, value)

    def str(self, value: str):
        self.to_bytes(value.encode())

    def struct(self, value: typing.Any):
        value.serialize(self)

    def u8(self, value: int):
        self._write_checked(value, MAX_U8, 1, "u8")

    def u16(self, value: int):
        self._write_checked(value, MAX_U16, 2, "u16")

    def u32(self, value: int):
        self._write_checked(value, MAX_U32, 4, "u32")

    def u64(self, value: int):
        self._write_checked(value, MAX_U64, 8, "u64")

    def u128(self, value: int):
        self._write_checked(value, MAX_U128, 16, "u128")

    def uleb128(self, value: int):
        if value > MAX_U32:
            raise ValueError(f"Cannot encode {value} into uleb128")

        while value >= 0x80:
            # Low 7 bits with the continuation bit set.
            self.u8((value & 0x7F) | 0x80)
            value >>= 7

        self.u8(value & 0x7F)

    def _write_checked(self, value: int, maximum: int, length: int, name: str):
        if value < 0 or value > maximum:
            raise ValueError(f"Cannot encode {value} into {name}")
        self._write_int(value, length)

    def _write_int(self, value: int, length: int):
        self._output.write(value.to_bytes(length, "little", signed=False))


def encoder(
    value: typing.Any, encoder: typing.Callable[[Serializer, typing.Any], typing.Any]
) -> bytes:
    ser = Serializer()
    encoder(ser, value)
    return ser.output()


class Test(unittest.TestCase):
    def test_integers_are_little_endian(self):
        self.assertEqual(encoder(1, Serializer.u64), b"\x01" + b"\x00" * 7)
        self.assertEqual(encoder(0x0102, Serializer.u16), b"\x02\x01")
        self.assertEqual(
            encoder(1111111111111111115, Serializer.u64),
            (1111111111111111115).to_bytes(8, "little"),
        )

    def test_uleb128(self):
        self.assertEqual(encoder(0, Serializer.uleb128), b"\x00")
        self.assertEqual(encoder(127, Serializer.uleb128), b"\x7f")
        self.assertEqual(encoder(128, Serializer.uleb128), b"\x80\x01")
        self.assertEqual(encoder(300, Serializer.uleb128), b"\xac\x02")

    def test_strings_and_bytes_are_length_prefixed(self):
        self.assertEqual(encoder("abc", Serializer.str), b"\x03abc")
        self.assertEqual(encoder(b"\xff\x00", Serializer.to_bytes), b"\x02\xff\x00")

    def test_sequence(self):
        in_value = ["a", "abc", "def", "ghi"]
        ser = Serializer()
        Serializer.sequence_serializer(Serializer.str)(ser, in_value)
        self.assertEqual(ser.output(), b"\x04\x01a\x03abc\x03def\x03ghi")

    def test_bool(self):
        bools = Serializer.sequence_serializer(Serializer.bool)
        self.assertEqual(encoder([True, False], bools), b"\x02\x01\x00")

    def test_range_checks(self):
        with self.assertRaises(ValueError):
            encoder(MAX_U64 + 1, Serializer.u64)
        with self.assertRaises(ValueError):
            encoder(-1, Serializer.u8)
        with self.assertRaises(ValueError):
            encoder(MAX_U32 + 1, Serializer.uleb128)


if __name__ == "__main__":
    unittest.main()
