# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Canonical hex text for byte buffers.

Node APIs and wallets pass keys, addresses and hashes around as ``0x`` prefixed
lowercase hex. :class:`HexString` accepts either form on input and always
renders the prefixed, even-length form, so that converting bytes to text and
back is lossless::

    HexString.from_bytes(b"\\x00w\\x11").hex()    # "0x007711"
    HexString("007711").no_prefix()               # "007711"
    HexString("0x007711").to_short_string()       # "0x7711"
"""

from __future__ import annotations

import string
import unittest
from typing import Union

from .errors import InvalidArgument


class HexString:
    _hex: str

    def __init__(self, value: str):
        if value[0:2] in ("0x", "0X"):
            value = value[2:]
        value = value.lower()
        if len(value) % 2 == 1:
            value = "0" + value
        if any(c not in string.hexdigits for c in value):
            raise InvalidArgument(f"Invalid hex string: {value}", "hex")
        self._hex = f"0x{value}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HexString):
            return NotImplemented
        return self._hex == other._hex

    def __hash__(self) -> int:
        return hash(self._hex)

    def __str__(self) -> str:
        return self._hex

    def __repr__(self) -> str:
        return f"HexString({self._hex})"

    @staticmethod
    def from_bytes(value: bytes) -> HexString:
        return HexString(value.hex())

    @staticmethod
    def ensure(value: Union[str, HexString]) -> HexString:
        if isinstance(value, HexString):
            return value
        return HexString(value)

    def hex(self) -> str:
        return self._hex

    def no_prefix(self) -> str:
        return self._hex[2:]

    def to_short_string(self) -> str:
        """Render without leading zeros, ``0x0`` for an all-zero buffer."""
        trimmed = self.no_prefix().lstrip("0")
        return f"0x{trimmed or '0'}"

    def to_bytes(self) -> bytes:
        return bytes.fromhex(self.no_prefix())


class Test(unittest.TestCase):
    WITHOUT_PREFIX = "007711b4d0"
    WITH_PREFIX = f"0x{WITHOUT_PREFIX}"

    def validate(self, hex_string: HexString):
        self.assertEqual(hex_string.hex(), self.WITH_PREFIX)
        self.assertEqual(str(hex_string), self.WITH_PREFIX)
        self.assertEqual(f"{hex_string}", self.WITH_PREFIX)
        self.assertEqual(hex_string.no_prefix(), self.WITHOUT_PREFIX)

    def test_from_to_bytes(self):
        hs = HexString(self.WITH_PREFIX)
        self.assertEqual(hs.to_bytes().hex(), self.WITHOUT_PREFIX)
        self.assertEqual(HexString.from_bytes(hs.to_bytes()).hex(), self.WITH_PREFIX)

    def test_accepts_input_without_prefix(self):
        self.validate(HexString(self.WITHOUT_PREFIX))

    def test_accepts_input_with_prefix(self):
        self.validate(HexString(self.WITH_PREFIX))

    def test_ensure(self):
        self.validate(HexString.ensure(self.WITHOUT_PREFIX))
        self.validate(HexString.ensure(HexString(self.WITH_PREFIX)))

    def test_short_string(self):
        self.assertEqual(HexString(self.WITHOUT_PREFIX).to_short_string(), "0x7711b4d0")
        full = "0x2185b82cef9bc46249ff2dbc56c265f6a0e3bdb7b9498cc45e4f6e429530fdc0"
        self.assertEqual(HexString(full).to_short_string(), full)
        self.assertEqual(HexString("0x0000").to_short_string(), "0x0")

    def test_canonical_form(self):
        hs = HexString("0xABC")
        self.assertEqual(hs.hex(), "0x0abc")
        self.assertEqual(len(hs.no_prefix()) % 2, 0)
        self.assertEqual(HexString.from_bytes(b"").hex(), "0x")

    def test_round_trip(self):
        for value in [b"", b"\x00", b"\x00\x00\x01", bytes(range(256))]:
            rendered = HexString.from_bytes(value).hex()
            self.assertEqual(HexString(rendered).to_bytes(), value)
            self.assertEqual(
                HexString(HexString.from_bytes(value).no_prefix()).to_bytes(), value
            )

    def test_rejects_garbage(self):
        with self.assertRaises(InvalidArgument):
            HexString("0xzz")


if __name__ == "__main__":
    unittest.main()
