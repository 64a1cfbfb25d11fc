# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

import typing

from behave import given, then, use_step_matcher

from aptos_wallet.account_address import AccountAddress

# Use regular expressions
use_step_matcher("re")


@given(r"(?P<input_type>[a-zA-Z0-9]+) (?P<input_value>\S+)")
def given_input(context: typing.Any, input_type: str, input_value: str):
    context.input = parse_value(input_type, input_value)


@then(r"the result should be (?P<expected_type>[a-zA-Z0-9]+) (?P<expected_value>\S+)")
def then_result(context: typing.Any, expected_type: str, expected_value: str):
    expected_val = parse_value(expected_type, expected_value)
    assert context.output == expected_val, (
        "Expected " + str(expected_val) + " but got " + str(context.output)
    )


def parse_value(input_type: str, input_value: str) -> typing.Any:
    if input_type == "bool":
        return input_value == "true"
    if input_type in ("u8", "u64", "int"):
        return int(input_value)
    if input_type == "address":
        return AccountAddress.from_str_relaxed(input_value)
    if input_type == "bytes":
        return bytes.fromhex(input_value.removeprefix("0x"))
    if input_type == "string":
        return parse_string(input_value)
    raise Exception("Unrecognized input type")


def parse_string(input_value: str) -> str:
    return input_value.removeprefix('"').removesuffix('"')
