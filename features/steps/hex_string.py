# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from behave import then, use_step_matcher, when

from aptos_wallet.hex_string import HexString

use_step_matcher("re")


@when("I parse the hex string")
def when_parse_hex_string(context):
    try:
        context.output = HexString(context.input)
    except Exception as e:
        context.output = e


@when("I render the hex string")
def when_render_hex_string(context):
    context.output = HexString(context.input).hex()


@when("I render the hex string without prefix")
def when_render_hex_string_no_prefix(context):
    context.output = HexString(context.input).no_prefix()


@when("I render the short hex string")
def when_render_short_hex_string(context):
    context.output = HexString(context.input).to_short_string()


@when("I convert the hex string to bytes")
def when_hex_string_to_bytes(context):
    context.output = HexString(context.input).to_bytes()


@when("I convert the bytes to a hex string")
def when_bytes_to_hex_string(context):
    context.output = HexString.from_bytes(context.input).hex()


@then("I should fail to parse the hex string")
def then_fail_hex_string(context):
    assert isinstance(context.output, Exception)
