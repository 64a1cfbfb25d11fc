# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

from behave import given, then, use_step_matcher, when
from behave.api.async_step import async_run_until_complete

from aptos_wallet.account_address import AccountAddress
from aptos_wallet.fakes import FakeEventTransport, token_event
from aptos_wallet.token_events import (
    DEPOSIT_EVENTS,
    WITHDRAW_EVENTS,
    EventReconciler,
    TokenId,
    TokenQuery,
)

use_step_matcher("re")

CREATOR = AccountAddress.from_str_relaxed("0xa11ce")
OWNER = AccountAddress.from_str_relaxed("0xb0b")


def parse_names(names: str):
    return [name for name in names.split(",") if name]


def stream(names):
    return [
        token_event(seq, str(CREATOR), "collection", name)
        for seq, name in enumerate(names)
    ]


@given(r"deposits of tokens ?(?P<names>\S*)")
def given_deposits(context, names):
    context.deposits = stream(parse_names(names))


@given(r"withdrawals of tokens ?(?P<names>\S*)")
def given_withdrawals(context, names):
    context.withdrawals = stream(parse_names(names))


@given(r"a page size of (?P<page_size>\d+)")
def given_page_size(context, page_size):
    context.page_size = int(page_size)


@when(r"I reconcile the (?P<query>owned|minted|all) tokens")
@async_run_until_complete
async def when_reconcile(context, query):
    transport = FakeEventTransport(
        {
            DEPOSIT_EVENTS: getattr(context, "deposits", []),
            WITHDRAW_EVENTS: getattr(context, "withdrawals", []),
        },
        getattr(context, "page_size", 2),
    )
    reconciler = EventReconciler(transport)
    address = CREATOR if query == "minted" else OWNER
    context.output = await reconciler.token_ids(address, TokenQuery(query))


@then(r"the tokens should be ?(?P<names>\S*)")
def then_tokens(context, names):
    expected = {TokenId(CREATOR, "collection", name) for name in parse_names(names)}
    assert context.output == expected, f"Expected {expected} but got {context.output}"
