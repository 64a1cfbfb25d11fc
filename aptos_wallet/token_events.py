# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Token ownership reconstructed from deposit and withdrawal event streams.

An account's ``0x3::token::TokenStore`` resource keeps two append-only event
streams. A token identity is owned when it was deposited and never withdrawn.
Quantities are not tracked: one withdrawal removes the identity even if more
units were deposited than withdrawn.

Both streams are read to exhaustion before any set is computed, so the result
does not depend on page size or on how deposits and withdrawals interleave.
Nothing is cached; every call reflects the chain at the time of the call.
"""

from __future__ import annotations

import asyncio
import logging
import unittest
import unittest.mock
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Tuple

import httpx

from .account_address import AccountAddress
from .async_client import ClientConfig, EventPage, RestClient, Transport
from .errors import InvalidArgument, TransportFailure
from .fakes import FakeEventTransport, token_event

TOKEN_STORE = "0x3::token::TokenStore"
DEPOSIT_EVENTS = "deposit_events"
WITHDRAW_EVENTS = "withdraw_events"


@dataclass(frozen=True)
class TokenId:
    """The natural key of a token: creator, collection and name."""

    creator: AccountAddress
    collection_name: str
    name: str

    @staticmethod
    def from_event_data(data: Dict[str, Any]) -> TokenId:
        token_id = data.get("id") or {}
        # Older nodes render a flat id without token_data_id.
        data_id = token_id.get("token_data_id", token_id)
        try:
            creator = data_id["creator"]
            collection = data_id.get("collection", data_id.get("collectionName"))
            name = data_id["name"]
        except (KeyError, TypeError, AttributeError) as e:
            raise InvalidArgument(f"Malformed token event: {data}", "event") from e
        if collection is None:
            raise InvalidArgument(f"Token event has no collection: {data}", "event")
        return TokenId(AccountAddress.from_str_relaxed(creator), collection, name)

    def to_json(self) -> Dict[str, str]:
        return {
            "creator": str(self.creator),
            "collection": self.collection_name,
            "name": self.name,
        }


@dataclass(frozen=True)
class TokenEvent:
    sequence_number: int
    token_id: TokenId
    amount: int = 1
    data: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @staticmethod
    def from_json(event: Dict[str, Any]) -> TokenEvent:
        data = event.get("data") or {}
        return TokenEvent(
            int(event["sequence_number"]),
            TokenId.from_event_data(data),
            int(data.get("amount", 1)),
            data,
        )


class TokenQuery(Enum):
    OWNED = "owned"
    MINTED = "minted"
    ALL = "all"


async def fetch_events(
    transport: Transport,
    address: AccountAddress,
    event_handle: str,
    field_name: str,
    retries: int = 3,
    retry_delay: float = 0.5,
) -> AsyncIterator[Dict[str, Any]]:
    """Yield every event of a stream, page by page, until the stream is exhausted."""
    cursor: Optional[int] = None
    while True:
        page = await _fetch_page(
            transport, address, event_handle, field_name, cursor, retries, retry_delay
        )
        for event in page.events:
            yield event
        if page.next_cursor is None:
            return
        if cursor is not None and page.next_cursor <= cursor:
            raise TransportFailure(
                f"Event cursor did not advance past {cursor} for "
                f"{address}/{event_handle}/{field_name}",
                retryable=False,
            )
        cursor = page.next_cursor


async def _fetch_page(
    transport: Transport,
    address: AccountAddress,
    event_handle: str,
    field_name: str,
    cursor: Optional[int],
    retries: int,
    retry_delay: float,
) -> EventPage:
    attempt = 0
    while True:
        try:
            page = await transport.event_page(address, event_handle, field_name, cursor)
            logging.debug(
                f"{address}/{field_name} at {cursor}: {len(page.events)} events, "
                f"next {page.next_cursor}"
            )
            return page
        except TransportFailure as e:
            attempt += 1
            if not e.retryable or attempt > retries:
                raise
            logging.warning(
                f"Reading {field_name} of {address} failed ({attempt}/{retries}): {e}"
            )
            await asyncio.sleep(retry_delay)


class EventReconciler:
    """Stateless; safe to use from concurrent tasks."""

    def __init__(self, transport: Transport, config: Optional[ClientConfig] = None):
        self.transport = transport
        self.config = config or ClientConfig()

    async def events(
        self, address: AccountAddress, event_handle: str, field_name: str
    ) -> List[Dict[str, Any]]:
        """The whole stream, de-duplicated by sequence number, in ascending order."""
        by_sequence: Dict[int, Dict[str, Any]] = {}
        async for event in fetch_events(
            self.transport,
            address,
            event_handle,
            field_name,
            self.config.transport_retries,
            self.config.poll_interval_secs,
        ):
            by_sequence.setdefault(int(event["sequence_number"]), event)
        return [by_sequence[key] for key in sorted(by_sequence)]

    async def token_events(
        self, address: AccountAddress
    ) -> Tuple[List[TokenEvent], List[TokenEvent]]:
        deposits = await self.events(address, TOKEN_STORE, DEPOSIT_EVENTS)
        withdrawals = await self.events(address, TOKEN_STORE, WITHDRAW_EVENTS)
        return (
            [TokenEvent.from_json(event) for event in deposits],
            [TokenEvent.from_json(event) for event in withdrawals],
        )

    async def owned_tokens(self, address: AccountAddress) -> Set[TokenId]:
        deposits, withdrawals = await self.token_events(address)
        return owned(deposits, withdrawals)

    async def minted_tokens(self, address: AccountAddress) -> Set[TokenId]:
        deposits, _ = await self.token_events(address)
        return minted(deposits, address)

    async def all_received_tokens(self, address: AccountAddress) -> Set[TokenId]:
        deposits, _ = await self.token_events(address)
        return {event.token_id for event in deposits}

    async def ownership(self, address: AccountAddress) -> Dict[TokenId, int]:
        """Owned identities with the total amount ever deposited for each."""
        deposits, withdrawals = await self.token_events(address)
        current = owned(deposits, withdrawals)
        totals: Dict[TokenId, int] = {}
        for event in deposits:
            if event.token_id in current:
                totals[event.token_id] = totals.get(event.token_id, 0) + event.amount
        return totals

    async def token_ids(
        self, address: AccountAddress, query: TokenQuery
    ) -> Set[TokenId]:
        if query == TokenQuery.OWNED:
            return await self.owned_tokens(address)
        if query == TokenQuery.MINTED:
            return await self.minted_tokens(address)
        if query == TokenQuery.ALL:
            return await self.all_received_tokens(address)
        raise InvalidArgument(f"Unknown token query {query}", "query")


def owned(deposits: List[TokenEvent], withdrawals: List[TokenEvent]) -> Set[TokenId]:
    withdrawn = {event.token_id for event in withdrawals}
    return {event.token_id for event in deposits if event.token_id not in withdrawn}


def minted(deposits: List[TokenEvent], address: AccountAddress) -> Set[TokenId]:
    return {event.token_id for event in deposits if event.token_id.creator == address}


class Test(unittest.IsolatedAsyncioTestCase):
    ALICE = AccountAddress.from_str_relaxed("0xa11ce")
    BOB = AccountAddress.from_str_relaxed("0xb0b")

    def stream(self, names: List[str], creator: Optional[AccountAddress] = None):
        creator = creator or self.ALICE
        return [
            token_event(seq, str(creator), "collection", name)
            for seq, name in enumerate(names)
        ]

    def reconciler(self, deposits, withdrawals, page_size: int = 2) -> EventReconciler:
        transport = FakeEventTransport(
            {DEPOSIT_EVENTS: deposits, WITHDRAW_EVENTS: withdrawals}, page_size
        )
        return EventReconciler(transport)

    def ids(self, *names: str) -> Set[TokenId]:
        return {TokenId(self.ALICE, "collection", name) for name in names}

    async def test_owned_is_deposits_minus_withdrawals(self):
        reconciler = self.reconciler(self.stream(["A", "B", "C"]), self.stream(["B"]))
        self.assertEqual(await reconciler.owned_tokens(self.BOB), self.ids("A", "C"))
        self.assertEqual(
            await reconciler.token_ids(self.BOB, TokenQuery.ALL),
            self.ids("A", "B", "C"),
        )

    async def test_no_withdrawals(self):
        reconciler = self.reconciler(self.stream(["A", "B"]), [])
        self.assertEqual(await reconciler.owned_tokens(self.BOB), self.ids("A", "B"))

    async def test_empty_streams(self):
        reconciler = self.reconciler([], [])
        self.assertEqual(await reconciler.owned_tokens(self.BOB), set())
        self.assertEqual(await reconciler.ownership(self.BOB), {})

    async def test_interleaving_does_not_matter(self):
        # Same multiset of events, different arrival order.
        forward = self.reconciler(
            self.stream(["A", "B", "C", "D"]), self.stream(["D", "A"])
        )
        backward = self.reconciler(
            self.stream(["D", "C", "B", "A"]), self.stream(["A", "D"]), page_size=3
        )
        self.assertEqual(
            await forward.owned_tokens(self.BOB), await backward.owned_tokens(self.BOB)
        )

    async def test_quantity_is_ignored(self):
        # Two units deposited, one withdrawn: the identity is no longer owned.
        reconciler = self.reconciler(self.stream(["A", "A"]), self.stream(["A"]))
        self.assertEqual(await reconciler.owned_tokens(self.BOB), set())

    async def test_minted_across_pages(self):
        names = [f"token-{n}" for n in range(7)]
        deposits = self.stream(names) + [
            token_event(7, str(self.BOB), "other", "not-minted-by-alice")
        ]
        expected = self.ids(*names)
        for page_size in (1, 2, 3, 100):
            reconciler = self.reconciler(deposits, [], page_size)
            self.assertEqual(await reconciler.minted_tokens(self.ALICE), expected)

    async def test_duplicates_are_dropped(self):
        deposits = self.stream(["A", "B"])
        transport = unittest.mock.AsyncMock()
        transport.event_page.side_effect = [
            EventPage(deposits, 1),
            EventPage(deposits[1:], None),
        ]
        reconciler = EventReconciler(transport)
        events = await reconciler.events(self.BOB, TOKEN_STORE, DEPOSIT_EVENTS)
        self.assertEqual([event["sequence_number"] for event in events], ["0", "1"])

    async def test_retryable_failures_are_retried(self):
        transport = unittest.mock.AsyncMock()
        transport.event_page.side_effect = [
            TransportFailure("reset"),
            EventPage(self.stream(["A"]), None),
        ]
        reconciler = EventReconciler(transport, ClientConfig(poll_interval_secs=0.25))
        with unittest.mock.patch(
            "aptos_wallet.token_events.asyncio.sleep", new=unittest.mock.AsyncMock()
        ) as sleep:
            events = await reconciler.events(self.BOB, TOKEN_STORE, DEPOSIT_EVENTS)
        self.assertEqual(len(events), 1)
        sleep.assert_awaited_once_with(0.25)

    async def test_retries_are_bounded(self):
        transport = unittest.mock.AsyncMock()
        transport.event_page.side_effect = TransportFailure("down")
        reconciler = EventReconciler(
            transport, ClientConfig(transport_retries=2, poll_interval_secs=0.01)
        )
        with self.assertRaises(TransportFailure):
            await reconciler.events(self.BOB, TOKEN_STORE, DEPOSIT_EVENTS)
        self.assertEqual(transport.event_page.await_count, 3)

    async def test_stuck_cursor_fails(self):
        transport = unittest.mock.AsyncMock()
        transport.event_page.return_value = EventPage(self.stream(["A"]), 1)
        with self.assertRaises(TransportFailure):
            events = fetch_events(transport, self.BOB, TOKEN_STORE, DEPOSIT_EVENTS)
            async for _ in events:
                pass

    async def test_ownership_counts(self):
        reconciler = self.reconciler(self.stream(["A", "A", "B"]), self.stream(["B"]))
        self.assertEqual(
            await reconciler.ownership(self.BOB),
            {TokenId(self.ALICE, "collection", "A"): 2},
        )

    def test_legacy_event_shape(self):
        data = {
            "id": {"creator": "0xa11ce", "collectionName": "collection", "name": "A"},
            "amount": "1",
        }
        self.assertEqual(
            TokenId.from_event_data(data), TokenId(self.ALICE, "collection", "A")
        )
        with self.assertRaises(InvalidArgument):
            TokenId.from_event_data({"id": {}})

    def test_event_without_collection(self):
        data = {"id": {"token_data_id": {"creator": "0xa11ce", "name": "A"}}}
        with self.assertRaises(InvalidArgument):
            TokenId.from_event_data(data)

    async def test_node_caps_page_size(self):
        # The node returns at most 100 events per request, whatever the limit.
        deposits = self.stream([f"token-{n}" for n in range(250)])
        withdrawals = self.stream(["token-249"])

        def handler(request: httpx.Request) -> httpx.Response:
            is_deposit = request.url.path.endswith(DEPOSIT_EVENTS)
            stream = deposits if is_deposit else withdrawals
            start = int(request.url.params["start"])
            limit = min(int(request.url.params["limit"]), 100)
            return httpx.Response(200, json=stream[start : start + limit])

        config = ClientConfig(event_page_size=200)
        rest_client = RestClient(
            "https://fullnode.example/v1",
            config,
            transport=httpx.MockTransport(handler),
        )
        reconciler = EventReconciler(rest_client, config)
        owned_tokens = await reconciler.owned_tokens(self.BOB)
        await rest_client.close()

        self.assertEqual(len(owned_tokens), 249)
        self.assertNotIn(TokenId(self.ALICE, "collection", "token-249"), owned_tokens)


if __name__ == "__main__":
    unittest.main()
