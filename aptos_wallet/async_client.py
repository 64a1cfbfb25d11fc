# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Node and faucet transport.

The rest of the library talks to the chain only through the :class:`Transport`
protocol, so tests (and alternative backends) can substitute their own
implementation. :class:`RestClient` implements it over the fullnode REST API
with ``httpx``.

Error mapping:

- network failures and 5xx/429 responses raise a retryable
  :class:`~aptos_wallet.errors.TransportFailure`,
- other 4xx responses raise a non-retryable :class:`ApiError`,
- a 4xx on transaction submission raises
  :class:`~aptos_wallet.errors.SubmissionRejected` with the node's message.
"""

from __future__ import annotations

import json
import logging
import unittest
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx
from typing_extensions import Protocol

from . import ed25519
from .account_address import AccountAddress
from .bcs import Serializer
from .errors import SubmissionRejected, TransportFailure
from .metadata import Metadata
from .transactions import (
    EntryFunction,
    RawTransaction,
    SignedTransaction,
    TransactionArgument,
    TransactionPayload,
)

BCS_SIGNED_TRANSACTION = "application/x.aptos.signed_transaction+bcs"
COIN_STORE = "0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>"


@dataclass
class ClientConfig:
    """Common configuration for clients, particularly for submitting transactions"""

    expiration_ttl: int = 600
    gas_unit_price: int = 100
    max_gas_amount: int = 100_000
    transaction_wait_in_seconds: float = 10
    poll_interval_secs: float = 0.5
    event_page_size: int = 100
    transport_retries: int = 3
    faucet_amount: int = 10
    http2: bool = True
    api_key: Optional[str] = None


class TransactionState(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class TransactionStatus:
    state: TransactionState
    reason: Optional[str] = None

    @staticmethod
    def pending() -> TransactionStatus:
        return TransactionStatus(TransactionState.PENDING)

    @staticmethod
    def confirmed() -> TransactionStatus:
        return TransactionStatus(TransactionState.CONFIRMED)

    @staticmethod
    def rejected(reason: str) -> TransactionStatus:
        return TransactionStatus(TransactionState.REJECTED, reason)


@dataclass
class EventPage:
    """One page of an event stream. ``next_cursor`` is None once it is exhausted."""

    events: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[int] = None


class Transport(Protocol):
    async def chain_id(self) -> int:
        ...

    async def account_sequence_number(self, account_address: AccountAddress) -> int:
        ...

    async def account_resources(
        self, account_address: AccountAddress
    ) -> List[Dict[str, Any]]:
        ...

    async def account_resource(
        self, account_address: AccountAddress, resource_type: str
    ) -> Dict[str, Any]:
        ...

    async def event_page(
        self,
        account_address: AccountAddress,
        event_handle: str,
        field_name: str,
        cursor: Optional[int] = None,
    ) -> EventPage:
        ...

    async def get_table_item(
        self, handle: str, key_type: str, value_type: str, key: Any
    ) -> Any:
        ...

    async def submit_bcs_transaction(
        self, signed_transaction: SignedTransaction
    ) -> str:
        ...

    async def transaction_status(self, txn_hash: str) -> TransactionStatus:
        ...


class ApiError(TransportFailure):
    """The API returned a non-success status code, e.g., >= 400"""

    status_code: int

    def __init__(self, message: str, status_code: int):
        super().__init__(message, retryable=status_code >= 500 or status_code == 429)
        self.status_code = status_code


class AccountNotFound(ApiError):
    """The account was not found"""

    account: AccountAddress

    def __init__(self, message: str, account: AccountAddress):
        super().__init__(message, 404)
        self.account = account


class ResourceNotFound(ApiError):
    """The underlying resource was not found"""

    resource: str

    def __init__(self, message: str, resource: str):
        super().__init__(message, 404)
        self.resource = resource


def error_message(response: httpx.Response) -> str:
    """The node's own error message when the body carries one, else the raw body."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return response.text


class RestClient:
    """A wrapper around the Aptos-core Rest API"""

    _chain_id: Optional[int]
    client: httpx.AsyncClient
    client_config: ClientConfig
    base_url: str

    def __init__(
        self,
        base_url: str,
        client_config: Optional[ClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_config = client_config or ClientConfig()
        self._chain_id = None
        # Default limits
        limits = httpx.Limits()
        # Default timeouts but do not set a pool timeout, since the idea is that
        # jobs will wait as long as progress is being made.
        timeout = httpx.Timeout(60.0, pool=None)
        # Default headers
        headers = {Metadata.APTOS_HEADER: Metadata.get_aptos_header_val()}
        self.client = httpx.AsyncClient(
            http2=self.client_config.http2,
            limits=limits,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )
        if self.client_config.api_key:
            api_key = self.client_config.api_key
            self.client.headers["Authorization"] = f"Bearer {api_key}"

    async def close(self):
        await self.client.aclose()

    async def chain_id(self) -> int:
        if not self._chain_id:
            info = await self.info()
            self._chain_id = int(info["chain_id"])
        return self._chain_id

    async def info(self) -> Dict[str, str]:
        response = await self._get(endpoint="")
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        return response.json()

    #
    # Account accessors
    #

    async def account(self, account_address: AccountAddress) -> Dict[str, str]:
        """Fetch the authentication key and sequence number for an address."""
        response = await self._get(endpoint=f"accounts/{account_address}")
        if response.status_code == 404:
            raise AccountNotFound(f"{account_address}", account_address)
        if response.status_code >= 400:
            raise ApiError(f"{response.text} - {account_address}", response.status_code)
        return response.json()

    async def account_sequence_number(self, account_address: AccountAddress) -> int:
        """An account that does not exist yet has sequence number 0."""
        try:
            account_res = await self.account(account_address)
        except AccountNotFound:
            return 0
        return int(account_res["sequence_number"])

    async def account_resource(
        self, account_address: AccountAddress, resource_type: str
    ) -> Dict[str, Any]:
        response = await self._get(
            endpoint=f"accounts/{account_address}/resource/{resource_type}"
        )
        if response.status_code == 404:
            raise ResourceNotFound(resource_type, resource_type)
        if response.status_code >= 400:
            raise ApiError(f"{response.text} - {account_address}", response.status_code)
        return response.json()

    async def account_resources(
        self, account_address: AccountAddress
    ) -> List[Dict[str, Any]]:
        response = await self._get(endpoint=f"accounts/{account_address}/resources")
        if response.status_code == 404:
            raise AccountNotFound(f"{account_address}", account_address)
        if response.status_code >= 400:
            raise ApiError(f"{response.text} - {account_address}", response.status_code)
        return response.json()

    async def events_by_event_handle(
        self,
        account_address: AccountAddress,
        event_handle: str,
        field_name: str,
        limit: Optional[int] = None,
        start: Optional[int] = None,
    ) -> List[dict]:
        """
        Retrieve events corresponding to an account address, event handle (struct name)
        and field name. A missing account or handle yields no events.
        """
        response = await self._get(
            endpoint=f"accounts/{account_address}/events/{event_handle}/{field_name}",
            params={
                "limit": limit,
                "start": start,
            },
        )
        if response.status_code == 404:
            return []
        if response.status_code >= 400:
            raise ApiError(f"{response.text} - {account_address}", response.status_code)
        return response.json()

    async def event_page(
        self,
        account_address: AccountAddress,
        event_handle: str,
        field_name: str,
        cursor: Optional[int] = None,
    ) -> EventPage:
        limit = self.client_config.event_page_size
        events = await self.events_by_event_handle(
            account_address, event_handle, field_name, limit=limit, start=cursor or 0
        )
        # Nodes cap the page size on their side, so a short page is not the
        # end of the stream. Only an empty page is.
        next_cursor = None
        if events:
            next_cursor = int(events[-1]["sequence_number"]) + 1
        return EventPage(events, next_cursor)

    async def get_table_item(
        self, handle: str, key_type: str, value_type: str, key: Any
    ) -> Any:
        response = await self._post(
            endpoint=f"tables/{handle}/item",
            data={
                "key_type": key_type,
                "value_type": value_type,
                "key": key,
            },
        )
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        return response.json()

    #
    # Transactions
    #

    async def submit_bcs_transaction(
        self, signed_transaction: SignedTransaction
    ) -> str:
        headers = {"Content-Type": BCS_SIGNED_TRANSACTION}
        response = await self._post(
            endpoint="transactions",
            headers=headers,
            content=signed_transaction.bytes(),
        )
        if response.status_code >= 500 or response.status_code == 429:
            raise ApiError(response.text, response.status_code)
        if response.status_code >= 400:
            raise SubmissionRejected(error_message(response))
        return response.json()["hash"]

    async def transaction_status(self, txn_hash: str) -> TransactionStatus:
        response = await self._get(endpoint=f"transactions/by_hash/{txn_hash}")
        # Not yet visible to this node.
        if response.status_code == 404:
            return TransactionStatus.pending()
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        data = response.json()
        if data.get("type") == "pending_transaction":
            return TransactionStatus.pending()
        if data.get("success"):
            return TransactionStatus.confirmed()
        return TransactionStatus.rejected(data.get("vm_status") or response.text)

    async def _post(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        content: Optional[bytes] = None,
    ) -> httpx.Response:
        # format params:
        params = {} if params is None else params
        params = {key: val for key, val in params.items() if val is not None}
        return await self._send(
            self.client.post,
            url=f"{self.base_url}/{endpoint}",
            params=params,
            headers=headers,
            json=data,
            content=content,
        )

    async def _get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        # format params:
        params = {} if params is None else params
        params = {key: val for key, val in params.items() if val is not None}
        return await self._send(
            self.client.get,
            url=f"{self.base_url}/{endpoint}",
            params=params,
        )

    async def _send(self, method: Callable[..., Any], **kwargs: Any) -> httpx.Response:
        try:
            return await method(**kwargs)
        except httpx.TransportError as e:
            raise TransportFailure(f"{type(e).__name__}: {e}") from e


class FaucetClient:
    """Faucet creates and funds accounts. This is a thin wrapper around that."""

    base_url: str
    rest_client: RestClient
    headers: Dict[str, str]

    def __init__(
        self, base_url: str, rest_client: RestClient, auth_token: Optional[str] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.rest_client = rest_client
        self.headers = {}
        if auth_token:
            self.headers["Authorization"] = f"Bearer {auth_token}"

    async def close(self):
        await self.rest_client.close()

    async def fund_account(self, address: AccountAddress, amount: int) -> List[str]:
        """
        This creates an account if it does not exist and mints the specified amount of
        coins into that account. Returns the hashes of the faucet's transactions.
        """
        request = f"{self.base_url}/mint?amount={amount}&address={address}"
        try:
            response = await self.rest_client.client.post(request, headers=self.headers)
        except httpx.TransportError as e:
            raise TransportFailure(f"faucet unreachable: {e}") from e
        if response.status_code >= 400:
            raise ApiError(response.text, response.status_code)
        logging.info(f"Faucet funded {address} with {amount}")
        return list(response.json())


class Test(unittest.IsolatedAsyncioTestCase):
    ADDRESS = AccountAddress.from_str_relaxed("0xf")

    def client(self, handler, **config) -> RestClient:
        return RestClient(
            "https://fullnode.example/v1",
            ClientConfig(**config),
            transport=httpx.MockTransport(handler),
        )

    def signed_transaction(self) -> SignedTransaction:
        key = ed25519.PrivateKey.random()
        raw = RawTransaction(
            AccountAddress.from_key(key.public_key()),
            0,
            TransactionPayload(
                EntryFunction.natural(
                    "0x1::aptos_account",
                    "transfer",
                    [],
                    [
                        TransactionArgument(self.ADDRESS, Serializer.struct),
                        TransactionArgument(1, Serializer.u64),
                    ],
                )
            ),
            1000,
            100,
            1_000_000,
            4,
        )
        return SignedTransaction(raw, raw.sign(key))

    async def test_sequence_number(self):
        def handler(request: httpx.Request) -> httpx.Response:
            self.assertEqual(request.url.path, f"/v1/accounts/{self.ADDRESS}")
            self.assertIn(Metadata.APTOS_HEADER, request.headers)
            return httpx.Response(200, json={"sequence_number": "12"})

        client = self.client(handler)
        self.assertEqual(await client.account_sequence_number(self.ADDRESS), 12)

    async def test_sequence_number_of_missing_account(self):
        client = self.client(lambda request: httpx.Response(404, json={}))
        self.assertEqual(await client.account_sequence_number(self.ADDRESS), 0)

    async def test_chain_id_is_cached(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"chain_id": 4})

        client = self.client(handler)
        self.assertEqual(await client.chain_id(), 4)
        self.assertEqual(await client.chain_id(), 4)
        self.assertEqual(len(calls), 1)

    async def test_submit_rejected_keeps_node_message(self):
        message = "Invalid transaction: Type: Validation Code: SEQUENCE_NUMBER_TOO_OLD"

        def handler(request: httpx.Request) -> httpx.Response:
            self.assertEqual(request.headers["content-type"], BCS_SIGNED_TRANSACTION)
            return httpx.Response(
                400, json={"message": message, "error_code": "vm_error"}
            )

        with self.assertRaises(SubmissionRejected) as cm:
            await self.client(handler).submit_bcs_transaction(self.signed_transaction())
        self.assertEqual(cm.exception.reason, message)

    async def test_submit_server_error_is_transport_failure(self):
        client = self.client(lambda request: httpx.Response(503, text="unavailable"))
        with self.assertRaises(ApiError) as cm:
            await client.submit_bcs_transaction(self.signed_transaction())
        self.assertTrue(cm.exception.retryable)
        self.assertEqual(cm.exception.status_code, 503)

    async def test_network_error_is_transport_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(TransportFailure) as cm:
            await self.client(handler).chain_id()
        self.assertTrue(cm.exception.retryable)

    async def test_transaction_status(self):
        responses = {
            "missing": httpx.Response(404, json={}),
            "pending": httpx.Response(200, json={"type": "pending_transaction"}),
            "ok": httpx.Response(
                200, json={"type": "user_transaction", "success": True}
            ),
            "failed": httpx.Response(
                200,
                json={
                    "type": "user_transaction",
                    "success": False,
                    "vm_status": "Move abort: EINSUFFICIENT_BALANCE",
                },
            ),
        }
        client = self.client(lambda request: responses[request.url.path.split("/")[-1]])
        pending = TransactionStatus.pending()
        self.assertEqual(await client.transaction_status("missing"), pending)
        self.assertEqual(await client.transaction_status("pending"), pending)
        confirmed = TransactionStatus.confirmed()
        self.assertEqual(await client.transaction_status("ok"), confirmed)
        self.assertEqual(
            await client.transaction_status("failed"),
            TransactionStatus.rejected("Move abort: EINSUFFICIENT_BALANCE"),
        )

    async def test_event_page_cursor(self):
        def handler(request: httpx.Request) -> httpx.Response:
            start = int(request.url.params["start"])
            limit = int(request.url.params["limit"])
            end = min(start + limit, 5)
            events = [{"sequence_number": str(n)} for n in range(start, end)]
            return httpx.Response(200, json=events)

        client = self.client(handler, event_page_size=2)
        page = await client.event_page(
            self.ADDRESS, "0x3::token::TokenStore", "deposit_events"
        )
        self.assertEqual(len(page.events), 2)
        self.assertEqual(page.next_cursor, 2)
        page = await client.event_page(
            self.ADDRESS, "0x3::token::TokenStore", "deposit_events", 4
        )
        self.assertEqual(len(page.events), 1)
        self.assertEqual(page.next_cursor, 5)
        page = await client.event_page(
            self.ADDRESS, "0x3::token::TokenStore", "deposit_events", 5
        )
        self.assertEqual(page.events, [])
        self.assertIsNone(page.next_cursor)

    async def test_event_page_missing_handle(self):
        client = self.client(lambda request: httpx.Response(404, json={}))
        page = await client.event_page(
            self.ADDRESS, "0x3::token::TokenStore", "deposit_events"
        )
        self.assertEqual(page, EventPage([], None))

    async def test_resource_not_found(self):
        client = self.client(lambda request: httpx.Response(404, json={}))
        with self.assertRaises(ResourceNotFound) as cm:
            await client.account_resource(self.ADDRESS, "0x1::account::Account")
        self.assertFalse(cm.exception.retryable)

    async def test_table_item(self):
        def handler(request: httpx.Request) -> httpx.Response:
            self.assertEqual(request.url.path, "/v1/tables/0xabc/item")
            body = json.loads(request.content)
            self.assertEqual(body["key_type"], "0x3::token::TokenDataId")
            return httpx.Response(200, json={"name": "AliceToken"})

        client = self.client(handler)
        item = await client.get_table_item(
            "0xabc", "0x3::token::TokenDataId", "0x3::token::TokenData", {}
        )
        self.assertEqual(item["name"], "AliceToken")

    async def test_faucet(self):
        def handler(request: httpx.Request) -> httpx.Response:
            self.assertEqual(request.url.path, "/mint")
            self.assertEqual(request.url.params["amount"], "10")
            self.assertEqual(request.headers["authorization"], "Bearer token")
            return httpx.Response(200, json=["0xhash"])

        rest_client = self.client(handler)
        faucet = FaucetClient("https://faucet.example", rest_client, "token")
        self.assertEqual(await faucet.fund_account(self.ADDRESS, 10), ["0xhash"])


if __name__ == "__main__":
    unittest.main()
