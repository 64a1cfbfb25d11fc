# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
In-memory stand-ins for the node and faucet, used by the unit tests and the
behave features. Nothing here talks to a network.
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import Any, Dict, List, Optional, Tuple

from .account_address import AccountAddress
from .async_client import (
    COIN_STORE,
    AccountNotFound,
    EventPage,
    ResourceNotFound,
    TransactionStatus,
)
from .errors import SubmissionRejected
from .transactions import SignedTransaction

TOKEN_STORE = "0x3::token::TokenStore"

# (creator, collection, name)
TokenKey = Tuple[AccountAddress, str, str]


def token_event(sequence_number: int, creator: str, collection: str, name: str) -> Dict:
    return {
        "sequence_number": str(sequence_number),
        "data": {
            "amount": "1",
            "id": {
                "property_version": "0",
                "token_data_id": {
                    "creator": creator,
                    "collection": collection,
                    "name": name,
                },
            },
        },
    }


class FakeEventTransport:
    """Serves in-memory event streams with a fixed page size."""

    def __init__(self, streams: Dict[str, List[Dict[str, Any]]], page_size: int = 2):
        self.streams = streams
        self.page_size = page_size
        self.calls: List[Tuple[str, Optional[int]]] = []

    async def event_page(self, address, event_handle, field_name, cursor=None):
        self.calls.append((field_name, cursor))
        events = self.streams.get(field_name, [])
        start = cursor or 0
        end = start + self.page_size
        next_cursor = end if end < len(events) else None
        return EventPage(events[start:end], next_cursor)


class FakeChain:
    """
    An in-memory node that executes the entry functions the wallet submits.

    Transactions execute on submission unless ``hold_pending`` is set, in
    which case they stay pending forever and the sender's sequence number
    does not move. When ``stall`` is set, submission accepts the transaction
    and then blocks until the event is set.
    """

    PAGE_SIZE = 2

    def __init__(self):
        self.hold_pending = False
        self.stall: Optional[asyncio.Event] = None
        self.sequence_numbers: Dict[AccountAddress, int] = {}
        self.balances: Dict[AccountAddress, int] = {}
        self.events: Dict[Tuple[AccountAddress, str, str], List[Dict[str, Any]]] = {}
        self.collections: Dict[AccountAddress, Dict[str, Dict[str, Any]]] = {}
        self.token_data: Dict[TokenKey, Dict[str, Any]] = {}
        self.token_stores: Dict[AccountAddress, Dict[TokenKey, int]] = {}
        self.offers: Dict[Tuple[AccountAddress, AccountAddress, TokenKey], int] = {}
        self.statuses: Dict[str, TransactionStatus] = {}
        self.submitted: List[SignedTransaction] = []

    async def chain_id(self) -> int:
        return 4

    async def account_sequence_number(self, account_address: AccountAddress) -> int:
        return self.sequence_numbers.get(account_address, 0)

    async def account_resources(self, account_address: AccountAddress) -> List[Dict]:
        known = self.sequence_numbers.keys() | self.balances.keys()
        if account_address not in known:
            raise AccountNotFound(f"{account_address}", account_address)
        coin_store = {"coin": {"value": str(self.balances.get(account_address, 0))}}
        resources = [{"type": COIN_STORE, "data": coin_store}]
        if account_address in self.token_stores:
            resources.append(
                {
                    "type": TOKEN_STORE,
                    "data": {"tokens": {"handle": f"{account_address}/tokens"}},
                }
            )
        if account_address in self.collections:
            resources.append(
                {
                    "type": "0x3::token::Collections",
                    "data": {
                        "token_data": {"handle": f"{account_address}/token_data"},
                        "collection_data": {"handle": f"{account_address}/collections"},
                    },
                }
            )
        return resources

    async def account_resource(
        self, account_address: AccountAddress, resource_type: str
    ) -> Dict[str, Any]:
        for resource in await self.account_resources(account_address):
            if resource["type"] == resource_type:
                return resource
        raise ResourceNotFound(resource_type, resource_type)

    async def event_page(
        self,
        account_address: AccountAddress,
        event_handle: str,
        field_name: str,
        cursor: Optional[int] = None,
    ) -> EventPage:
        events = self.events.get((account_address, event_handle, field_name), [])
        start = cursor or 0
        end = start + self.PAGE_SIZE
        return EventPage(events[start:end], end if end < len(events) else None)

    async def get_table_item(
        self, handle: str, key_type: str, value_type: str, key: Any
    ) -> Any:
        owner, _, table = handle.partition("/")
        owner_address = AccountAddress.from_str_relaxed(owner)
        if table == "token_data":
            token = _token_key(key)
            if token in self.token_data:
                return self.token_data[token]
        elif table == "collections":
            if key in self.collections.get(owner_address, {}):
                return self.collections[owner_address][key]
        elif table == "tokens":
            token = _token_key(key["token_data_id"])
            amount = self.token_stores.get(owner_address, {}).get(token, 0)
            if amount:
                return {"id": key, "amount": str(amount)}
        raise ResourceNotFound("table item not found", handle)

    async def submit_bcs_transaction(
        self, signed_transaction: SignedTransaction
    ) -> str:
        raw = signed_transaction.transaction
        current = self.sequence_numbers.get(raw.sender, 0)
        if raw.sequence_number < current:
            raise SubmissionRejected(
                "Invalid transaction: Type: Validation Code: SEQUENCE_NUMBER_TOO_OLD"
            )
        if not signed_transaction.verify():
            raise SubmissionRejected(
                "Invalid transaction: Type: Validation Code: INVALID_SIGNATURE"
            )
        self.submitted.append(signed_transaction)
        txn_hash = "0x" + hashlib.sha3_256(signed_transaction.bytes()).hexdigest()
        if self.hold_pending:
            self.statuses[txn_hash] = TransactionStatus.pending()
            if self.stall is not None:
                await self.stall.wait()
            return txn_hash

        self.sequence_numbers[raw.sender] = current + 1
        try:
            self._execute(raw.sender, raw.payload.value)
            self.statuses[txn_hash] = TransactionStatus.confirmed()
        except ValueError as e:
            self.statuses[txn_hash] = TransactionStatus.rejected(f"Move abort: {e}")
        return txn_hash

    async def transaction_status(self, txn_hash: str) -> TransactionStatus:
        return self.statuses.get(txn_hash, TransactionStatus.pending())

    def mint(self, address: AccountAddress, amount: int) -> str:
        self.balances[address] = self.balances.get(address, 0) + amount
        self.sequence_numbers.setdefault(address, 0)
        self._coin_event(address, "deposit_events", amount)
        txn_hash = f"0xfaucet{len(self.statuses)}"
        self.statuses[txn_hash] = TransactionStatus.confirmed()
        return txn_hash

    def _emit(self, address: AccountAddress, handle: str, field: str, data: Dict):
        stream = self.events.setdefault((address, handle, field), [])
        stream.append({"sequence_number": str(len(stream)), "data": data})

    def _coin_event(self, address: AccountAddress, field: str, amount: int):
        self._emit(address, COIN_STORE, field, {"amount": str(amount)})

    def _token_event(
        self, address: AccountAddress, field: str, token: TokenKey, amount: int
    ):
        creator, collection, name = token
        data_id = {"creator": str(creator), "collection": collection, "name": name}
        data = {
            "id": {"token_data_id": data_id, "property_version": "0"},
            "amount": str(amount),
        }
        self._emit(address, TOKEN_STORE, field, data)

    def _withdraw_token(self, source: AccountAddress, token: TokenKey, amount: int):
        store = self.token_stores.setdefault(source, {})
        if store.get(token, 0) < amount:
            raise ValueError("ETOKEN_INSUFFICIENT_BALANCE")
        store[token] -= amount
        self._token_event(source, "withdraw_events", token, amount)

    def _deposit_token(self, target: AccountAddress, token: TokenKey, amount: int):
        store = self.token_stores.setdefault(target, {})
        store[token] = store.get(token, 0) + amount
        self._token_event(target, "deposit_events", token, amount)

    def _execute(self, sender: AccountAddress, entry_function):
        args = [arg.value for arg in entry_function.args]
        function = str(entry_function)
        if function == "0x1::aptos_account::transfer":
            recipient, amount = args
            if self.balances.get(sender, 0) < amount:
                raise ValueError("EINSUFFICIENT_BALANCE")
            self.balances[sender] -= amount
            self.balances[recipient] = self.balances.get(recipient, 0) + amount
            self.sequence_numbers.setdefault(recipient, 0)
            self._coin_event(sender, "withdraw_events", amount)
            self._coin_event(recipient, "deposit_events", amount)
        elif function == "0x3::token::create_collection_script":
            name, description, uri = args[:3]
            collections = self.collections.setdefault(sender, {})
            if name in collections:
                raise ValueError("ECOLLECTION_ALREADY_EXISTS")
            collections[name] = {"name": name, "description": description, "uri": uri}
        elif function == "0x3::token::create_token_script":
            collection, name, description, supply, _, uri = args[:6]
            if collection not in self.collections.get(sender, {}):
                raise ValueError("ECOLLECTION_NOT_PUBLISHED")
            token = (sender, collection, name)
            self.token_data[token] = {
                "name": name,
                "description": description,
                "supply": str(supply),
                "uri": uri,
            }
            self._deposit_token(sender, token, supply)
        elif function == "0x3::token_transfers::offer_script":
            receiver, creator, collection, name, _, amount = args
            token = (creator, collection, name)
            self._withdraw_token(sender, token, amount)
            key = (sender, receiver, token)
            self.offers[key] = self.offers.get(key, 0) + amount
        elif function == "0x3::token_transfers::cancel_offer_script":
            receiver, creator, collection, name, _ = args
            token = (creator, collection, name)
            amount = self.offers.pop((sender, receiver, token), 0)
            if not amount:
                raise ValueError("ETOKEN_OFFER_NOT_EXIST")
            self._deposit_token(sender, token, amount)
        elif function == "0x3::token_transfers::claim_script":
            offerer, creator, collection, name, _ = args
            token = (creator, collection, name)
            amount = self.offers.pop((offerer, sender, token), 0)
            if not amount:
                raise ValueError("ETOKEN_OFFER_NOT_EXIST")
            self._deposit_token(sender, token, amount)
        else:
            raise ValueError(f"EFUNCTION_NOT_FOUND {function}")


class FakeFaucet:
    def __init__(self, chain: FakeChain):
        self.chain = chain
        self.funded: List[Tuple[AccountAddress, int]] = []

    async def fund_account(self, address: AccountAddress, amount: int) -> List[str]:
        self.funded.append((address, amount))
        return [self.chain.mint(address, amount)]


def _token_key(data_id: Dict[str, str]) -> TokenKey:
    return (
        AccountAddress.from_str_relaxed(data_id["creator"]),
        data_id["collection"],
        data_id["name"],
    )
