# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""Read token, collection and other table-backed data held in account resources."""

from __future__ import annotations

import unittest
import unittest.mock
from typing import Any, Dict, Iterable, List, Union

from .account_address import AccountAddress
from .async_client import ApiError, ResourceNotFound, Transport
from .token_events import TokenId

COLLECTIONS = "0x3::token::Collections"
TOKEN_STORE = "0x3::token::TokenStore"


class TokenClient:
    """Token standard (0x3::token) reads through the table API."""

    def __init__(self, transport: Transport):
        self._client = transport

    async def get_custom_resource(
        self,
        address: Union[str, AccountAddress],
        resource_type: str,
        field_name: str,
        key_type: str,
        value_type: str,
        key: Any,
    ) -> Any:
        """Look up ``key`` in the table held by ``resource_type.field_name``."""
        resource = await self._client.account_resource(
            AccountAddress.ensure(address), resource_type
        )
        try:
            handle = resource["data"][field_name]["handle"]
        except (KeyError, TypeError) as e:
            raise ResourceNotFound(
                f"{resource_type} has no table field {field_name}", resource_type
            ) from e
        return await self._client.get_table_item(handle, key_type, value_type, key)

    async def get_token_data(self, token_id: TokenId) -> Dict[str, Any]:
        return await self.get_custom_resource(
            token_id.creator,
            COLLECTIONS,
            "token_data",
            "0x3::token::TokenDataId",
            "0x3::token::TokenData",
            token_id.to_json(),
        )

    async def get_tokens_data(
        self, token_ids: Iterable[TokenId]
    ) -> List[Dict[str, Any]]:
        ordered = sorted(
            token_ids, key=lambda t: (str(t.creator), t.collection_name, t.name)
        )
        return [await self.get_token_data(token_id) for token_id in ordered]

    async def get_collection(
        self, creator: Union[str, AccountAddress], collection_name: str
    ) -> Dict[str, Any]:
        return await self.get_custom_resource(
            creator,
            COLLECTIONS,
            "collection_data",
            "0x1::string::String",
            "0x3::token::CollectionData",
            collection_name,
        )

    async def get_token(
        self,
        owner: Union[str, AccountAddress],
        token_id: TokenId,
        property_version: int = 0,
    ) -> Dict[str, Any]:
        """The owner's balance record for a token; amount "0" when none is held."""
        key = {
            "token_data_id": token_id.to_json(),
            "property_version": str(property_version),
        }
        try:
            return await self.get_custom_resource(
                owner,
                TOKEN_STORE,
                "tokens",
                "0x3::token::TokenId",
                "0x3::token::Token",
                key,
            )
        except ApiError as e:
            if e.status_code == 404:
                return {"id": key, "amount": "0"}
            raise


class Test(unittest.IsolatedAsyncioTestCase):
    CREATOR = AccountAddress.from_str_relaxed("0xa11ce")

    def setUp(self):
        self.transport = unittest.mock.AsyncMock()
        self.transport.account_resource.return_value = {
            "type": COLLECTIONS,
            "data": {
                "token_data": {"handle": "0xdata"},
                "collection_data": {"handle": "0xcollections"},
            },
        }
        self.client = TokenClient(self.transport)

    async def test_token_data(self):
        self.transport.get_table_item.return_value = {"name": "AliceToken"}
        token_id = TokenId(self.CREATOR, "AliceCollection", "AliceToken")
        token_data = await self.client.get_token_data(token_id)
        self.assertEqual(token_data, {"name": "AliceToken"})
        self.transport.account_resource.assert_awaited_with(self.CREATOR, COLLECTIONS)
        self.transport.get_table_item.assert_awaited_with(
            "0xdata",
            "0x3::token::TokenDataId",
            "0x3::token::TokenData",
            {
                "creator": str(self.CREATOR),
                "collection": "AliceCollection",
                "name": "AliceToken",
            },
        )

    async def test_collection(self):
        self.transport.get_table_item.return_value = {"name": "AliceCollection"}
        await self.client.get_collection(str(self.CREATOR), "AliceCollection")
        self.transport.get_table_item.assert_awaited_with(
            "0xcollections",
            "0x1::string::String",
            "0x3::token::CollectionData",
            "AliceCollection",
        )

    async def test_missing_field(self):
        with self.assertRaises(ResourceNotFound):
            await self.client.get_custom_resource(
                self.CREATOR, COLLECTIONS, "missing", "u64", "u64", 1
            )

    async def test_token_not_held(self):
        self.transport.account_resource.return_value = {
            "data": {"tokens": {"handle": "0xtokens"}}
        }
        self.transport.get_table_item.side_effect = ApiError(
            "table item not found", 404
        )
        token_id = TokenId(self.CREATOR, "AliceCollection", "AliceToken")
        token = await self.client.get_token(self.CREATOR, token_id)
        self.assertEqual(token["amount"], "0")


if __name__ == "__main__":
    unittest.main()
