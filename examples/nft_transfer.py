# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Alice creates a collection and a token, offers it to Bob, Bob claims it, and
both sides read their holdings back from the event streams.

    python -m examples.nft_transfer
"""

import asyncio
import json
import logging

from aptos_wallet.async_client import FaucetClient, RestClient
from aptos_wallet.token_events import TokenId
from aptos_wallet.wallet_client import WalletClient

from .common import FAUCET_AUTH_TOKEN, FAUCET_URL, NODE_URL


async def main():
    rest_client = RestClient(NODE_URL)
    faucet_client = FaucetClient(FAUCET_URL, rest_client, FAUCET_AUTH_TOKEN)
    wallet = WalletClient(rest_client, faucet_client)

    alice = await wallet.create_wallet()
    bob = await wallet.create_wallet()
    alice_address = wallet.account_from_mnemonic(alice["code"]).address()
    bob_address = wallet.account_from_mnemonic(bob["code"]).address()
    await asyncio.gather(
        wallet.airdrop(alice_address, 100_000_000),
        wallet.airdrop(bob_address, 100_000_000),
    )

    collection_name = "Alice's"
    token_name = "Alice's first token"

    print("\n=== Creating Collection and Token ===")
    await wallet.create_nft_collection(
        alice["code"], collection_name, "Alice's simple collection", "https://aptos.dev"
    )
    await wallet.create_nft(
        alice["code"],
        collection_name,
        token_name,
        "Alice's simple token",
        1,
        "https://aptos.dev/img/nyan.jpeg",
    )

    collection_data = await wallet.get_collection(alice_address, collection_name)
    collection_json = json.dumps(collection_data, indent=4, sort_keys=True)
    print(f"Alice's collection: {collection_json}")
    token_id = TokenId(alice_address, collection_name, token_name)
    token_data = await wallet.get_token(token_id)
    print(f"Alice's token data: {json.dumps(token_data, indent=4, sort_keys=True)}")

    print("\n=== Transferring the token to Bob ===")
    await wallet.offer_nft(
        alice["code"], bob_address, alice_address, collection_name, token_name, 1
    )
    await wallet.claim_nft(
        bob["code"], alice_address, alice_address, collection_name, token_name
    )

    print(f"Alice owns: {await wallet.get_owned_token_ids(alice_address)}")
    print(f"Alice created: {await wallet.get_created_token_ids(alice_address)}")
    print(f"Bob owns: {await wallet.get_owned_token_ids(bob_address)}")

    await rest_client.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
