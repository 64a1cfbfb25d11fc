# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Create two mnemonic wallets, fund them from the faucet and move coins between
them.

    python -m examples.transfer_coin
"""

import asyncio
import logging

from aptos_wallet.async_client import FaucetClient, RestClient
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

    print("\n=== Addresses ===")
    print(f"Alice: {alice_address}")
    print(f"Bob: {bob_address}")

    await wallet.airdrop(alice_address, 100_000_000)

    print("\n=== Initial Balances ===")
    alice_balance, bob_balance = await asyncio.gather(
        wallet.get_balance(alice_address), wallet.get_balance(bob_address)
    )
    print(f"Alice: {alice_balance}")
    print(f"Bob: {bob_balance}")

    # Two transfers from the same account in parallel: the wallet orders them.
    txn_hashes = await asyncio.gather(
        wallet.transfer(alice["code"], bob_address, 1_000),
        wallet.transfer(alice["code"], bob_address, 1_000),
    )
    print(f"\nTransactions: {', '.join(txn_hashes)}")

    print("\n=== Final Balances ===")
    alice_balance, bob_balance = await asyncio.gather(
        wallet.get_balance(alice_address), wallet.get_balance(bob_address)
    )
    print(f"Alice: {alice_balance}")
    print(f"Bob: {bob_balance}")

    sent = await wallet.get_sent_events(alice_address)
    print(f"Alice sent {len(sent)} transfers")

    await rest_client.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
