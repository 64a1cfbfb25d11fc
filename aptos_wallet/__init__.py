# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Aptos wallet client.

Create accounts from BIP-39 mnemonic phrases, sign and submit coin transfers
and token (NFT) transactions, and reconstruct token ownership from an
account's deposit and withdrawal events.

Modules:
    - :mod:`aptos_wallet.wallet_client`: the :class:`WalletClient` facade
    - :mod:`aptos_wallet.account`: mnemonic to key pair and address
    - :mod:`aptos_wallet.payloads`: typed entry function payloads and the builder
    - :mod:`aptos_wallet.transactions`: raw/signed envelopes and signing
    - :mod:`aptos_wallet.submission`: single-shot submission and confirmation
    - :mod:`aptos_wallet.token_events`: ownership reconciliation from events
    - :mod:`aptos_wallet.async_client`: the httpx node and faucet transport
    - :mod:`aptos_wallet.hex_string`, :mod:`aptos_wallet.bcs`: encodings
    - :mod:`aptos_wallet.errors`: the :class:`WalletError` taxonomy

Example::

    import asyncio

    from aptos_wallet.async_client import FaucetClient, RestClient
    from aptos_wallet.wallet_client import WalletClient

    async def main():
        rest_client = RestClient("https://fullnode.devnet.aptoslabs.com/v1")
        faucet_client = FaucetClient("https://faucet.devnet.aptoslabs.com", rest_client)
        wallet = WalletClient(rest_client, faucet_client)
        alice = await wallet.create_wallet()
        print(await wallet.get_balance(alice["address_key"]))
        await rest_client.close()

    asyncio.run(main())
"""
