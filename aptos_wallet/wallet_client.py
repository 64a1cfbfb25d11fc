# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
High level wallet operations keyed by mnemonic phrase.

Every write operation derives the account from the phrase, reserves the
account's next sequence number, builds, signs and submits the transaction,
then waits for it to commit and returns its hash. Failures surface as
:class:`~aptos_wallet.errors.WalletError` subclasses.

Example::

    rest_client = RestClient(NODE_URL)
    wallet = WalletClient(rest_client, FaucetClient(FAUCET_URL, rest_client))
    alice = await wallet.create_wallet()
    await wallet.create_nft_collection(alice["code"], "Alice", "desc", "https://...")
"""

from __future__ import annotations

import asyncio
import logging
import unittest
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from .account import Account
from .account_address import AccountAddress
from .account_sequence_number import AccountSequenceNumbers
from .async_client import (
    COIN_STORE,
    AccountNotFound,
    ClientConfig,
    FaucetClient,
    ResourceNotFound,
    Transport,
)
from .errors import (
    InvalidArgument,
    InvalidMnemonic,
    SubmissionRejected,
    TransactionTimeout,
    TransportFailure,
)
from .fakes import FakeChain, FakeFaucet
from .payloads import (
    CancelOffer,
    ClaimToken,
    CreateCollection,
    CreateToken,
    GenericCall,
    OfferToken,
    Payload,
    TransactionBuilder,
    Transfer,
)
from .submission import SubmissionCoordinator
from .token_client import TokenClient
from .token_events import EventReconciler, TokenId, TokenQuery

Address = Union[str, AccountAddress]


class WalletClient:
    """Mnemonic-driven facade over the node and faucet."""

    def __init__(
        self,
        rest_client: Transport,
        faucet_client: Optional[FaucetClient] = None,
        config: Optional[ClientConfig] = None,
    ):
        self.rest_client = rest_client
        self.faucet_client = faucet_client
        self.config = (
            config or getattr(rest_client, "client_config", None) or ClientConfig()
        )
        self.builder = TransactionBuilder(self.config)
        self.coordinator = SubmissionCoordinator(rest_client, self.config)
        self.sequence_numbers = AccountSequenceNumbers(rest_client)
        self.reconciler = EventReconciler(rest_client, self.config)
        self.token_client = TokenClient(rest_client)

    #
    # Accounts
    #

    def account_from_mnemonic(
        self, code: str, address: Optional[Address] = None
    ) -> Account:
        return Account.from_mnemonic(code, address)

    async def create_wallet(self) -> Dict[str, str]:
        """Generate a phrase, derive its account and fund it from the faucet."""
        code = Account.generate_mnemonic()
        account = Account.from_mnemonic(code)
        await self._fund_best_effort(account)
        return {"code": code, "address_key": account.address().no_prefix()}

    def get_uninitialized_account(self) -> Dict[str, str]:
        code = Account.generate_mnemonic()
        account = Account.from_mnemonic(code)
        return {
            "code": code,
            "auth_key": account.auth_key(),
            "address_key": account.address().no_prefix(),
        }

    async def import_wallet(
        self, code: str, address: Optional[Address] = None
    ) -> Dict[str, str]:
        account = Account.from_mnemonic(code, address)
        await self._fund_best_effort(account)
        return {
            "auth_key": account.auth_key(),
            "address_key": account.address().no_prefix(),
        }

    async def airdrop(self, address: Address, amount: int) -> List[str]:
        if self.faucet_client is None:
            raise TransportFailure("No faucet configured", retryable=False)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidArgument("amount must be a positive integer", "amount")
        txn_hashes = await self.faucet_client.fund_account(
            AccountAddress.ensure(address), amount
        )
        for txn_hash in txn_hashes:
            (await self.coordinator.confirm(txn_hash)).raise_for_status()
        return txn_hashes

    async def _fund_best_effort(self, account: Account):
        # Funding only exists on dev networks; the account is usable without it.
        if self.faucet_client is None:
            return
        try:
            await self.airdrop(account.auth_key(), self.config.faucet_amount)
        except (TransportFailure, SubmissionRejected, TransactionTimeout) as e:
            logging.warning(f"Funding {account.address()} from the faucet failed: {e}")

    async def get_balance(self, address: Address) -> Optional[int]:
        """The AptosCoin balance, or None when the account holds no coin store."""
        try:
            resource = await self.rest_client.account_resource(
                AccountAddress.ensure(address), COIN_STORE
            )
        except (AccountNotFound, ResourceNotFound):
            return None
        return int(resource["data"]["coin"]["value"])

    async def get_account_resources(self, address: Address) -> List[Dict[str, Any]]:
        return await self.rest_client.account_resources(AccountAddress.ensure(address))

    async def get_sent_events(self, address: Address) -> List[Dict[str, Any]]:
        return await self.reconciler.events(
            AccountAddress.ensure(address), COIN_STORE, "withdraw_events"
        )

    async def get_received_events(self, address: Address) -> List[Dict[str, Any]]:
        return await self.reconciler.events(
            AccountAddress.ensure(address), COIN_STORE, "deposit_events"
        )

    #
    # Transactions
    #

    async def submit(self, account: Account, payload: Payload) -> str:
        """Reserve, build, sign and submit under the account's lock, then confirm."""
        chain_id = await self.rest_client.chain_id()
        sequence_number = self.sequence_numbers[account.address()]
        async with sequence_number.next_sequence_number() as seq_num:
            raw_transaction = self.builder.build(
                account.address(), seq_num, payload, chain_id
            )
            signed_transaction = account.create_signed_transaction(raw_transaction)
            sequence_number.mark_in_flight()
            txn_hash = await self.coordinator.submit(signed_transaction)
        outcome = await self.coordinator.confirm(txn_hash)
        return outcome.raise_for_status()

    async def transfer(
        self,
        code: str,
        recipient: Address,
        amount: int,
        sender_address: Optional[Address] = None,
    ) -> str:
        account = Account.from_mnemonic(code, sender_address)
        return await self.submit(account, Transfer(recipient, amount))

    async def create_nft_collection(
        self,
        code: str,
        name: str,
        description: str,
        uri: str,
        address: Optional[Address] = None,
    ) -> str:
        account = Account.from_mnemonic(code, address)
        return await self.submit(account, CreateCollection(name, description, uri))

    async def create_nft(
        self,
        code: str,
        collection_name: str,
        name: str,
        description: str,
        supply: int,
        uri: str,
        address: Optional[Address] = None,
        royalty_points_per_million: int = 0,
    ) -> str:
        account = Account.from_mnemonic(code, address)
        payload = CreateToken(
            account.address(),
            collection_name,
            name,
            description,
            supply,
            uri,
            royalty_points_per_million,
        )
        return await self.submit(account, payload)

    async def offer_nft(
        self,
        code: str,
        receiver: Address,
        creator: Address,
        collection_name: str,
        token_name: str,
        amount: int,
        address: Optional[Address] = None,
        property_version: int = 0,
    ) -> str:
        account = Account.from_mnemonic(code, address)
        payload = OfferToken(
            receiver, creator, collection_name, token_name, amount, property_version
        )
        return await self.submit(account, payload)

    async def cancel_nft_offer(
        self,
        code: str,
        receiver: Address,
        creator: Address,
        collection_name: str,
        token_name: str,
        address: Optional[Address] = None,
        property_version: int = 0,
    ) -> str:
        account = Account.from_mnemonic(code, address)
        payload = CancelOffer(
            receiver, creator, collection_name, token_name, property_version
        )
        return await self.submit(account, payload)

    async def claim_nft(
        self,
        code: str,
        sender: Address,
        creator: Address,
        collection_name: str,
        token_name: str,
        address: Optional[Address] = None,
        property_version: int = 0,
    ) -> str:
        account = Account.from_mnemonic(code, address)
        payload = ClaimToken(
            sender, creator, collection_name, token_name, property_version
        )
        return await self.submit(account, payload)

    async def sign_generic_transaction(
        self,
        code: str,
        function: str,
        *args: Any,
        type_arguments: Tuple[str, ...] = (),
        address: Optional[Address] = None,
    ) -> str:
        account = Account.from_mnemonic(code, address)
        return await self.submit(account, GenericCall(function, args, type_arguments))

    #
    # Tokens
    #

    async def get_token_ids(
        self, address: Address, query: TokenQuery = TokenQuery.OWNED
    ) -> Set[TokenId]:
        return await self.reconciler.token_ids(AccountAddress.ensure(address), query)

    async def get_owned_token_ids(self, address: Address) -> Set[TokenId]:
        return await self.get_token_ids(address, TokenQuery.OWNED)

    async def get_created_token_ids(self, address: Address) -> Set[TokenId]:
        return await self.get_token_ids(address, TokenQuery.MINTED)

    async def get_all_token_ids(self, address: Address) -> Set[TokenId]:
        return await self.get_token_ids(address, TokenQuery.ALL)

    async def get_tokens(self, address: Address) -> List[Dict[str, Any]]:
        """Token data for every token the account ever received."""
        token_ids = await self.get_all_token_ids(address)
        return await self.token_client.get_tokens_data(token_ids)

    async def get_owned_tokens(self, address: Address) -> List[Dict[str, Any]]:
        return await self.token_client.get_tokens_data(
            await self.get_owned_token_ids(address)
        )

    async def get_created_tokens(self, address: Address) -> List[Dict[str, Any]]:
        return await self.token_client.get_tokens_data(
            await self.get_created_token_ids(address)
        )

    async def get_token(self, token_id: TokenId) -> Dict[str, Any]:
        return await self.token_client.get_token_data(token_id)

    async def get_collection(
        self, address: Address, collection_name: str
    ) -> Dict[str, Any]:
        return await self.token_client.get_collection(address, collection_name)

    async def get_custom_resource(
        self,
        address: Address,
        resource_type: str,
        field_name: str,
        key_type: str,
        value_type: str,
        key: Any,
    ) -> Any:
        return await self.token_client.get_custom_resource(
            address, resource_type, field_name, key_type, value_type, key
        )


class Test(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.chain = FakeChain()
        self.faucet = FakeFaucet(self.chain)
        self.wallet = WalletClient(
            self.chain,
            self.faucet,  # type: ignore[arg-type]
            ClientConfig(poll_interval_secs=0.01, transaction_wait_in_seconds=0.1),
        )

    async def new_account(self, funds: int = 10000) -> Tuple[str, AccountAddress]:
        code = self.wallet.get_uninitialized_account()["code"]
        address = self.wallet.account_from_mnemonic(code).address()
        if funds:
            await self.wallet.airdrop(address, funds)
        return code, address

    async def test_nft_offer_and_claim(self):
        alice_code, alice = await self.new_account()
        bob_code, bob = await self.new_account()

        await self.wallet.create_nft_collection(
            alice_code,
            "AliceCollection",
            "Alice's simple collection",
            "https://aptos.dev",
        )
        await self.wallet.create_nft(
            alice_code,
            "AliceCollection",
            "AliceToken",
            "Alice's simple token",
            1,
            "https://aptos.dev/img/nyan.jpeg",
        )
        token_id = TokenId(alice, "AliceCollection", "AliceToken")
        self.assertEqual(await self.wallet.get_owned_token_ids(alice), {token_id})

        await self.wallet.offer_nft(
            alice_code, bob, alice, "AliceCollection", "AliceToken", 1
        )
        await self.wallet.claim_nft(
            bob_code, alice, alice, "AliceCollection", "AliceToken"
        )

        self.assertEqual(await self.wallet.get_owned_token_ids(bob), {token_id})
        self.assertEqual(await self.wallet.get_owned_token_ids(alice), set())
        self.assertEqual(await self.wallet.get_created_token_ids(alice), {token_id})
        self.assertEqual(await self.wallet.get_created_token_ids(bob), set())

        tokens = await self.wallet.get_owned_tokens(bob)
        self.assertEqual([token["name"] for token in tokens], ["AliceToken"])
        collection = await self.wallet.get_collection(alice, "AliceCollection")
        self.assertEqual(collection["uri"], "https://aptos.dev")

    async def test_cancel_offer(self):
        alice_code, alice = await self.new_account()
        _, bob = await self.new_account()
        await self.wallet.create_nft_collection(alice_code, "C", "d", "u")
        await self.wallet.create_nft(alice_code, "C", "T", "d", 1, "u")
        await self.wallet.offer_nft(alice_code, bob, alice, "C", "T", 1)
        self.assertEqual(await self.wallet.get_owned_token_ids(alice), set())

        await self.wallet.cancel_nft_offer(alice_code, bob, alice, "C", "T")
        # Quantity is not tracked: the earlier withdrawal still hides the token.
        self.assertEqual(await self.wallet.get_owned_token_ids(alice), set())
        self.assertEqual(
            await self.wallet.get_all_token_ids(alice), {TokenId(alice, "C", "T")}
        )

    async def test_transfer_and_balance(self):
        alice_code, alice = await self.new_account(1000)
        _, bob = await self.new_account(0)
        await self.wallet.transfer(alice_code, bob, 300)
        self.assertEqual(await self.wallet.get_balance(alice), 700)
        self.assertEqual(await self.wallet.get_balance(bob), 300)
        self.assertEqual(len(await self.wallet.get_sent_events(alice)), 1)
        self.assertEqual(len(await self.wallet.get_received_events(bob)), 1)
        self.assertIsNone(
            await self.wallet.get_balance(AccountAddress.from_str_relaxed("0xdead"))
        )

    async def test_execution_failure_is_rejected(self):
        alice_code, _ = await self.new_account(10)
        _, bob = await self.new_account(0)
        with self.assertRaises(SubmissionRejected) as cm:
            await self.wallet.transfer(alice_code, bob, 300)
        self.assertEqual(cm.exception.reason, "Move abort: EINSUFFICIENT_BALANCE")

    async def test_concurrent_transfers_use_distinct_sequence_numbers(self):
        alice_code, _ = await self.new_account()
        _, bob = await self.new_account(0)
        await asyncio.gather(
            *[self.wallet.transfer(alice_code, bob, 10) for _ in range(5)]
        )
        self.assertEqual(
            sorted(s.transaction.sequence_number for s in self.chain.submitted),
            [0, 1, 2, 3, 4],
        )
        self.assertEqual(await self.wallet.get_balance(bob), 50)

    async def test_timeout_then_next_sequence_number(self):
        alice_code, _ = await self.new_account()
        _, bob = await self.new_account(0)
        self.chain.hold_pending = True
        with self.assertRaises(TransactionTimeout):
            await self.wallet.transfer(alice_code, bob, 10)
        self.assertEqual(len(self.chain.submitted), 1)

        with self.assertRaises(TransactionTimeout):
            await self.wallet.transfer(alice_code, bob, 10)
        self.assertEqual(
            [s.transaction.sequence_number for s in self.chain.submitted], [0, 1]
        )

    async def test_cancelled_submission_keeps_sequence_number(self):
        alice_code, _ = await self.new_account()
        _, bob = await self.new_account(0)
        self.chain.hold_pending = True
        self.chain.stall = asyncio.Event()

        task = asyncio.ensure_future(self.wallet.transfer(alice_code, bob, 10))
        while not self.chain.submitted:
            await asyncio.sleep(0)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.chain.stall = None
        with self.assertRaises(TransactionTimeout):
            await self.wallet.transfer(alice_code, bob, 10)
        self.assertEqual(
            [s.transaction.sequence_number for s in self.chain.submitted], [0, 1]
        )

    async def test_invalid_mnemonic_submits_nothing(self):
        _, bob = await self.new_account(0)
        with self.assertRaises(InvalidMnemonic):
            await self.wallet.transfer("not a mnemonic", bob, 10)
        self.assertEqual(self.chain.submitted, [])

    async def test_generic_transaction(self):
        alice_code, _ = await self.new_account(1000)
        _, bob = await self.new_account(0)
        await self.wallet.sign_generic_transaction(
            alice_code, "0x1::aptos_account::transfer", bob, 25
        )
        self.assertEqual(await self.wallet.get_balance(bob), 25)

    async def test_create_and_import_wallet(self):
        created = await self.wallet.create_wallet()
        self.assertEqual(len(created["address_key"]), 64)
        self.assertEqual(self.faucet.funded[-1][1], ClientConfig.faucet_amount)

        rotated = "0x" + "42" * 32
        imported = await self.wallet.import_wallet(created["code"], rotated)
        self.assertEqual(imported["address_key"], "42" * 32)
        self.assertEqual(imported["auth_key"], "0x" + created["address_key"])

    async def test_faucet_failure_is_not_fatal(self):
        async def failing_fund(address, amount):
            raise TransportFailure("faucet down")

        self.faucet.fund_account = failing_fund  # type: ignore[assignment]
        created = await self.wallet.create_wallet()
        self.assertIn("code", created)


if __name__ == "__main__":
    unittest.main()
