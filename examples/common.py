# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Endpoints shared by the examples. Every value can be overridden from the
environment; the defaults point at devnet.

    APTOS_NODE_URL      fullnode REST endpoint
    APTOS_FAUCET_URL    faucet used to fund new accounts
    FAUCET_AUTH_TOKEN   optional bearer token for the faucet
"""

import os

# :!:>section_1
FAUCET_URL = os.getenv(
    "APTOS_FAUCET_URL",
    "https://faucet.devnet.aptoslabs.com",
)
FAUCET_AUTH_TOKEN = os.getenv("FAUCET_AUTH_TOKEN")
NODE_URL = os.getenv("APTOS_NODE_URL", "https://api.devnet.aptoslabs.com/v1")
# <:!:section_1
