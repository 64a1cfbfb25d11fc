# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""Client identification header sent with every node and faucet request."""

import importlib.metadata as metadata
import unittest

PACKAGE_NAME = "aptos-wallet"


class Metadata:
    APTOS_HEADER = "x-aptos-client"

    @staticmethod
    def get_aptos_header_val() -> str:
        try:
            version = metadata.version(PACKAGE_NAME)
        except metadata.PackageNotFoundError:
            # Running from a source checkout.
            version = "0.0.0"
        return f"aptos-wallet-python/{version}"


class Test(unittest.TestCase):
    def test_header_value(self):
        value = Metadata.get_aptos_header_val()
        self.assertTrue(value.startswith("aptos-wallet-python/"))


if __name__ == "__main__":
    unittest.main()
