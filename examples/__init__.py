"""
Runnable wallet examples against devnet (see ``examples.common`` for the
environment variables that select other networks)::

    python -m examples.transfer_coin
    python -m examples.nft_transfer
"""
