"""
Chain access layer.

Rate-limited web3 client, Multicall3 batching and call encoding.
Kept free of re-exports so lightweight modules can import the ABI helpers
without pulling in configuration.
"""
