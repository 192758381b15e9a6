"""Network magic values of the Bitcoin chains."""

from __future__ import annotations

NETWORK_MAGICS = {
    "mainnet": 0xD9B4BEF9,
    "testnet": 0x0709110B,
    "testnet3": 0x0709110B,
    "signet": 0x40CF030A,
    "regtest": 0xDAB5BFFA,
    "testnet4": 0x283F161C,
}


def chain_to_network_magic(chain: str) -> int:
    """Return the 4-byte little-endian network magic for ``chain``."""
    try:
        return NETWORK_MAGICS[chain]
    except KeyError:
        raise ValueError(f"unknown chain: {chain}") from None