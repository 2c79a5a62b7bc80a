"""Supported EVM chain configurations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from retrace.core.config import Settings


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for a supported EVM chain."""

    name: str
    rpc_url_template: str  # Use {api_key} placeholder
    api_key_setting: str = ""  # Settings field holding the provider key


# ── Chain Registry ───────────────────────────────────────────────────────────

CHAINS: dict[str, ChainConfig] = {
    "ethereum": ChainConfig(
        name="Ethereum Mainnet",
        rpc_url_template="https://eth-mainnet.g.alchemy.com/v2/{api_key}",
        api_key_setting="alchemy_api_key",
    ),
    "sepolia": ChainConfig(
        name="Sepolia",
        rpc_url_template="https://eth-sepolia.g.alchemy.com/v2/{api_key}",
        api_key_setting="alchemy_api_key",
    ),
    "bsc": ChainConfig(
        name="BNB Smart Chain",
        rpc_url_template="https://bsc-dataseed.binance.org",
    ),
    "polygon": ChainConfig(
        name="Polygon Mainnet",
        rpc_url_template="https://polygon-mainnet.g.alchemy.com/v2/{api_key}",
        api_key_setting="alchemy_api_key",
    ),
    "arbitrum": ChainConfig(
        name="Arbitrum One",
        rpc_url_template="https://arb-mainnet.g.alchemy.com/v2/{api_key}",
        api_key_setting="alchemy_api_key",
    ),
    "optimism": ChainConfig(
        name="Optimism",
        rpc_url_template="https://opt-mainnet.g.alchemy.com/v2/{api_key}",
        api_key_setting="alchemy_api_key",
    ),
    "base": ChainConfig(
        name="Base",
        rpc_url_template="https://base-mainnet.g.alchemy.com/v2/{api_key}",
        api_key_setting="alchemy_api_key",
    ),
    "linea": ChainConfig(
        name="Linea",
        rpc_url_template="https://linea-mainnet.infura.io/v3/{api_key}",
        api_key_setting="infura_api_key",
    ),
}


def get_chain_config(chain_name: str) -> ChainConfig | None:
    """Get chain configuration by name."""
    return CHAINS.get(chain_name.lower())


def resolve_rpc_url(settings: Settings) -> str:
    """Pick the node URL: explicit ``rpc_url`` first, then the chain template.

    Raises:
        ValueError: If the chain is unknown or its template needs a missing key
    """
    if settings.rpc_url:
        return settings.rpc_url

    chain = get_chain_config(settings.chain)
    if chain is None:
        raise ValueError(f"Unsupported chain: {settings.chain}")

    if "{api_key}" not in chain.rpc_url_template:
        return chain.rpc_url_template

    api_key = getattr(settings, chain.api_key_setting, "") if chain.api_key_setting else ""
    if not api_key:
        raise ValueError(
            f"No RPC URL for {chain.name}: set RETRACE_RPC_URL or "
            f"RETRACE_{chain.api_key_setting.upper()}"
        )
    return chain.rpc_url_template.format(api_key=api_key)
