"""Chain metadata and chain selection.

Static registry of EVM chains keyed by numeric chain id, plus the
switch-then-register-then-switch sequence used to put a wallet on the chain
a request targets.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from walletbridge.errors import UNRECOGNIZED_CHAIN, ProviderRejectedError, UnknownChainError

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]+$")
_DEC_RE = re.compile(r"^\d+$")


@dataclass(frozen=True)
class NativeCurrency:
    """Native gas token of a chain."""

    name: str
    symbol: str
    decimals: int = 18

    def to_dict(self) -> dict:
        return {"name": self.name, "symbol": self.symbol, "decimals": self.decimals}


DEFAULT_NATIVE_CURRENCY = NativeCurrency(name="Ether", symbol="ETH", decimals=18)


@dataclass(frozen=True)
class ChainMeta:
    """Descriptive metadata for a chain."""

    id: int
    name: str
    rpc_urls: tuple[str, ...] = ()
    public_rpc_urls: tuple[str, ...] = ()
    native_currency: Optional[NativeCurrency] = None
    explorer_url: Optional[str] = None
    testnet: bool = False

    @property
    def preferred_rpc_urls(self) -> list[str]:
        """Default RPC URLs, falling back to the public list."""
        return list(self.rpc_urls or self.public_rpc_urls)

    @property
    def rpc_url(self) -> Optional[str]:
        urls = self.preferred_rpc_urls
        return urls[0] if urls else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "rpc_urls": list(self.rpc_urls),
            "native_currency": self.native_currency.to_dict() if self.native_currency else None,
            "explorer_url": self.explorer_url,
            "testnet": self.testnet,
        }


def _eth(name: str = "Ether") -> NativeCurrency:
    return NativeCurrency(name=name, symbol="ETH", decimals=18)


# ======================
# Chain Registry
# ======================

CHAINS: dict[int, ChainMeta] = {
    meta.id: meta
    for meta in (
        ChainMeta(
            id=1,
            name="Ethereum",
            rpc_urls=("https://eth.merkle.io",),
            public_rpc_urls=("https://cloudflare-eth.com",),
            native_currency=_eth(),
            explorer_url="https://etherscan.io",
        ),
        ChainMeta(
            id=11155111,
            name="Sepolia",
            rpc_urls=("https://sepolia.drpc.org",),
            native_currency=_eth("Sepolia Ether"),
            explorer_url="https://sepolia.etherscan.io",
            testnet=True,
        ),
        ChainMeta(
            id=17000,
            name="Holesky",
            rpc_urls=("https://ethereum-holesky-rpc.publicnode.com",),
            native_currency=_eth("Holesky Ether"),
            explorer_url="https://holesky.etherscan.io",
            testnet=True,
        ),
        ChainMeta(
            id=10,
            name="OP Mainnet",
            rpc_urls=("https://mainnet.optimism.io",),
            native_currency=_eth(),
            explorer_url="https://optimistic.etherscan.io",
        ),
        ChainMeta(
            id=8453,
            name="Base",
            rpc_urls=("https://mainnet.base.org",),
            native_currency=_eth(),
            explorer_url="https://basescan.org",
        ),
        ChainMeta(
            id=84532,
            name="Base Sepolia",
            rpc_urls=("https://sepolia.base.org",),
            native_currency=_eth("Sepolia Ether"),
            explorer_url="https://sepolia.basescan.org",
            testnet=True,
        ),
        ChainMeta(
            id=42161,
            name="Arbitrum One",
            rpc_urls=("https://arb1.arbitrum.io/rpc",),
            native_currency=_eth(),
            explorer_url="https://arbiscan.io",
        ),
        ChainMeta(
            id=421614,
            name="Arbitrum Sepolia",
            rpc_urls=("https://sepolia-rollup.arbitrum.io/rpc",),
            native_currency=_eth("Arbitrum Sepolia Ether"),
            explorer_url="https://sepolia.arbiscan.io",
            testnet=True,
        ),
        ChainMeta(
            id=137,
            name="Polygon",
            rpc_urls=("https://polygon-rpc.com",),
            native_currency=NativeCurrency(name="POL", symbol="POL", decimals=18),
            explorer_url="https://polygonscan.com",
        ),
        ChainMeta(
            id=80002,
            name="Polygon Amoy",
            rpc_urls=("https://rpc-amoy.polygon.technology",),
            native_currency=NativeCurrency(name="POL", symbol="POL", decimals=18),
            explorer_url="https://amoy.polygonscan.com",
            testnet=True,
        ),
        ChainMeta(
            id=56,
            name="BNB Smart Chain",
            rpc_urls=("https://bsc-dataseed.binance.org",),
            native_currency=NativeCurrency(name="BNB", symbol="BNB", decimals=18),
            explorer_url="https://bscscan.com",
        ),
        ChainMeta(
            id=43114,
            name="Avalanche",
            rpc_urls=("https://api.avax.network/ext/bc/C/rpc",),
            native_currency=NativeCurrency(name="Avalanche", symbol="AVAX", decimals=18),
            explorer_url="https://snowtrace.io",
        ),
        ChainMeta(
            id=100,
            name="Gnosis",
            rpc_urls=("https://rpc.gnosischain.com",),
            native_currency=NativeCurrency(name="xDAI", symbol="XDAI", decimals=18),
            explorer_url="https://gnosisscan.io",
        ),
        ChainMeta(
            id=59144,
            name="Linea Mainnet",
            rpc_urls=("https://rpc.linea.build",),
            native_currency=_eth("Linea Ether"),
            explorer_url="https://lineascan.build",
        ),
        ChainMeta(
            id=534352,
            name="Scroll",
            rpc_urls=("https://rpc.scroll.io",),
            native_currency=_eth(),
            explorer_url="https://scrollscan.com",
        ),
        ChainMeta(
            id=324,
            name="ZKsync Era",
            rpc_urls=("https://mainnet.era.zksync.io",),
            native_currency=_eth(),
            explorer_url="https://era.zksync.network",
        ),
        ChainMeta(
            id=42220,
            name="Celo",
            rpc_urls=("https://forno.celo.org",),
            native_currency=NativeCurrency(name="CELO", symbol="CELO", decimals=18),
            explorer_url="https://celoscan.io",
        ),
        ChainMeta(
            id=31337,
            name="Foundry",
            rpc_urls=("http://127.0.0.1:8545",),
            native_currency=_eth(),
            testnet=True,
        ),
    )
}


def get_chain_by_id(chain_id: int) -> Optional[ChainMeta]:
    """Look up a chain in the static registry."""
    return CHAINS.get(chain_id)


def parse_chain_id(value: Any) -> Optional[int]:
    """Parse a chain id given as int, decimal string or 0x hex string.

    Returns None for anything else.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        return None

    s = value.strip()
    if _HEX_RE.match(s):
        return int(s, 16)
    if _DEC_RE.match(s):
        return int(s, 10)
    return None


def to_hex_chain_id(chain_id: int) -> str:
    return hex(chain_id)


def read_pending_chain_id(payload: Mapping[str, Any]) -> Optional[int]:
    """Chain id declared by a pending request envelope (chainId, chain_id or network)."""
    for key in ("chainId", "chain_id", "network"):
        chain_id = parse_chain_id(payload.get(key))
        if chain_id is not None:
            return chain_id
    return None


class ChainResolver:
    """Resolves chain metadata and puts wallets on the right chain."""

    def __init__(self, chains: Optional[Mapping[int, ChainMeta]] = None):
        self.chains = dict(chains) if chains is not None else CHAINS

    def resolve(self, chain_id: Optional[int]) -> Optional[ChainMeta]:
        """Metadata for a chain id, or None if unknown."""
        if chain_id is None:
            return None
        return self.chains.get(chain_id)

    def add_chain_params(self, chain_id: int) -> dict:
        """Build wallet_addEthereumChain parameters.

        Raises:
            UnknownChainError: If the chain is not in the registry
        """
        meta = self.resolve(chain_id)
        if meta is None:
            raise UnknownChainError(chain_id)

        currency = meta.native_currency or DEFAULT_NATIVE_CURRENCY
        params = {
            "chainId": to_hex_chain_id(chain_id),
            "chainName": meta.name,
            "rpcUrls": meta.preferred_rpc_urls,
            "nativeCurrency": currency.to_dict(),
        }
        if meta.explorer_url:
            params["blockExplorerUrls"] = [meta.explorer_url]
        return params

    async def ensure_selected(
        self,
        wallet,
        want_chain_id: Optional[int],
        have_chain_id: Optional[int],
    ) -> None:
        """Make sure the wallet is on ``want_chain_id``.

        Wallets reject switching to a chain they do not know with code 4902;
        only then is the chain registered and the switch retried. Any other
        error (including the user declining) propagates unchanged.

        Args:
            wallet: Wallet capability wrapper
            want_chain_id: Chain the request targets (None = no requirement)
            have_chain_id: Chain the session is currently on

        Raises:
            UnknownChainError: If the wallet does not know the chain and
                neither does the registry
            ProviderRejectedError: If the wallet rejects the switch
        """
        if not want_chain_id or want_chain_id == have_chain_id:
            return

        logger.info(f"Switching wallet from chain {have_chain_id} to {want_chain_id}")
        try:
            await wallet.switch_chain(want_chain_id)
            return
        except ProviderRejectedError as e:
            if e.effective_code != UNRECOGNIZED_CHAIN:
                raise

        params = self.add_chain_params(want_chain_id)
        logger.info(f"Registering chain {want_chain_id} ({params['chainName']}) with wallet")
        await wallet.add_chain(params)
        await wallet.switch_chain(want_chain_id)
