"""
Signing capability for venue actions.

The engine only needs `address` and `sign_action(action, nonce)`. The
concrete signer delegates to the official Hyperliquid SDK; anything with the
same two members can be injected instead.
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Protocol
import logging

from eth_account import Account
from hyperliquid.utils.signing import sign_l1_action

from config import normalize_private_key

logger = logging.getLogger(__name__)


class Signer(Protocol):
    address: str

    def sign_action(self, action: Dict[str, Any], nonce: int) -> Dict[str, Any]:
        ...


class HyperliquidSigner:
    """L1 action signer backed by a local private key."""

    def __init__(self, private_key: str, is_mainnet: bool = True):
        self._wallet = Account.from_key(normalize_private_key(private_key))
        self.address: str = self._wallet.address
        self.is_mainnet = is_mainnet
        logger.info(f"[SIGN] Signer ready for {self.address[:10]}... (mainnet={is_mainnet})")

    def sign_action(
        self,
        action: Dict[str, Any],
        nonce: int,
        vault_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        return sign_l1_action(
            self._wallet,
            action,
            vault_address,
            nonce,
            None,
            self.is_mainnet,
        )
