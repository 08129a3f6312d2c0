#!/usr/bin/env python3
"""
PUMP SWAP - Solana Client

Thin async wrapper over solana-py. Every call is bounded by a timeout and
returns None on failure; callers decide what is fatal.
"""

import asyncio
from typing import Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from pumpswap.config import BotConfig
from pumpswap.logger import PumpSwapLogger

# Default timeout for individual RPC calls (seconds)
RPC_TIMEOUT_SECONDS = 15


class SolanaClient:
    """
    Balances, account data, blockhashes and broadcast.
    """

    def __init__(self, config: BotConfig, logger: PumpSwapLogger):
        self.config = config
        self.logger = logger
        self.client = AsyncClient(config.rpc_url)

    async def get_balance(self, pubkey: Pubkey) -> Optional[float]:
        """SOL balance, None when the RPC cannot answer."""
        try:
            response = await asyncio.wait_for(
                self.client.get_balance(pubkey),
                timeout=RPC_TIMEOUT_SECONDS,
            )
            return response.value / 1e9  # Lamports to SOL
        except asyncio.TimeoutError:
            self.logger.warning("RPC timeout: get_balance")
            return None
        except Exception as e:
            self.logger.error("Failed to fetch balance", e)
            return None

    async def get_token_balance(self, owner: Pubkey, mint: Pubkey) -> Optional[float]:
        """
        UI token balance of owner for mint.

        0.0 when the owner has no token account, None when the RPC cannot answer.
        """
        try:
            response = await asyncio.wait_for(
                self.client.get_token_accounts_by_owner_json_parsed(
                    owner, TokenAccountOpts(mint=mint)
                ),
                timeout=RPC_TIMEOUT_SECONDS,
            )
            total = 0.0
            for account_info in response.value or []:
                parsed = account_info.account.data.parsed
                total += float(parsed["info"]["tokenAmount"]["uiAmount"] or 0)
            return total
        except asyncio.TimeoutError:
            self.logger.warning(f"RPC timeout: get_token_balance {owner}")
            return None
        except Exception as e:
            self.logger.error(f"Failed to fetch token balance for {owner}", e)
            return None

    async def get_latest_blockhash(self):
        """Fetch a recent blockhash for building transactions."""
        try:
            response = await asyncio.wait_for(
                self.client.get_latest_blockhash(commitment=Confirmed),
                timeout=RPC_TIMEOUT_SECONDS,
            )
            return response.value.blockhash
        except asyncio.TimeoutError:
            self.logger.warning("RPC timeout: get_latest_blockhash")
            return None
        except Exception as e:
            self.logger.error("Failed to fetch latest blockhash", e)
            return None

    async def get_account_info(self, pubkey: Pubkey) -> Optional[bytes]:
        """Fetch raw account data bytes."""
        try:
            response = await asyncio.wait_for(
                self.client.get_account_info(pubkey, commitment=Confirmed),
                timeout=RPC_TIMEOUT_SECONDS,
            )
            if response.value and response.value.data:
                return bytes(response.value.data)
            return None
        except asyncio.TimeoutError:
            self.logger.warning(f"RPC timeout: get_account_info {pubkey}")
            return None
        except Exception as e:
            self.logger.error(f"Failed to fetch account info for {pubkey}", e)
            return None

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> Optional[int]:
        """Lamports needed to keep an account of size bytes alive, None on failure."""
        try:
            response = await asyncio.wait_for(
                self.client.get_minimum_balance_for_rent_exemption(size),
                timeout=RPC_TIMEOUT_SECONDS,
            )
            return response.value
        except asyncio.TimeoutError:
            self.logger.warning("RPC timeout: get_minimum_balance_for_rent_exemption")
            return None
        except Exception as e:
            self.logger.error("Failed to fetch rent exemption", e)
            return None

    async def send_transaction(
        self,
        transaction: Transaction,
        skip_preflight: bool = False
    ) -> Optional[str]:
        """Broadcast a signed transaction; returns its signature."""
        try:
            opts = TxOpts(
                skip_preflight=skip_preflight,
                preflight_commitment=Confirmed
            )
            response = await asyncio.wait_for(
                self.client.send_transaction(transaction, opts),
                timeout=RPC_TIMEOUT_SECONDS,
            )
            return str(response.value)
        except asyncio.TimeoutError:
            self.logger.warning("RPC timeout: send_transaction")
            return None
        except Exception as e:
            self.logger.error("Failed to send transaction", e)
            return None

    async def close(self):
        await self.client.close()
