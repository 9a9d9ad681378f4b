"""
Deriv API Service.
Thin façade over DerivWSClient: forwards requests, casts responses and keeps
one unsubscribe handle per active stream so they can all be cancelled.
"""

from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
import logging

from config import DerivConfig
from exchange.deriv_ws import DerivWSClient
from exchange.models import (
    ActiveSymbolsResponse,
    BuyContractRequest,
    BuyContractResponse,
    ContractsForSymbolResponse,
    PriceProposalRequest,
    PriceProposalResponse,
    Tick,
)

logger = logging.getLogger(__name__)

TickCallback = Callable[[Tick], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], Awaitable[None]]


class DerivAPIService:
    """Deriv trading API wrapper."""

    def __init__(self, config: DerivConfig, client: Optional[DerivWSClient] = None):
        self.config = config
        self.api = client or DerivWSClient(
            url=config.url,
            ping_interval=config.ping_interval,
            request_timeout=config.request_timeout,
        )
        self._subscriptions: Dict[str, Unsubscribe] = {}

    @property
    def active_subscriptions(self) -> List[str]:
        return list(self._subscriptions)

    async def connect(self):
        """Open the connection; authorize when an API token is configured."""
        try:
            await self.api.connect()
        except Exception as e:
            logger.error(f"Error connecting to Deriv API: {e}")
            raise

        if self.config.api_token:
            await self.authorize()

    async def __aenter__(self) -> "DerivAPIService":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.disconnect()

    async def authorize(self, token: Optional[str] = None) -> Dict[str, Any]:
        """Authorize the connection. Required before buying contracts."""
        try:
            response = await self.api.send({"authorize": token or self.config.api_token})
        except Exception as e:
            logger.error(f"Error authorizing: {e}")
            raise
        account = response.get("authorize", {})
        logger.info(f"[API] Authorized as {account.get('loginid')} ({account.get('currency')})")
        return response

    async def subscribe_ticks(self, symbol: str, callback: Optional[TickCallback] = None):
        """
        Stream ticks for a symbol (e.g. "R_100").
        Each tick goes to `callback`, or is logged when none is given.
        Subscribing to the same symbol again replaces the previous stream.
        """
        key = f"ticks_{symbol}"

        async def on_tick(response: Dict[str, Any]):
            tick = Tick.from_response(response)
            if callback is None:
                logger.info(f"Tick: {tick}")
                return
            result = callback(tick)
            if asyncio.iscoroutine(result):
                await result

        try:
            subscription = await self.api.subscribe({"ticks": symbol}, on_tick)
        except Exception as e:
            logger.error(f"Error subscribing to ticks: {e}")
            raise

        # Swap only after the await; a concurrent call may have stored a handle meanwhile
        previous = self._subscriptions.pop(key, None)
        self._subscriptions[key] = subscription.unsubscribe
        if previous is not None:
            try:
                await previous()
            except Exception as e:
                logger.error(f"Error unsubscribing {key}: {e}")
                raise

    async def get_active_symbols(self) -> ActiveSymbolsResponse:
        """Get all active trading symbols."""
        try:
            response = await self.api.send({
                "active_symbols": "brief",
                "product_type": "basic",
            })
        except Exception as e:
            logger.error(f"Error fetching active symbols: {e}")
            raise
        return ActiveSymbolsResponse.from_response(response)

    async def get_contracts_for_symbol(self, symbol: str) -> ContractsForSymbolResponse:
        """Get contracts available for a symbol."""
        try:
            response = await self.api.send({"contracts_for": symbol})
        except Exception as e:
            logger.error(f"Error fetching contracts: {e}")
            raise
        return ContractsForSymbolResponse.from_response(response)

    async def get_price_proposal(self, request: PriceProposalRequest) -> PriceProposalResponse:
        """Request a price proposal for a contract."""
        try:
            response = await self.api.send(request.to_payload())
        except Exception as e:
            logger.error(f"Error getting price proposal: {e}")
            raise
        return PriceProposalResponse.from_response(response)

    async def buy_contract(self, request: BuyContractRequest) -> BuyContractResponse:
        """Buy a contract from a previously received proposal."""
        try:
            response = await self.api.send(request.to_payload())
        except Exception as e:
            logger.error(f"Error buying contract: {e}")
            raise
        return BuyContractResponse.from_response(response)

    async def unsubscribe(self, key: str):
        """Cancel a single stream by key (e.g. "ticks_R_100")."""
        unsubscribe = self._subscriptions.pop(key, None)
        if unsubscribe is None:
            return
        try:
            await unsubscribe()
        except Exception as e:
            logger.error(f"Error unsubscribing {key}: {e}")
            raise

    async def unsubscribe_all(self):
        """Cancel every active stream and clear the registry."""
        subscriptions = list(self._subscriptions.items())
        self._subscriptions.clear()

        errors = []
        for key, unsubscribe in subscriptions:
            try:
                await unsubscribe()
            except Exception as e:
                logger.error(f"Error unsubscribing {key}: {e}")
                errors.append(e)

        if errors:
            raise errors[0]

    async def disconnect(self):
        """Cancel all streams and close the WebSocket connection."""
        try:
            await self.unsubscribe_all()
        finally:
            await self.api.disconnect()
