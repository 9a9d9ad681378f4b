"""
Data models for the Deriv API service.
Uses Decimal for all monetary/price values — no floating point errors.
Responses are only cast, never reshaped; the original payload stays in `raw`.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional


def _dec(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


@dataclass
class Tick:
    """Single price tick from a `ticks` stream."""
    symbol: str
    quote: Decimal
    epoch: int              # Unix seconds
    ask: Optional[Decimal] = None
    bid: Optional[Decimal] = None
    pip_size: Optional[int] = None
    id: Optional[str] = None    # Subscription id
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "Tick":
        tick = response["tick"]
        return cls(
            symbol=str(tick["symbol"]),
            quote=Decimal(str(tick["quote"])),
            epoch=int(tick["epoch"]),
            ask=_dec(tick.get("ask")),
            bid=_dec(tick.get("bid")),
            pip_size=_int(tick.get("pip_size")),
            id=tick.get("id"),
            raw=response,
        )


@dataclass
class ActiveSymbol:
    symbol: str
    display_name: str
    market: str
    submarket: str
    exchange_is_open: bool
    is_trading_suspended: bool
    pip: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActiveSymbol":
        return cls(
            symbol=str(data["symbol"]),
            display_name=str(data.get("display_name", "")),
            market=str(data.get("market", "")),
            submarket=str(data.get("submarket", "")),
            exchange_is_open=bool(data.get("exchange_is_open", 0)),
            is_trading_suspended=bool(data.get("is_trading_suspended", 0)),
            pip=_dec(data.get("pip")),
        )


@dataclass
class ActiveSymbolsResponse:
    symbols: List[ActiveSymbol]
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "ActiveSymbolsResponse":
        return cls(
            symbols=[ActiveSymbol.from_dict(s) for s in response.get("active_symbols", [])],
            raw=response,
        )


@dataclass
class ContractOffering:
    """One entry of `contracts_for.available`."""
    contract_type: str
    contract_category: str
    contract_display: str
    expiry_type: str
    min_contract_duration: str
    max_contract_duration: str
    barriers: int
    sentiment: str
    underlying_symbol: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContractOffering":
        return cls(
            contract_type=str(data["contract_type"]),
            contract_category=str(data.get("contract_category", "")),
            contract_display=str(data.get("contract_display", "")),
            expiry_type=str(data.get("expiry_type", "")),
            min_contract_duration=str(data.get("min_contract_duration", "")),
            max_contract_duration=str(data.get("max_contract_duration", "")),
            barriers=int(data.get("barriers", 0)),
            sentiment=str(data.get("sentiment", "")),
            underlying_symbol=str(data.get("underlying_symbol", "")),
        )


@dataclass
class ContractsForSymbolResponse:
    symbol: str
    available: List[ContractOffering]
    spot: Optional[Decimal] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "ContractsForSymbolResponse":
        contracts = response.get("contracts_for", {})
        return cls(
            symbol=str(response.get("echo_req", {}).get("contracts_for", "")),
            available=[ContractOffering.from_dict(c) for c in contracts.get("available", [])],
            spot=_dec(contracts.get("spot")),
            raw=response,
        )


@dataclass
class PriceProposalRequest:
    amount: Decimal
    basis: str              # "stake" or "payout"
    contract_type: str      # e.g. "CALL", "PUT"
    currency: str
    duration: int
    duration_unit: str      # t, s, m, h, d
    symbol: str
    barrier: Optional[str] = None
    subscribe: bool = False

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "proposal": 1,
            "amount": float(self.amount),
            "basis": self.basis,
            "contract_type": self.contract_type,
            "currency": self.currency,
            "duration": int(self.duration),
            "duration_unit": self.duration_unit,
            "symbol": self.symbol,
        }
        if self.barrier is not None:
            payload["barrier"] = self.barrier
        if self.subscribe:
            payload["subscribe"] = 1
        return payload


@dataclass
class PriceProposalResponse:
    id: str
    ask_price: Decimal
    payout: Decimal
    spot: Optional[Decimal] = None
    spot_time: Optional[int] = None
    date_start: Optional[int] = None
    longcode: str = ""
    display_value: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "PriceProposalResponse":
        proposal = response["proposal"]
        return cls(
            id=str(proposal["id"]),
            ask_price=Decimal(str(proposal["ask_price"])),
            payout=Decimal(str(proposal["payout"])),
            spot=_dec(proposal.get("spot")),
            spot_time=_int(proposal.get("spot_time")),
            date_start=_int(proposal.get("date_start")),
            longcode=str(proposal.get("longcode", "")),
            display_value=str(proposal.get("display_value", "")),
            raw=response,
        )


@dataclass
class BuyContractRequest:
    buy: str                # Proposal id
    price: Decimal          # Maximum price willing to pay

    def to_payload(self) -> Dict[str, Any]:
        return {"buy": self.buy, "price": float(self.price)}


@dataclass
class BuyContractResponse:
    contract_id: int
    transaction_id: int
    buy_price: Decimal
    payout: Decimal
    balance_after: Decimal
    longcode: str = ""
    shortcode: str = ""
    purchase_time: Optional[int] = None
    start_time: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "BuyContractResponse":
        buy = response["buy"]
        return cls(
            contract_id=int(buy["contract_id"]),
            transaction_id=int(buy["transaction_id"]),
            buy_price=Decimal(str(buy["buy_price"])),
            payout=Decimal(str(buy["payout"])),
            balance_after=Decimal(str(buy["balance_after"])),
            longcode=str(buy.get("longcode", "")),
            shortcode=str(buy.get("shortcode", "")),
            purchase_time=_int(buy.get("purchase_time")),
            start_time=_int(buy.get("start_time")),
            raw=response,
        )
