"""Pytest configuration and shared fixtures."""

import pytest

from sniper_app.config.defaults import TradingParams
from sniper_app.data.models import Instrument
from sniper_app.events.bus import EventBus
from sniper_app.venues.base import TokenMetadata
from sniper_app.venues.paper import PaperVenue


@pytest.fixture
def instrument() -> Instrument:
    """Spot instrument on the paper venue."""
    return Instrument(venue="paper", symbol="TKN/USDT")


@pytest.fixture
def token_instrument() -> Instrument:
    """On-chain token instrument on the paper venue."""
    return Instrument(
        venue="paper",
        symbol="NEW",
        token_address="0xAbC0000000000000000000000000000000000001",
        network="ethereum",
    )


@pytest.fixture
def venue() -> PaperVenue:
    """Paper venue funded with quote currency."""
    return PaperVenue("paper", balances={"USDT": 10_000.0})


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def captured_events(event_bus):
    """Every event published on ``event_bus``."""
    events = []
    event_bus.subscribe_all(events.append)
    return events


@pytest.fixture
def trading_params() -> TradingParams:
    return TradingParams(position_size=100.0, stop_loss_pct=2.0, take_profit_pct=5.0)


def make_token(index: int, symbol: str = None) -> TokenMetadata:
    """Token metadata with a deterministic address."""
    return TokenMetadata(
        address=f"0x{index:040x}",
        symbol=symbol or f"TK{index}",
        name=f"Token {index}",
        decimals=18,
        network="ethereum",
    )


@pytest.fixture
def token_factory():
    return make_token
