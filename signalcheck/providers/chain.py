"""Ordered fallback over quote providers.

The order is explicit configuration (``providers.daily`` / ``providers.intraday``
in config.yaml); the first provider returning a candle wins.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence

from signalcheck.core.cache import ResponseCache
from signalcheck.core.config import api_keys
from signalcheck.core.logger import logger
from signalcheck.core.market_hours import MarketSession
from signalcheck.models.datatypes import PricePoint
from signalcheck.providers.alphavantage import AlphaVantageDailyProvider, AlphaVantageIntradayProvider
from signalcheck.providers.base import PriceDataProvider
from signalcheck.providers.twelvedata import TwelveDataProvider
from signalcheck.providers.yahoo import YahooFinanceProvider


class PriceProviderChain(PriceDataProvider):
    """Try each provider in order with the same arguments.

    Args:
        providers: Providers in fallback order, primary first.
    """

    def __init__(self, providers: Sequence[PriceDataProvider]) -> None:
        if not providers:
            raise ValueError("PriceProviderChain needs at least one provider")
        self.providers: List[PriceDataProvider] = list(providers)

    def get_price_at(self, ticker: str, instant: datetime) -> Optional[PricePoint]:
        for provider in self.providers:
            name = provider.get_provider_name()
            point = provider.get_price_at(ticker, instant)
            if point is not None:
                logger.debug(f"PriceProviderChain: {ticker} at {instant} served by {name}")
                return point
            logger.info(f"PriceProviderChain: {name} had no price for {ticker} at {instant}, falling back")
        logger.warning(f"PriceProviderChain: no provider had a price for {ticker} at {instant}")
        return None

    def is_valid_ticker(self, ticker: str) -> bool:
        return any(provider.is_valid_ticker(ticker) for provider in self.providers)

    def check_ticker(self, ticker: str) -> Dict[str, bool]:
        """Ask every provider separately; useful when a ticker keeps failing validation."""
        return {provider.get_provider_name(): provider.is_valid_ticker(ticker) for provider in self.providers}

    def get_provider_name(self) -> str:
        return " > ".join(provider.get_provider_name() for provider in self.providers)


def build_provider(name: str, mode: str, cache: Optional[ResponseCache],
                   session: MarketSession, timeout: float) -> PriceDataProvider:
    """
    Instantiate one provider variant for ``mode`` (``daily`` or ``intraday``).

    Raises:
        ValueError: For an unknown name, or a name that has no variant for ``mode``.
    """
    if name == "twelvedata" and mode == "daily":
        return TwelveDataProvider(api_keys("TWELVEDATA_API_KEY"), cache, session, timeout)
    if name == "alphavantage" and mode == "daily":
        return AlphaVantageDailyProvider(api_keys("ALPHAVANTAGE_API_KEY"), cache, session, timeout)
    if name == "alphavantage" and mode == "intraday":
        return AlphaVantageIntradayProvider(api_keys("ALPHAVANTAGE_API_KEY"), cache, session, timeout)
    if name == "yahoo":
        return YahooFinanceProvider("1d" if mode == "daily" else "5m", session)
    raise ValueError(f"no {mode} price provider named {name!r}")


def build_chain(config: dict, mode: Optional[str] = None,
                cache: Optional[ResponseCache] = None) -> PriceProviderChain:
    """Build the chain configured for ``mode`` (defaults to ``validation.mode``)."""
    mode = mode or config["validation"]["mode"]
    providers_cfg = config["providers"]
    session = MarketSession.from_config(config)
    timeout = providers_cfg.get("timeout_seconds", 15)
    providers = [
        build_provider(name, mode, cache, session, timeout)
        for name in providers_cfg[mode]
    ]
    chain = PriceProviderChain(providers)
    logger.info(f"PriceProviderChain: {mode} order {chain.get_provider_name()}")
    return chain
