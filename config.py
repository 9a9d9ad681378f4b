"""
Deriv API Service — Configuration
Connection and runtime parameters in one place.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_ENDPOINT = "wss://ws.derivws.com/websockets/v3"


@dataclass
class DerivConfig:
    app_id: str = "1089"                # Public demo app id
    endpoint: Optional[str] = None      # Falls back to DEFAULT_ENDPOINT
    api_token: str = ""                 # Needed for buy; authorize on connect when set
    language: str = ""
    request_timeout: float = 30.0       # Seconds per request
    ping_interval: int = 20             # Seconds

    @property
    def url(self) -> str:
        endpoint = self.endpoint or DEFAULT_ENDPOINT
        url = f"{endpoint}?app_id={self.app_id}"
        if self.language:
            url += f"&l={self.language}"
        return url


@dataclass
class AppConfig:
    deriv: DerivConfig = field(default_factory=DerivConfig)
    symbol: str = "R_100"
    log_level: str = "INFO"
    log_file: str = ""

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load config with environment variable overrides."""
        config = cls()
        config.deriv.app_id = os.getenv("DERIV_APP_ID", config.deriv.app_id)
        config.deriv.endpoint = os.getenv("DERIV_ENDPOINT") or None
        config.deriv.api_token = os.getenv("DERIV_API_TOKEN", "")
        config.deriv.language = os.getenv("DERIV_LANGUAGE", "")
        config.deriv.request_timeout = float(os.getenv("DERIV_REQUEST_TIMEOUT", "30"))
        config.symbol = os.getenv("DERIV_SYMBOL", config.symbol)
        config.log_level = os.getenv("LOG_LEVEL", "INFO")
        config.log_file = os.getenv("LOG_FILE", "")
        return config
