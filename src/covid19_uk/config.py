from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_API_URL = "https://api.coronavirus.data.gov.uk/v1/data"
API_URL_ENV = "COVID19_UK_API_URL"


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_API_URL
    # None leaves requests without a timeout
    timeout: float | None = None
    user_agent: str = "covid19-uk/0.1"

    @classmethod
    def from_env(cls, base_url: str | None = None, timeout: float | None = None) -> ClientConfig:
        """Build a config, letting COVID19_UK_API_URL point tests at another host."""
        return cls(
            base_url=base_url or os.getenv(API_URL_ENV) or DEFAULT_API_URL,
            timeout=timeout,
        )
