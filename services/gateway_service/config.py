from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class GatewayConfig:
    log_level: str
    allowed_origins: tuple[str, ...]
    host: str
    port: int

    @classmethod
    def from_env(cls) -> GatewayConfig:
        origins = os.environ.get("GATEWAY_ALLOWED_ORIGINS", "*")
        return cls(
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            allowed_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            host=os.environ.get("GATEWAY_HOST", "0.0.0.0"),
            port=int(os.environ.get("GATEWAY_PORT", "8000") or 8000),
        )
