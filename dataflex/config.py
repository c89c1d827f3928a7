"""
DataFlex — Configuration
─────────────────────────
All settings come from environment variables, optionally loaded from a
.env file in the working directory.

  DFX_GATEWAY_URL      — https://<project>.supabase.co
  DFX_GATEWAY_KEY      — service key sent as apikey + bearer token
  DFX_REQUEST_TIMEOUT  — seconds per gateway request (default 30)
  DFX_RETRY_ATTEMPTS   — retries after the first failed attempt (default 3)
  DFX_RETRY_DELAY      — base backoff delay in seconds (default 1.0)
  DFX_LOG_LEVEL        — INFO by default
  PORT                 — uvicorn port (default 8000)
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    gateway_url:     str
    gateway_key:     str
    request_timeout: float = 30.0
    retry_attempts:  int   = 3
    retry_delay:     float = 1.0
    log_level:       str   = "INFO"
    port:            int   = 8000


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        gateway_url=os.getenv("DFX_GATEWAY_URL", "http://localhost:54321").rstrip("/"),
        gateway_key=os.getenv("DFX_GATEWAY_KEY", ""),
        request_timeout=float(os.getenv("DFX_REQUEST_TIMEOUT", "30")),
        retry_attempts=max(0, int(os.getenv("DFX_RETRY_ATTEMPTS", "3"))),
        retry_delay=float(os.getenv("DFX_RETRY_DELAY", "1.0")),
        log_level=os.getenv("DFX_LOG_LEVEL", "INFO").upper(),
        port=int(os.getenv("PORT", "8000")),
    )
