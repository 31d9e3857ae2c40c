"""
Client configuration management
"""
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Default client settings, overridable from BLOOMD_* environment variables"""

    # Server
    host: str = "localhost"
    port: int = 8673

    # Socket behaviour
    timeout_sec: Optional[float] = None  # None blocks indefinitely
    recv_buffer_size: int = 4096
    max_line_bytes: int = 1024 * 1024
    encoding: str = "utf-8"

    # Filters
    hash_keys: bool = False

    # Logging
    log_dir: Optional[Path] = None

    class Config:
        env_prefix = "BLOOMD_"
        env_file = ".env"


settings = Settings()
