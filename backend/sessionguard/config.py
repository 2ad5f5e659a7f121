"""Application configuration."""
from collections import Counter
from functools import lru_cache
import math
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # App
    app_name: str = "SessionGuard"
    debug: bool = False
    log_level: str = "INFO"
    
    # Database
    database_url: str = "sqlite:///./data/sessionguard.db"
    
    # Identity provider tokens (verified, never issued here)
    secret_key: str
    algorithm: str = "HS256"
    admin_role: str = "admin"
    
    # Session context transport
    session_cookie_name: str = "sessionguard_session"
    session_cookie_path: str = "/api"
    session_cookie_samesite: str = "lax"
    session_cookie_secure: bool = True
    session_cookie_max_age_days: int = 30
    session_header_name: str = "X-Session-Token"
    # Peers whose X-Forwarded-For is honoured, e.g. ["10.0.0.5"]; empty = use the socket address
    trusted_proxy_ips: list[str] = []
    heartbeat_min_interval_seconds: int = 0  # 0 = write last_active on every validation
    
    # Geolocation
    geo_api_url: str = "http://ip-api.com/json"
    geo_timeout_seconds: float = 3.0
    geo_cache_ttl_seconds: int = 24 * 60 * 60
    geo_cache_backend: str = "memory"  # memory, database
    
    # Anomaly detection
    anomaly_dedupe_window_minutes: int = 60
    
    # Paths
    base_dir: Path = Path(__file__).parent
    device_rules_path: Path = base_dir / "configs" / "device_rules.yaml"
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, value: str) -> str:
        """Fail closed if SECRET_KEY is weak or placeholder quality."""
        if not value:
            raise ValueError("SECRET_KEY must be set.")

        if len(value) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        weak_values = {"changeme", "changeme-in-production", "secret", "password", "test"}
        lowered = value.lower()
        if lowered in weak_values or "changeme" in lowered:
            raise ValueError("SECRET_KEY must not be a placeholder value.")

        counts = Counter(value)
        entropy_per_char = -sum((count / len(value)) * math.log2(count / len(value)) for count in counts.values())
        estimated_entropy_bits = entropy_per_char * len(value)
        if estimated_entropy_bits < 100:
            raise ValueError("SECRET_KEY entropy is too low; use a cryptographically random value.")

        return value

    @field_validator("geo_cache_backend")
    @classmethod
    def validate_geo_cache_backend(cls, value: str) -> str:
        """Only the in-process and shared database caches exist."""
        lowered = value.lower()
        if lowered not in {"memory", "database"}:
            raise ValueError("GEO_CACHE_BACKEND must be 'memory' or 'database'.")
        return lowered


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
