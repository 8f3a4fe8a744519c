from decimal import Decimal
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Market constants (Tanzania, January 2026)
    fuel_price_petrol: int = Field(default=3200, gt=0, alias="FUEL_PRICE_PETROL")
    fuel_price_diesel: int = Field(default=3100, gt=0, alias="FUEL_PRICE_DIESEL")
    profit_margin: Decimal = Field(default=Decimal("1.3"), gt=1, alias="PROFIT_MARGIN")
    rounding_unit: int = Field(default=500, gt=0, alias="FARE_ROUNDING_UNIT")
    route_buffer_multiplier: Decimal = Field(default=Decimal("1.15"), ge=1, alias="ROUTE_BUFFER_MULTIPLIER")
    demurrage_multiplier: Decimal = Field(default=Decimal("0.1"), ge=0, alias="DEMURRAGE_MULTIPLIER")
    currency: str = Field(default="TZS", alias="FARE_CURRENCY")
    pricing_version: str = Field(default="tz-2026-01", alias="PRICING_VERSION")

    # Routing collaborator
    google_maps_api_key: str = Field(default="", alias="GOOGLE_MAPS_API_KEY")
    directions_url: str = Field(
        default="https://maps.googleapis.com/maps/api/directions/json",
        alias="GOOGLE_DIRECTIONS_URL",
    )
    routing_timeout_s: float = Field(default=15.0, gt=0, alias="ROUTING_TIMEOUT_S")

    loading_tick_interval_s: float = Field(default=1.0, gt=0, alias="LOADING_TICK_INTERVAL_S")

    allowed_origins: str = Field(default="http://localhost:3000", alias="ALLOWED_ORIGINS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(env_file=(".env",), extra="ignore")

    @property
    def allowed_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
