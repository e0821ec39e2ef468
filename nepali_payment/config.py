"""
Package configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nepali_payment.fsm.states import Gateway


# Fields a gateway client cannot be built without
REQUIRED_GATEWAY_FIELDS: Dict[Gateway, List[str]] = {
    Gateway.ESEWA: ["product_code", "secret_key"],
    Gateway.KHALTI: ["secret_key"],
    Gateway.CONNECTIPS: [
        "merchant_id",
        "app_id",
        "app_name",
        "password",
        "private_key_path",
    ],
}


# Fields reported by scripts/check_config.py
CHECKED_GATEWAY_FIELDS: Dict[Gateway, List[str]] = {
    Gateway.ESEWA: ["product_code", "secret_key"],
    Gateway.KHALTI: ["secret_key", "environment"],
    Gateway.CONNECTIPS: [
        "merchant_id",
        "app_id",
        "app_name",
        "password",
        "private_key_path",
        "environment",
    ],
}


class Settings(BaseSettings):
    """Gateway credentials and persistence settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Persistence
    database_enabled: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "database_enabled",
            "nepali_payment_database_enabled",
        ),
    )
    database_url: str = ""

    # Outbound HTTP timeout for gateway calls (seconds)
    http_timeout: float = 30.0

    # eSewa
    esewa_product_code: str = ""
    esewa_secret_key: str = ""
    esewa_success_url: str = ""
    esewa_failure_url: str = ""
    esewa_environment: Literal["test", "live"] = "test"

    # Khalti
    khalti_secret_key: str = ""
    khalti_environment: Literal["test", "live"] = "test"
    khalti_success_url: str = ""
    khalti_website_url: str = ""

    # ConnectIPS
    connectips_merchant_id: str = ""
    connectips_app_id: str = ""
    connectips_app_name: str = ""
    connectips_private_key_path: str = ""
    connectips_password: str = ""
    connectips_key_password: Optional[str] = None
    connectips_environment: Literal["test", "live"] = "test"
    connectips_return_url: str = ""

    @field_validator(
        "esewa_environment",
        "khalti_environment",
        "connectips_environment",
        mode="before",
    )
    @classmethod
    def _lower_environment(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def gateway_config(self, gateway: Gateway) -> Dict[str, Any]:
        """Return the settings of one gateway with the prefix stripped."""
        prefix = f"{gateway.value}_"
        return {
            name[len(prefix):]: value
            for name, value in self.model_dump().items()
            if name.startswith(prefix)
        }

    def missing_fields(
        self,
        gateway: Gateway,
        required: Optional[List[str]] = None,
    ) -> List[str]:
        """List required settings of a gateway that are empty."""
        config = self.gateway_config(gateway)
        keys = required if required is not None else REQUIRED_GATEWAY_FIELDS[gateway]
        return [key for key in keys if not config.get(key)]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def missing_config(settings: Settings) -> Dict[Gateway, List[str]]:
    """Missing keys per gateway; gateways with nothing missing map to []."""
    return {
        gateway: settings.missing_fields(gateway, fields)
        for gateway, fields in CHECKED_GATEWAY_FIELDS.items()
    }
