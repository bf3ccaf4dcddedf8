"""
Adapter Credentials and Configuration Models
"""
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic.alias_generators import to_camel


class PortalCredentials(BaseModel):
    """
    Secret bundle owned by the integration record

    Held by an adapter for its lifetime only. Secrets are ``SecretStr`` so
    they render as ``**********`` in reprs and log lines.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True,
                              coerce_numbers_to_str=True)

    api_key: SecretStr
    merchant_id: str
    webhook_secret: Optional[SecretStr] = None

    def secret_value(self, field: str) -> Optional[str]:
        value = getattr(self, field, None)
        if value is None:
            return None
        if isinstance(value, SecretStr):
            return value.get_secret_value()
        return value


class VerifiCredentials(PortalCredentials):
    card_acceptor_id: Optional[str] = None
    descriptor: str = ""
    rdr_enabled: bool = False


class EthocaCredentials(PortalCredentials):
    alert_types: List[str] = Field(default_factory=lambda: ["fraud", "consumer_dispute"])


class DiscoverCredentials(PortalCredentials):
    acquirer_bin: Optional[str] = None
    protect_buy_mid: Optional[str] = Field(default=None, alias="protectBuyMID")


class MerlinkCredentials(PortalCredentials):
    api_secret: SecretStr
    hotel_id: Optional[str] = None
    portfolio_id: Optional[str] = None
    auto_submit: bool = False


class AdapterConfig(BaseModel):
    """Explicit configuration passed to an adapter constructor"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # Validated by the adapter against its own credentials model
    credentials: Any = Field(default_factory=dict)
    base_url: Optional[str] = None
    integration_id: Optional[str] = None
    timeout_ms: int = 30000
    retry_options: Optional[Dict[str, Any]] = None
