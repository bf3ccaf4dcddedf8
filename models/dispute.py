"""
Normalized Dispute Models
"""
from enum import Enum
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PortalType(str, Enum):
    """Dispute portals with a dedicated adapter"""
    VERIFI = "VERIFI"
    ETHOCA = "ETHOCA"
    DISCOVER = "DISCOVER"
    MERLINK = "MERLINK"


class DisputeStatus(str, Enum):
    """
    Internal dispute status

    PENDING -> IN_REVIEW -> SUBMITTED -> WON | LOST | EXPIRED.
    RESOLVED is the terminal state for portal closures that are neither a win nor a loss.
    """
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    SUBMITTED = "SUBMITTED"
    WON = "WON"
    LOST = "LOST"
    EXPIRED = "EXPIRED"
    RESOLVED = "RESOLVED"


class ReasonCategory(str, Enum):
    FRAUD = "FRAUD"
    AUTHORIZATION = "AUTHORIZATION"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    CONSUMER_DISPUTE = "CONSUMER_DISPUTE"
    UNKNOWN = "UNKNOWN"


class ReasonCodeEntry(BaseModel):
    """Normalized reason code with its recommended evidence types"""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True,
                              coerce_numbers_to_str=True)

    code: str
    category: ReasonCategory
    description: str
    recommended_evidence_types: List[str] = Field(default_factory=list)

    @classmethod
    def unknown(cls) -> 'ReasonCodeEntry':
        """Entry used when the portal sends no reason code at all"""
        return cls(code="UNKNOWN", category=ReasonCategory.UNKNOWN, description="Unknown reason code")


class NormalizedDispute(BaseModel):
    """
    A portal dispute or alert in the internal representation

    Instances are frozen. Downstream code never edits a dispute in place;
    any status change goes back out through the adapter and comes back in
    through normalization. Enrichment produces a copy via ``model_copy``.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True,
                              coerce_numbers_to_str=True)

    dispute_id: Optional[str] = None
    case_number: Optional[str] = None
    amount: float = 0.0
    currency: str = "USD"
    card_last_four: str = ""
    card_brand: str = ""
    guest_name: str = ""
    reason_code: str = "UNKNOWN"
    reason_category: ReasonCategory = ReasonCategory.UNKNOWN
    reason_description: str = ""
    dispute_date: Optional[str] = None
    due_date: Optional[str] = None
    status: DisputeStatus = DisputeStatus.PENDING
    portal_status: Optional[str] = None
    alert_type: Optional[str] = None
    dispute_stage: Optional[str] = None
    is_pre_chargeback: bool = False
    transaction_id: str = ""
    transaction_date: Optional[str] = None
    merchant_descriptor: str = ""
    issuer_name: Optional[str] = None
    portal_type: PortalType
    extra: Dict[str, Any] = Field(default_factory=dict)
    raw_data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to a JSON-safe dictionary
        """
        return self.model_dump(mode='json')


class WebhookEvent(BaseModel):
    """Parsed portal webhook; carries zero or one dispute update"""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True,
                              coerce_numbers_to_str=True)

    event: Optional[str] = None
    dispute_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str
    webhook_id: Optional[str] = None
    raw_data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json')
