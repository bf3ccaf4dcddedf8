"""
Evidence and Representment Models
"""
import base64
from typing import Dict, Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _PortalModel(BaseModel):
    """Accepts both snake_case and camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)


class EvidenceFile(_PortalModel):
    type: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: str = "application/pdf"
    data: Union[bytes, str, None] = None
    description: Optional[str] = None
    category: Optional[str] = None
    page_count: Optional[int] = None

    def encoded_data(self) -> Optional[str]:
        """
        File content as a base64 string; strings are assumed to be encoded already
        """
        if isinstance(self.data, bytes):
            return base64.b64encode(self.data).decode('ascii')
        return self.data


class EvidenceMetadata(_PortalModel):
    guest_name: Optional[str] = None
    confirmation_number: Optional[str] = None
    check_in_date: Optional[str] = None
    check_out_date: Optional[str] = None
    transaction_amount: Optional[float] = None
    transaction_date: Optional[str] = None
    transaction_id: Optional[str] = None
    authorization_code: Optional[str] = None
    merchant_descriptor: Optional[str] = None
    notes: str = ""
    evidence_category: Optional[str] = None
    compelling_evidence_type: Optional[str] = None
    protect_buy_data: Optional[Dict[str, Any]] = None


class EvidencePackage(_PortalModel):
    """
    Evidence supplied by case management for one submission

    Frozen: a package is never edited after it is handed to an adapter.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True,
                              coerce_numbers_to_str=True)

    files: List[EvidenceFile] = Field(default_factory=list)
    metadata: EvidenceMetadata = Field(default_factory=EvidenceMetadata)


class GuestDetails(_PortalModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    loyalty_number: Optional[str] = None


class StayDetails(_PortalModel):
    property_name: Optional[str] = None
    confirmation_number: Optional[str] = None
    check_in_date: Optional[str] = None
    check_out_date: Optional[str] = None
    room_type: Optional[str] = None
    room_rate: Optional[float] = None
    total_charges: Optional[float] = None
    no_show: bool = False
    early_checkout: bool = False
    folio_number: Optional[str] = None


class CompellingEvidence(_PortalModel):
    type: str = "generic"
    description: str = ""
    prior_transactions: List[Dict[str, Any]] = Field(default_factory=list)
    device_info: Optional[Dict[str, Any]] = None
    device_fingerprint: Optional[str] = None
    ip_address: Optional[str] = None
    protect_buy_data: Optional[Dict[str, Any]] = None


class ResponsePackage(_PortalModel):
    """Representment response; one package is one outbound call"""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True,
                              coerce_numbers_to_str=True)

    representment_type: str = "representment"
    stage: Optional[str] = None
    guest_details: GuestDetails = Field(default_factory=GuestDetails)
    stay_details: StayDetails = Field(default_factory=StayDetails)
    compelling_evidence: CompellingEvidence = Field(default_factory=CompellingEvidence)
    narrative: str = ""
    evidence_ids: List[str] = Field(default_factory=list)
    auto_submit: Optional[bool] = None


def as_evidence_package(package: Union[EvidencePackage, Dict[str, Any]]) -> EvidencePackage:
    """Accept a package model or its dictionary form"""
    if isinstance(package, EvidencePackage):
        return package
    return EvidencePackage.model_validate(package or {})


def as_response_package(package: Union[ResponsePackage, Dict[str, Any]]) -> ResponsePackage:
    if isinstance(package, ResponsePackage):
        return package
    return ResponsePackage.model_validate(package or {})
