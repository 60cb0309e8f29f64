from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, Field, StrictBool, StrictStr, ValidationInfo, field_validator

Announcement = Annotated[StrictStr, Field(max_length=200)]


class IncentiveResponse(BaseModel):
    id: str
    name: str = ""
    target: float = 0.0
    active: bool = False
    displayNow: bool = False
    displayUntilMet: bool = False


class AuctionResponse(BaseModel):
    name: str
    endDateTime: Optional[str] = None
    announcements: List[str] = []
    askMeMode: bool = False
    askMeTitle: str
    askMeMessage: str = ""
    askMeTotal: float = 0.0
    incentives: List[IncentiveResponse] = []


class AuctionUpdate(BaseModel):
    """Partial update; only the fields present in the request body are applied."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    endDateTime: Optional[str] = None
    announcements: Optional[List[Announcement]] = None
    askMeMode: Optional[StrictBool] = None
    askMeTitle: Optional[StrictStr] = Field(None, max_length=120)
    askMeMessage: Optional[StrictStr] = Field(None, max_length=1200)
    askMeTotal: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    incentives: Optional[List[Dict[str, Any]]] = None

    @field_validator(
        "name",
        "announcements",
        "askMeMode",
        "askMeTitle",
        "askMeMessage",
        "askMeTotal",
        "incentives",
        mode="before",
    )
    @classmethod
    def reject_explicit_null(cls, value, info: ValidationInfo):
        if value is None:
            raise ValueError(f"{info.field_name} may not be null")
        return value

    @field_validator("endDateTime")
    @classmethod
    def validate_end_date_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            datetime.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValueError("endDateTime must be a valid ISO datetime string") from exc
        return value

    def provided(self) -> Dict[str, Any]:
        return {key: getattr(self, key) for key in self.model_fields_set}


class AnnouncementsUpdate(BaseModel):
    announcements: List[Announcement]


class IncentiveStateUpdate(BaseModel):
    displayNow: Optional[StrictBool] = None
    displayUntilMet: Optional[StrictBool] = None
    active: Optional[StrictBool] = None

    def provided(self) -> Dict[str, bool]:
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }
