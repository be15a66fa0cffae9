from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ImportMode(str, Enum):
    BEST_EFFORT = "best_effort"
    ATOMIC = "atomic"


class User(BaseModel):
    id: int
    username: str
    is_admin: bool = False
    translations: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class Reason(BaseModel):
    id: int
    key: str
    stars: int = Field(..., description="Default star value for new awards")
    created_at: Optional[datetime] = None
    translations: dict[str, str] = Field(default_factory=dict)
    count: int = Field(default=0, description="Number of awards referencing this reason")

    model_config = ConfigDict(from_attributes=True)


class Reward(BaseModel):
    id: int
    key: str
    cost: int
    icon: str = ""
    adult_only: bool = False
    created_at: Optional[datetime] = None
    translations: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)

    @property
    def name(self) -> str:
        return self.translations.get("en", "")


class Star(BaseModel):
    id: int
    user_id: int
    username: str = ""
    display_name: str = ""
    reason_id: Optional[int] = None
    reason_text: Optional[str] = None
    reason: str = Field(default="", description="Reason text resolved for the requested language")
    stars: int
    awarded_by: Optional[int] = None
    awarded_by_name: str = ""
    awarded_by_display: str = ""
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Redemption(BaseModel):
    id: int
    user_id: int
    username: str = ""
    display_name: str = ""
    reward_id: int
    reward_key: str = ""
    reward_name: str = ""
    cost: Optional[int] = Field(default=None, description="Snapshotted cost; None floats with the reward")
    effective_cost: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserBalance(BaseModel):
    user_id: int
    username: str
    display_name: str = ""
    is_admin: bool = False
    star_count: int = Field(..., description="Stars ever earned")
    current_stars: int = Field(..., description="Earned minus redeemed")


class AwardRequest(BaseModel):
    username: str
    reason_id: Optional[int] = None
    reason: Optional[str] = None
    stars: Optional[int] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {"username": "theo", "reason": "Helped with dishes", "stars": 2}
    })


class RedeemRequest(BaseModel):
    username: str
    reward_id: int


class RewardRequest(BaseModel):
    name: str = Field(..., min_length=1)
    cost: int = Field(..., gt=0)
    icon: str = ""
    adult_only: bool = False


class ReasonRequest(BaseModel):
    text: str = Field(..., min_length=1)
    stars: int = 1


class TranslationRequest(BaseModel):
    lang: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)


class ValueUpdateRequest(BaseModel):
    value: int
    retroactive: bool = False


class AwardResponse(BaseModel):
    star: Star
    balances: list[UserBalance]
    awarded_by: Optional[str] = None


class RedeemResponse(BaseModel):
    redemption: Redemption
    balances: list[UserBalance]


# Export document. Every record carries a `kind` tag so a backup can be
# validated record by record.

class ExportedUser(BaseModel):
    kind: Literal["user"] = "user"
    username: str = Field(..., min_length=1)
    is_admin: bool = False
    translations: dict[str, str] = Field(default_factory=dict)


class ExportedReason(BaseModel):
    kind: Literal["reason"] = "reason"
    key: str = Field(..., min_length=1)
    stars: int = 1
    translations: dict[str, str] = Field(default_factory=dict)


class ExportedReward(BaseModel):
    kind: Literal["reward"] = "reward"
    key: str = Field(..., min_length=1)
    cost: int = Field(..., gt=0)
    icon: str = ""
    adult_only: bool = False
    translations: dict[str, str] = Field(default_factory=dict)


class ExportedStar(BaseModel):
    kind: Literal["star"] = "star"
    username: str = Field(..., min_length=1)
    reason_key: Optional[str] = None
    reason_text: Optional[str] = None
    stars: int
    awarded_by: Optional[str] = None
    created_at: Optional[datetime] = None


class ExportedRedemption(BaseModel):
    kind: Literal["redemption"] = "redemption"
    username: str = Field(..., min_length=1)
    reward_key: str = Field(..., min_length=1)
    cost: Optional[int] = None
    created_at: Optional[datetime] = None


class ExportDocument(BaseModel):
    version: int = 1
    exported_at: Optional[datetime] = None
    users: list[ExportedUser] = Field(default_factory=list)
    reasons: list[ExportedReason] = Field(default_factory=list)
    rewards: list[ExportedReward] = Field(default_factory=list)
    stars: list[ExportedStar] = Field(default_factory=list)
    redemptions: list[ExportedRedemption] = Field(default_factory=list)
    settings: dict[str, str] = Field(default_factory=dict)


class RejectedRecord(BaseModel):
    section: str
    index: int
    error: str


class ImportReport(BaseModel):
    mode: ImportMode
    imported: dict[str, int] = Field(default_factory=dict)
    rejected: list[RejectedRecord] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.rejected
