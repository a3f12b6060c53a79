from datetime import datetime
from typing import TypedDict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator, model_validator

TRANSPORT_FAILURE = "transport_failure"
MALFORMED_RESPONSE = "malformed_response"
POLICY_NOT_SATISFIED = "policy_not_satisfied"


class _RequiredRequest(TypedDict):
    token: str
    secret: str


class VerificationRequest(_RequiredRequest, total=False):
    remote_ip: Optional[str]


class Policy(TypedDict):
    expected_action: str
    min_score: float
    expected_hostname: str


class VerificationResponse(BaseModel):
    """
    Body returned by the siteverify endpoint.

    Google omits hostname/action/score when success is false, so those
    fields are only required on a successful answer.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: StrictBool
    hostname: Optional[str] = None
    action: Optional[str] = None
    score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    challenge_ts: Optional[datetime] = None
    error_codes: List[str] = Field(default_factory=list, alias="error-codes")

    @field_validator("score", mode="before")
    @classmethod
    def _numeric_score(cls, v):
        # JSON numbers only; 1 and 0 are valid scores, true and "0.9" are not
        if isinstance(v, (bool, str)):
            raise ValueError("score must be a number")
        return v

    @model_validator(mode="after")
    def _require_v3_fields(self):
        if self.success:
            missing = [k for k in ("hostname", "action", "score") if getattr(self, k) is None]
            if missing:
                raise ValueError(f"missing fields: {', '.join(missing)}")
        return self


class Verdict(TypedDict):
    """
    Outcome of one verification.
    `reason` is None when accepted; `failed` names the policy predicates
    that did not hold and is meant for logs and tests only.
    """
    accepted: bool
    reason: Optional[str]
    failed: List[str]
    response: Optional[VerificationResponse]


def accepted(response: VerificationResponse) -> Verdict:
    return {"accepted": True, "reason": None, "failed": [], "response": response}


def rejected(reason: str, failed: Optional[List[str]] = None,
             response: Optional[VerificationResponse] = None) -> Verdict:
    return {"accepted": False, "reason": reason, "failed": failed or [], "response": response}
