from pydantic import BaseModel, AliasChoices, Field
from typing import Optional, Any

# Fields are optional so that missing values get the same 400 envelope as malformed ones

class SendOTPRequest(BaseModel):
    identity: Optional[Any] = Field(default=None, validation_alias=AliasChoices("identity", "phone", "email"))

class VerifyOTPRequest(BaseModel):
    identity: Optional[Any] = Field(default=None, validation_alias=AliasChoices("identity", "phone", "email"))
    otp: Optional[Any] = None

class OTPStats(BaseModel):
    identity: str
    attempts: int
    maxAttempts: int
    consumed: bool
    expiresAt: str
    createdAt: str
    consumedAt: Optional[str] = None

class OTPStatsResponse(BaseModel):
    success: bool = True
    data: OTPStats

class CleanupResponse(BaseModel):
    success: bool = True
    message: str
    deletedCount: int
    logsPurged: int
