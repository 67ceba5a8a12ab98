from pydantic import BaseModel, field_validator


class SubscribeItemIn(BaseModel):
    restaurant_id: str
    email: str
    website_url: str = ""

    @field_validator("restaurant_id", "email")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v


class SubscribeRequest(BaseModel):
    items: list[SubscribeItemIn] = []
    email: str | None = None
    restaurant_ids: list[str] = []


class SubscribeItemResult(BaseModel):
    restaurant_id: str
    tier: str
    success: bool
    evidence: str
    provider: str | None = None
    endpoint: str | None = None
    log_error: str | None = None


class SubscribeResponse(BaseModel):
    subscribed: int
    results: list[SubscribeItemResult]
