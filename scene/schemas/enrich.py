from pydantic import BaseModel, field_validator


class RestaurantIn(BaseModel):
    id: str
    name: str
    website_url: str | None = None

    @field_validator("id", "name")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v


class ImportRequest(BaseModel):
    restaurants: list[RestaurantIn]

    @field_validator("restaurants")
    @classmethod
    def restaurants_must_not_be_empty(cls, v: list[RestaurantIn]) -> list[RestaurantIn]:
        if not v:
            raise ValueError("restaurants must not be empty")
        return v


class ImportResponse(BaseModel):
    imported: int


class EnrichItem(BaseModel):
    restaurant_id: str
    website_url: str


class EnrichRequest(BaseModel):
    items: list[EnrichItem] = []
    restaurant_ids: list[str] = []


class EnrichItemResult(BaseModel):
    restaurant_id: str
    provider: str | None = None
    endpoint: str | None = None
    error: str | None = None


class EnrichResponse(BaseModel):
    enriched: int
    results: list[EnrichItemResult]


class DetectResponse(BaseModel):
    provider: str | None
    direct_endpoint: str | None
    confidence: int
    extracted_params: dict[str, str]
    html_length: int
    candidates: int
