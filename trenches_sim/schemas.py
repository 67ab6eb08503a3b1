from pydantic import BaseModel, field_validator


class BuyRequest(BaseModel):
    token_id: str
    amount_sol: float

    @field_validator("amount_sol")
    @classmethod
    def amount_positive(cls, v):
        if v <= 0:
            raise ValueError("amount_sol must be > 0")
        return v


class SellRequest(BaseModel):
    token_id: str
    percent: float = 100.0

    @field_validator("percent")
    @classmethod
    def percent_range(cls, v):
        if v <= 0 or v > 100:
            raise ValueError("percent must be in (0, 100]")
        return v
