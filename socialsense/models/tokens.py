from pydantic import BaseModel, ConfigDict, Field


class VerifySessionResult(BaseModel):
    """
    Body of a successful ``GET /tokens/verify-session/{session_id}``.
    """

    model_config = ConfigDict(extra="ignore")

    success: bool = True
    tokens_added: int = Field(default=0, ge=0)
    new_balance: int = Field(default=0, ge=0)
    already_processed: bool = False


class TokenBalanceResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token_balance: int = Field(default=0, ge=0)
