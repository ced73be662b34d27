from pydantic import BaseModel, Field


class ApiKeyUpdate(BaseModel):
    api_key: str = Field(..., min_length=1)


class ApiKeyStatus(BaseModel):
    """Never echoes the key itself."""
    is_saved: bool
    masked: str = ""


class AllowInsecureUpdate(BaseModel):
    allow_insecure: bool


def mask_api_key(api_key: str) -> str:
    if len(api_key) <= 4:
        return "*" * len(api_key)
    return "*" * (len(api_key) - 4) + api_key[-4:]
