import uuid

from pydantic import BaseModel


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserOut(BaseModel):
    id: uuid.UUID
    email: str
    name: str
    role: str
    is_active: bool
    sap_code_1: str | None = None
    sap_code_2: str | None = None

    model_config = {"from_attributes": True}
