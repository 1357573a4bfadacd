from pydantic import BaseModel, Field


class SignupRequest(BaseModel):
    email: str
    password: str
    username: str


class LoginRequest(BaseModel):
    email: str
    password: str


class UpdatePasswordRequest(BaseModel):
    old_password: str
    new_password: str = Field(min_length=6)


class UserResponse(BaseModel):
    email: str
    username: str

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
    synced: bool
