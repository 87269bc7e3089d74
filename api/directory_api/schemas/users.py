from pydantic import BaseModel


class UserOut(BaseModel):
    id: str
    username: str
    email: str | None = None
    avatar_url: str | None = None
    is_admin: bool


class AuthorizeURLOut(BaseModel):
    url: str
    state: str


class SignInRequest(BaseModel):
    code: str
    state: str


class SignInOut(BaseModel):
    token: str
    user: UserOut
