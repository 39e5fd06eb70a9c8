# accounts_api/models/user.py
from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime

# --- Token sub-documents ---

class TokenInfo(BaseModel):
    """Single-use token stored on the user (verification or password reset)."""
    token: Optional[str] = None
    expires: Optional[datetime] = None

class TokenStatus(BaseModel):
    """Public view of a TokenInfo: the token itself is never exposed."""
    expires: Optional[datetime] = None

# --- Request bodies ---
# Each body model is the allow-list for its operation. Fields not declared
# here are dropped on parsing (pydantic ignores extra keys by default).

class UserProfileFields(BaseModel):
    display_name: Optional[str] = Field(None, max_length=200)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)

class UserCreate(UserProfileFields):
    """Fields an administrator may set when creating a user."""
    username: str = Field(..., min_length=1, max_length=64)
    email: EmailStr
    password: Optional[str] = Field(None, min_length=1)
    role: Optional[str] = None
    verified: Optional[bool] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "username": "jdoe",
                "email": "john.doe@example.com",
                "password": "Str0ng!Passw0rd",
                "first_name": "John",
                "last_name": "Doe",
                "role": "user",
            }
        }
    )

class UserRegister(UserProfileFields):
    """Fields an anonymous visitor may supply when signing up."""
    username: str = Field(..., min_length=1, max_length=64)
    email: EmailStr
    password: str

def _reject_null(value):
    # Defaults are not validated, so this only sees values the client sent
    if value is None:
        raise ValueError("may be omitted but not null")
    return value

class UserUpdate(UserProfileFields):
    """Self-service / general update. Role and password are not updatable here."""
    id: Optional[str] = Field(None, alias="_id")
    username: Optional[str] = Field(None, min_length=1, max_length=64)
    email: Optional[EmailStr] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("username", "email", mode="before")
    @classmethod
    def identity_fields_not_null(cls, value):
        return _reject_null(value)

class UserAdminUpdate(UserUpdate):
    """Admin update additionally permits role, password and verified."""
    role: Optional[str] = Field(None, min_length=1)
    password: Optional[str] = Field(None, min_length=1)
    verified: Optional[bool] = None

    @field_validator("role", "password", "verified", mode="before")
    @classmethod
    def admin_fields_not_null(cls, value):
        return _reject_null(value)

class PasswordChange(BaseModel):
    old_password: Optional[str] = None
    new_password: Optional[str] = None

class PasswordReset(BaseModel):
    # Optional so missing values get the specific 400 messages instead of 422
    password: Optional[str] = None
    token: Optional[str] = None

class SignIn(BaseModel):
    username: str
    password: str

class RoleSubrolesUpdate(BaseModel):
    subroles: List[str] = Field(default_factory=list)

class SubroleRemoval(BaseModel):
    subroles: List[str] = Field(..., min_length=1)

class UserRoleAssignment(BaseModel):
    role: str = Field(..., min_length=1)

# --- Responses ---

class UserPublic(BaseModel):
    """Sanitized user as returned by the API."""
    id: str = Field(..., alias="_id")
    username: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    role: Optional[str] = None
    subroles: List[str] = Field(default_factory=list)
    verified: bool = False
    verification: Optional[TokenStatus] = None
    reset_password: Optional[TokenStatus] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
    )

class RegistrationResponse(BaseModel):
    user: UserPublic
    message: Optional[str] = None

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserPublic
