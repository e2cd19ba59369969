"""
API request and response models for CourtStats REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
league/models.py, which own the internal domain representation. Route
handlers map between the two.

Request models for auth endpoints keep their fields Optional: presence and
length rules are enforced by AuthService so every client sees the same
messages regardless of which layer caught the problem.

Update bodies (PUT) are read with model_dump(exclude_unset=True) so an
explicit null (e.g. "coach_id": null) unsets a reference while an omitted
field is left alone.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Auth requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register. Accepts role_id or roleId."""

    email: Optional[str] = Field(default=None, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)
    role_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("role_id", "roleId"))


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Auth responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """A user record as returned to clients. Never carries the password hash."""

    id: int
    email: str
    name: str
    role_id: int
    created_at: str = ""
    updated_at: str = ""


class PrincipalResponse(BaseModel):
    """The authenticated identity returned by GET /auth/status."""

    id: int
    email: str
    name: str
    role_id: int
    role_name: str


class MessageResponse(BaseModel):
    message: str


class OAuthProviderInfo(BaseModel):
    name: str
    label: str


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleWrite(BaseModel):
    """Request body for POST /api/roles and PUT /api/roles/{id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=50)


class RoleResponse(BaseModel):
    id: int
    name: str


# ---------------------------------------------------------------------------
# Users (administration)
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/users (Admin only).

    Pre-provisions an account. Supply a password for local login, an
    external_id for a known provider identity, or both.
    """

    email: Optional[str] = Field(default=None, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    role_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("role_id", "roleId"))
    password: Optional[str] = Field(default=None, max_length=255)
    external_id: Optional[str] = Field(default=None, max_length=255)


class UserUpdate(BaseModel):
    """Request body for PUT /api/users/{id}. role_id changes are Admin only."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    role_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("role_id", "roleId"))


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------


class TeamCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)
    coach_id: Optional[int] = None


class TeamUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)
    coach_id: Optional[int] = None


class TeamResponse(BaseModel):
    id: int
    name: str
    coach_id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------


class PlayerCreate(BaseModel):
    user_id: Optional[int] = None
    team_id: Optional[int] = None
    is_captain: bool = False


class PlayerUpdate(BaseModel):
    team_id: Optional[int] = None
    is_captain: Optional[bool] = None


class PlayerResponse(BaseModel):
    id: int
    user_id: int
    team_id: Optional[int] = None
    is_captain: bool = False
    created_at: str = ""
    updated_at: str = ""


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Uniform error envelope returned by every exception handler."""

    message: str
    code: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Response body for GET /api/health.

    components maps each dependency to "ok" or "error" so load balancers can
    tell a dead process from a dead database.
    """

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
