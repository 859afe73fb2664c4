from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

RoleTag = Literal["provider", "customer"]
RequestStatus = Literal["pending", "accepted", "completed"]


class GeoPoint(BaseModel):
    """Latitude/longitude in degrees. Ranges are checked at ingestion, not here."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class Candidate(BaseModel):
    id: str
    name: str
    role: RoleTag
    location: Optional[GeoPoint] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)


class RankedResult(BaseModel):
    candidate: Candidate
    distance_km: float


class LocationAck(BaseModel):
    entity_id: str
    point: GeoPoint
    recorded_at: str


class UserProfile(BaseModel):
    id: str
    name: str
    email: str = ""
    role: RoleTag
    skills: str = ""
    bio: str = ""
    average_rating: float = 0.0
    total_reviews: int = 0
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_updated_at: Optional[str] = None


class UserProfileUpsertRequest(BaseModel):
    actor_user_id: str
    name: str
    email: str = ""
    role: RoleTag
    skills: str = ""
    bio: str = ""


class LocationUpdateRequest(BaseModel):
    actor_user_id: str
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class NearbyProvider(BaseModel):
    id: str
    name: str
    distance_km: float
    skills: str = ""
    average_rating: Optional[float] = None
    total_reviews: int = 0


class NearbyProvidersResponse(BaseModel):
    origin: GeoPoint
    providers: list[NearbyProvider]
    total_found: int


class ServiceRequest(BaseModel):
    id: str
    customer_id: str
    provider_id: Optional[str] = None
    description: str
    location: str
    wage: float
    contact_number: str
    status: RequestStatus
    created_at: str
    updated_at: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class ServiceRequestCreate(BaseModel):
    customer_id: str
    description: str
    location: str
    wage: float = Field(ge=0)
    contact_number: str
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class ServiceRequestProviderAction(BaseModel):
    provider_id: str


class ServiceRequestCompleteRequest(BaseModel):
    customer_id: str


class AuthLoginRequest(BaseModel):
    user_id: str
    password: str = "gharsewa-demo"


class AuthLoginResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    user_id: str
    role: RoleTag
    expires_at: str


class AuthMeResponse(BaseModel):
    user_id: str
    role: RoleTag
