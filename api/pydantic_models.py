import datetime
from pydantic import BaseModel, Field
from typing import List, Optional

from models import ChallengeTransition, ManifestSummary, RegionManifest, UserChallenge

# --- REQUESTS ---
class LocationQuery(BaseModel):
    # Kept as raw strings; RegionKeyer validates and reports INVALID_LOCATION
    lat: Optional[str] = None
    lng: Optional[str] = None
    tz: Optional[str] = None

class RegenerateManifestRequest(BaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None

class SightingConfirmedEvent(BaseModel):
    userId: str = Field(min_length=1)
    animalName: str = Field(min_length=1)
    confirmedAt: Optional[datetime.datetime] = None
    sightingId: Optional[str] = None

# --- RESPONSES ---
class UserChallengesResponse(BaseModel):
    active: bool
    challenge: Optional[UserChallenge] = None

class ManifestListResponse(BaseModel):
    count: int
    manifests: List[ManifestSummary]

class ManifestResponse(BaseModel):
    manifest: RegionManifest

class SightingProgressResponse(BaseModel):
    transitions: List[ChallengeTransition]
