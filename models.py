import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

ChallengeKind = Literal['daily', 'weekly']

# --- REGIONS & MANIFESTS ---

class GeoPoint(BaseModel):
    lat: float
    lon: float


class Region(BaseModel):
    """Derived, never stored on its own. Produced by RegionKeyer.key_for()."""
    key: str
    displayLocation: str
    center: GeoPoint


class ManifestEntry(BaseModel):
    name: str
    probability: int = Field(ge=0, le=100)


class RegionManifest(BaseModel):
    regionKey: str
    manifestId: str
    location: str
    center: GeoPoint
    animalManifest: List[ManifestEntry]
    createdAt: datetime.datetime

    def to_firestore(self, raw_response=None):
        data = self.model_dump()
        if raw_response is not None:
            data['rawResponse'] = raw_response
        return data

    @classmethod
    def from_firestore(cls, data):
        return cls.model_validate({k: v for k, v in data.items() if k != 'rawResponse'})


class ManifestSummary(BaseModel):
    regionKey: str
    manifestId: str
    location: str
    center: GeoPoint
    manifestSize: int
    highProbabilityCount: int
    createdAt: datetime.datetime

# --- USER CHALLENGES ---

class ChallengeTask(BaseModel):
    animalName: str
    probability: int
    requiredCount: int = Field(ge=1)
    progressCount: int = Field(default=0, ge=0)

    @property
    def is_done(self):
        return self.progressCount >= self.requiredCount


class ChallengeSection(BaseModel):
    animals: List[ChallengeTask] = []
    issuedAt: datetime.datetime
    expiresAt: datetime.datetime
    completed: bool = False
    completedAt: Optional[datetime.datetime] = None
    xpPotential: int = 0
    xpAwarded: int = 0
    # Keys of sightings already counted against this section
    sightingKeys: List[str] = []

    def is_live(self, now):
        return now < self.expiresAt

    def accepts(self, confirmed_at):
        return self.issuedAt <= confirmed_at < self.expiresAt


class UserChallenge(BaseModel):
    userId: str
    regionKey: str
    regionId: str
    location: str
    daily: Optional[ChallengeSection] = None
    weekly: Optional[ChallengeSection] = None
    createdAt: Optional[datetime.datetime] = None
    updatedAt: Optional[datetime.datetime] = None
    # Last time sections were (re)issued; progress writes leave it alone
    refreshedAt: Optional[datetime.datetime] = None

    def section(self, kind):
        return getattr(self, kind)

    def live_view(self, now):
        """Copy with expired sections blanked out, for read-only callers."""
        return self.model_copy(update={
            'daily': self.daily if self.daily and self.daily.is_live(now) else None,
            'weekly': self.weekly if self.weekly and self.weekly.is_live(now) else None,
        })

    def has_live_section(self, now):
        return any(s is not None and s.is_live(now) for s in (self.daily, self.weekly))

    def stale_kinds(self, now):
        return [kind for kind in ('daily', 'weekly') if self.section(kind) is None or not self.section(kind).is_live(now)]


def user_challenge_doc_id(user_id, region_key):
    return f"{user_id}__{region_key}"

# --- PROGRESS ---

class LevelSummary(BaseModel):
    experiencePoints: int
    level: int
    title: str
    leveledUp: bool = False


class ChallengeTransition(BaseModel):
    kind: ChallengeKind
    regionKey: str
    animalName: str
    progressCount: int
    requiredCount: int
    justCompleted: bool = False
    xpAwarded: int = 0
    level: Optional[LevelSummary] = None
