import logging
import math

from challenge_config import ChallengeConfig
from exceptions import InvalidLocation
from models import GeoPoint, Region

logger = logging.getLogger(__name__)


def validate_coordinates(latitude, longitude):
    """Coerces to float and range-checks. Raises InvalidLocation on anything malformed."""
    if latitude is None or longitude is None:
        raise InvalidLocation("Missing lat/lng coordinates.", latitude, longitude)
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        raise InvalidLocation("Invalid coordinates. lat and lng must be valid numbers.", latitude, longitude)
    if not math.isfinite(lat) or not math.isfinite(lon):
        raise InvalidLocation("Invalid coordinates. lat and lng must be finite.", latitude, longitude)
    if lat < -90 or lat > 90:
        raise InvalidLocation("Invalid latitude. Must be between -90 and 90.", latitude, longitude)
    if lon < -180 or lon > 180:
        raise InvalidLocation("Invalid longitude. Must be between -180 and 180.", latitude, longitude)
    return lat, lon


def format_coordinate_label(lat, lon):
    """Fallback display label, e.g. '30.38°N, 97.62°W'."""
    ns = 'N' if lat >= 0 else 'S'
    ew = 'E' if lon >= 0 else 'W'
    return f"{abs(lat):.2f}°{ns}, {abs(lon):.2f}°{ew}"


class RegionKeyer:
    """
    Buckets coordinates into fixed-size grid cells.

    key_for() is pure: every point inside a cell yields the same key, label and center.
    describe() optionally upgrades the label through a geocoder and is only called
    when a region is seen for the first time.
    """

    def __init__(self, cell_degrees=None, geocoder=None):
        self.cell_degrees = ChallengeConfig.REGION_CELL_DEGREES if cell_degrees is None else cell_degrees
        if self.cell_degrees <= 0:
            raise ValueError("cell_degrees must be positive")
        self.geocoder = geocoder

    @property
    def cell_code(self):
        return int(round(self.cell_degrees * 100))

    def cell_indices(self, lat, lon):
        # 180 and -180 are the same meridian
        if lon == 180:
            lon = -180.0
        lat_idx = math.floor(lat / self.cell_degrees)
        lon_idx = math.floor(lon / self.cell_degrees)
        # The north pole would otherwise get a cell of its own
        max_lat_idx = math.ceil(90 / self.cell_degrees) - 1
        return min(lat_idx, max_lat_idx), lon_idx

    def key_for(self, latitude, longitude):
        lat, lon = validate_coordinates(latitude, longitude)
        lat_idx, lon_idx = self.cell_indices(lat, lon)
        center = GeoPoint(
            lat=round((lat_idx + 0.5) * self.cell_degrees, 6),
            lon=round((lon_idx + 0.5) * self.cell_degrees, 6),
        )
        return Region(
            key=f"r{self.cell_code}:{lat_idx}:{lon_idx}",
            displayLocation=format_coordinate_label(center.lat, center.lon),
            center=center,
        )

    def describe(self, region):
        """Best-effort human label for a region; never raises."""
        if not self.geocoder:
            return region.displayLocation
        try:
            label = self.geocoder.reverse_geocode(region.center.lat, region.center.lon)
        except Exception as e:
            logger.warning(f"Reverse geocoding failed for {region.key}: {e}")
            return region.displayLocation
        return label or region.displayLocation
