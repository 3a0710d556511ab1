import logging

from geopy.exc import GeopyError
from geopy.geocoders import Nominatim

from challenge_config import ChallengeConfig

logger = logging.getLogger(__name__)


class NominatimGeocoder:
    """Reverse geocoding through OpenStreetMap Nominatim. Returns 'City, State' or None."""

    def __init__(self, user_agent=None, timeout=None):
        self.geolocator = Nominatim(
            user_agent=user_agent or ChallengeConfig.GEOCODER_USER_AGENT,
            timeout=ChallengeConfig.GEOCODER_TIMEOUT_SECONDS if timeout is None else timeout,
        )

    def reverse_geocode(self, lat, lon):
        try:
            location = self.geolocator.reverse(f"{lat}, {lon}", language='en', addressdetails=True)
        except GeopyError as e:
            logger.warning(f"Nominatim reverse lookup failed for ({lat}, {lon}): {e}")
            return None
        if not location:
            return None
        return label_from_address(location.raw.get('address', {}))


def label_from_address(address):
    city = address.get('city') or address.get('town') or address.get('village') or address.get('county')
    state = address.get('state') or address.get('region') or address.get('country')
    parts = [p for p in (city, state) if p]
    return ", ".join(parts) or None
