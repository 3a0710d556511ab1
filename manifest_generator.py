import json
import math
import logging
import re
import time
from typing import List

from google import genai
from google.genai import types
from pydantic import BaseModel

from api.prompts import build_sighting_probability_prompt
from challenge_config import ChallengeConfig, get_gemini_api_keys
from exceptions import ManifestGenerationFailed

logger = logging.getLogger(__name__)

GEMINI_KEY_INDEX = "current_manifest_gemini_key_index"


class SuggestedProbability(BaseModel):
    name: str
    probability: float


def parse_manifest_response(raw_text):
    """
    Parses the model's text into a list. Tolerates markdown fences, leading/trailing prose,
    trailing commas and single quotes.
    """
    if not raw_text:
        raise ValueError("Empty response from Gemini")
    cleaned = raw_text.strip().removeprefix("```json").removeprefix("```").removesuffix("```").strip()
    match = re.search(r"\[[\s\S]*\]", cleaned)
    if match:
        cleaned = match.group(0)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning(f"Initial JSON parse failed, attempting repair: {e}")
        repaired = re.sub(r",\s*}", "}", cleaned)
        repaired = re.sub(r",\s*]", "]", repaired)
        repaired = repaired.replace(": undefined", ": null").replace("'", '"')
        parsed = json.loads(repaired)
    if not isinstance(parsed, list):
        raise ValueError("Invalid response: expected an array")
    return parsed


def normalize_manifest(raw_entries, animal_names):
    """
    Keeps only well-formed entries for catalog animals, clamps probabilities to 0..100 and
    appends catalog animals the model left out with probability 0.

    Returns (entries, matched_count). matched_count == 0 means the response was unusable.
    """
    canonical = {name.lower(): name for name in animal_names}
    manifest, seen = [], set()
    for item in raw_entries or []:
        if not isinstance(item, dict):
            logger.warning(f"Skipping invalid manifest entry: {item!r}")
            continue
        name, probability = item.get('name'), item.get('probability')
        if not isinstance(name, str) or not name.strip() or isinstance(probability, bool) \
                or not isinstance(probability, (int, float)) or not math.isfinite(probability):
            logger.warning(f"Skipping invalid manifest entry: {item!r}")
            continue
        exact = canonical.get(name.strip().lower())
        if not exact:
            logger.warning(f"Unknown animal in manifest: \"{name}\"")
            continue
        if exact.lower() in seen:
            continue
        seen.add(exact.lower())
        manifest.append({'name': exact, 'probability': max(0, min(100, int(round(probability))))})

    matched = len(manifest)
    for name in animal_names:
        if name.lower() not in seen:
            seen.add(name.lower())
            manifest.append({'name': name, 'probability': 0})
    return manifest, matched


def probability_distribution(entries):
    """Tier counts, for logging."""
    tiers = {'zero': 0, 'rare': 0, 'uncommon': 0, 'fairlyCommon': 0, 'common': 0, 'veryCommon': 0, 'extremelyCommon': 0}
    for entry in entries:
        p = entry['probability']
        if p == 0: tiers['zero'] += 1
        elif p <= 5: tiers['rare'] += 1
        elif p <= 15: tiers['uncommon'] += 1
        elif p <= 35: tiers['fairlyCommon'] += 1
        elif p <= 60: tiers['common'] += 1
        elif p <= 80: tiers['veryCommon'] += 1
        else: tiers['extremelyCommon'] += 1
    return tiers


class GeminiManifestGenerator:
    """
    Asks Gemini for per-animal sighting probabilities at a location.

    Keys are rotated starting from the last key that worked (index kept in Redis when
    available). The whole call, rotation included, is bounded by `timeout_seconds`;
    running out of keys or time raises ManifestGenerationFailed.
    """

    def __init__(self, api_keys=None, model=None, timeout_seconds=None, redis_client=None, client_factory=None):
        self.api_keys = api_keys if api_keys is not None else get_gemini_api_keys()
        self.model = model or ChallengeConfig.GEMINI_MODEL
        self.timeout_seconds = ChallengeConfig.GEMINI_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self.redis_client = redis_client
        self.client_factory = client_factory or self._build_client

    def _build_client(self, api_key, timeout_seconds):
        return genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=max(1, int(timeout_seconds * 1000))),
        )

    def _start_index(self):
        if not self.redis_client:
            return 0
        try:
            return int(self.redis_client.get(GEMINI_KEY_INDEX) or 0)
        except Exception as e:
            logger.warning(f"Could not read Gemini key index from Redis: {e}")
            return 0

    def _remember_index(self, index):
        if not self.redis_client:
            return
        try:
            self.redis_client.set(GEMINI_KEY_INDEX, index)
        except Exception as e:
            logger.warning(f"Could not store Gemini key index in Redis: {e}")

    def suggest_probabilities(self, location_label, animal_names) -> List[dict]:
        if not self.api_keys:
            raise ManifestGenerationFailed("No GEMINI_API_KEY environment variables found.")

        prompt = build_sighting_probability_prompt(location_label, animal_names)
        deadline = time.monotonic() + self.timeout_seconds
        start_index = self._start_index()
        last_error = None

        logger.info(f"Calling Gemini for probability manifest: location='{location_label}', animals={len(animal_names)}")
        for i in range(len(self.api_keys)):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.error(f"Gemini manifest generation timed out after {self.timeout_seconds}s for '{location_label}'.")
                raise ManifestGenerationFailed(f"Manifest generation timed out after {self.timeout_seconds}s.")
            current_index = (start_index + i) % len(self.api_keys)
            try:
                logger.info(f"--> Trying Gemini API Key #{current_index + 1}")
                # Each attempt only gets what is left of the overall budget
                client_instance = self.client_factory(self.api_keys[current_index], remaining)
                response = client_instance.models.generate_content(
                    model=self.model,
                    contents=[prompt],
                    config=types.GenerateContentConfig(
                        response_mime_type="application/json",
                        response_schema=list[SuggestedProbability],
                        temperature=0.2,
                    ),
                )
                parsed = parse_manifest_response(response.text)
                self._remember_index(current_index)
                logger.info(f"Gemini returned {len(parsed)} manifest entries using key #{current_index + 1}.")
                return parsed
            except Exception as e:
                last_error = e
                logger.warning(f"Gemini API Key #{current_index + 1} failed. Error: {e}")

        logger.error("All Gemini API keys have failed.")
        raise ManifestGenerationFailed(f"Failed to generate probability manifest: {last_error}")
