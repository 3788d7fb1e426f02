"""
Application-wide constants for the SafeHER backend.

This module contains all shared constants used across the application.
"""

import os

# ========= Service Configuration =========
# Service configuration: service_name -> (module_path, port)
SERVICES = {
    "stories": ("services.stories.main", 20010),
    "safety_scoring": ("services.safety_scoring.main", 20003),
}

# Docs service (service discovery)
DOCS_SERVICE = ("docs.main", 8080)

# ========= Auth Configuration =========
AUTH0_DOMAIN = os.getenv("AUTH0_DOMAIN", "safeher.eu.auth0.com")
API_AUDIENCE = os.getenv("API_AUDIENCE", "https://api.safeher.app")
ISSUER = f"https://{AUTH0_DOMAIN}/"
JWKS_URL = f"{ISSUER}.well-known/jwks.json"
ALGORITHMS = ["RS256"]

# JWKS fetch timeout (seconds)
JWKS_FETCH_TIMEOUT = 5

# ========= Community Signal Scoring =========
# Stories within this great-circle distance of the start point count as nearby
NEARBY_RADIUS_KM = 1.2
EARTH_RADIUS_KM = 6371.0

# Impact contributed by a single reaction on a nearby story
COMMUNITY_REACTION_WEIGHTS = {
    "helpful": 2.0,
    "like": 1.0,
    "noted": 0.5,
}
COMMUNITY_PENALTY_MULTIPLIER = 1.3
COMMUNITY_PENALTY_CAP = 30

# Neutral score before any community penalty is applied
BASELINE_SAFETY_SCORE = 70

# Risk label thresholds for the community-weighted score (inclusive lower bounds)
LOW_RISK_MIN_SCORE = 75
MEDIUM_RISK_MIN_SCORE = 50

# Public activity is "High" above this many nearby reports
HIGH_ACTIVITY_MIN_REPORTS = 4

# Placeholder levels; no data source backs these yet
STREET_LIGHTING_LEVEL = "Medium"
VISIBILITY_LEVEL = "Medium"

EXPLANATION_DESTINATION = (
    "Analysis is based on public context signals, urban heuristics, and weighted "
    "community reactions. Accuracy improves as more women share experiences."
)

# ========= Start Location Defaults =========
DEFAULT_START = {"lat": 43.6532, "lng": -79.3832}
DEFAULT_HOME = {"lat": 43.945, "lng": -78.896}

# ========= Fallback Route Scoring =========
FALLBACK_BASE_SCORE = 70
FALLBACK_PENALTY_PER_KM = 5
FALLBACK_MIN_SCORE = 10
FALLBACK_MAX_SCORE = 90
FALLBACK_FACTORS = {
    "lighting": "medium",
    "incidents": "low",
    "visibility": "medium",
}

# Walking pace used to estimate duration when directions are unavailable (m/s)
WALKING_SPEED_MPS = 1.4

# ========= Heatmap =========
HEATMAP_REACTION_WEIGHTS = {
    "like": 1,
    "helpful": 3,
    "noted": 2,
}
HEATMAP_MAX_FEATURES = 500

# ========= Route Alternatives =========
# Stories within this distance of any route vertex count toward that route (meters)
ROUTE_STORY_RADIUS_M = 500
# Nearby stories with fewer reactions than this count as unresolved concerns
ROUTE_LOW_ENGAGEMENT_REACTIONS = 2
ROUTE_DISTANCE_PENALTY_PER_KM = 10
# Placeholder; no lighting data source backs this yet
ROUTE_LIGHTING_SCORE = 80
ROUTE_DEFAULT_CRIME_SCORE = 75
ROUTE_DEFAULT_STORY_SCORE = 50
ROUTE_STORY_SCORE_PER_STORY = 10
ROUTE_FACTOR_WEIGHTS = {
    "distance": 0.3,
    "lighting": 0.2,
    "crime": 0.3,
    "story": 0.2,
}
