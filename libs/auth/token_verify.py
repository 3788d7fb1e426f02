# libs/auth/token_verify.py
"""
Bearer token verification for FastAPI.

- verify_token:         verify an Auth0-issued JWT against the tenant JWKS
- get_optional_claims:  dependency for routes where signing in is optional;
                        no header -> None, bad header -> 401

Env vars (see common.constants):
- AUTH0_DOMAIN   e.g. safeher.eu.auth0.com
- API_AUDIENCE   e.g. https://api.safeher.app
"""

import json
import logging
from typing import Optional

import certifi
import jwt
import requests
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.algorithms import RSAAlgorithm

from common.constants import ALGORITHMS, API_AUDIENCE, ISSUER, JWKS_FETCH_TIMEOUT, JWKS_URL
from common.errors import AuthError

logger = logging.getLogger(__name__)

# ---------- Security scheme ----------
optional_security = HTTPBearer(auto_error=False)


def verify_token(credentials: HTTPAuthorizationCredentials) -> dict:
    """
    Verify JWT issued by Auth0 using JWKS (fetched via requests/certifi).

    Returns:
        Decoded token claims

    Raises:
        AuthError: On any fetch, key lookup or validation failure
    """
    token = credentials.credentials
    try:
        # 1) Fetch JWKS with trusted CA bundle
        resp = requests.get(JWKS_URL, timeout=JWKS_FETCH_TIMEOUT, verify=certifi.where())
        resp.raise_for_status()
        jwks = resp.json()

        # 2) Match JWK by kid from token header
        header = jwt.get_unverified_header(token)
        kid = header.get("kid")
        if not kid:
            raise ValueError("Missing 'kid' in token header")
        key_dict = next((k for k in jwks["keys"] if k.get("kid") == kid), None)
        if not key_dict:
            raise ValueError("No matching JWK for token 'kid'")

        # 3) Build public key and decode
        public_key = RSAAlgorithm.from_jwk(json.dumps(key_dict))
        return jwt.decode(
            token,
            public_key,
            algorithms=ALGORITHMS,
            audience=API_AUDIENCE,
            issuer=ISSUER,
        )

    except requests.RequestException as e:
        logger.error(f"Failed to fetch JWKS from {JWKS_URL}: {e}")
        raise AuthError(f"HTTP error fetching JWKS: {e}") from e
    except jwt.ExpiredSignatureError as e:
        raise AuthError("Token expired") from e
    except jwt.InvalidAudienceError as e:
        raise AuthError("Invalid audience") from e
    except jwt.InvalidIssuerError as e:
        raise AuthError("Invalid issuer") from e
    except Exception as e:
        raise AuthError(f"Token verification failed: {e}") from e


def get_optional_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
) -> Optional[dict]:
    """Verified claims when a bearer token is sent, otherwise None."""
    if credentials is None:
        return None
    return verify_token(credentials)
