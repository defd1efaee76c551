"""
Feature-flagged API authn/authz helpers.

Requests are permissive by default. Set `ACCESS_ENFORCEMENT=true` to require
a signed internal identity (user, facility, role) and facility scoping.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import time
from dataclasses import dataclass

from fastapi import Header, HTTPException, Request

AUTH_MODES = {"jwt", "static", "either"}
DEFAULT_ROLE = "nurse"


def _env_true(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def access_enforcement_enabled() -> bool:
    return _env_true("ACCESS_ENFORCEMENT", False)


def auth_mode() -> str:
    return os.getenv("API_INTERNAL_AUTH_MODE", "jwt").strip().lower()


@dataclass(frozen=True)
class RequestIdentity:
    user_id: str
    facility_id: str
    role: str = DEFAULT_ROLE


def _b64url_decode(value: str) -> bytes:
    pad = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + pad)


def _decode_segment(segment: str) -> dict:
    try:
        return json.loads(_b64url_decode(segment).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=401, detail="Invalid internal auth token payload") from exc


def _verify_internal_jwt(token: str, *, secret: str, method: str, path: str) -> RequestIdentity:
    """HS256 token bound to one request method and path."""
    raw = token.strip()
    if raw.lower().startswith("bearer "):
        raw = raw[7:].strip()
    parts = raw.split(".")
    if len(parts) != 3:
        raise HTTPException(status_code=401, detail="Invalid internal auth token format")

    signing_input = f"{parts[0]}.{parts[1]}".encode("utf-8")
    expected_sig = hmac.new(secret.encode("utf-8"), signing_input, hashlib.sha256).digest()
    try:
        got_sig = _b64url_decode(parts[2])
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid internal auth signature encoding") from exc
    if not hmac.compare_digest(expected_sig, got_sig):
        raise HTTPException(status_code=401, detail="Invalid internal auth signature")

    header = _decode_segment(parts[0])
    claims = _decode_segment(parts[1])
    if header.get("alg") != "HS256":
        raise HTTPException(status_code=401, detail="Unsupported internal auth algorithm")

    now = int(time.time())
    exp, iat = claims.get("exp"), claims.get("iat")
    if not isinstance(exp, int) or now > exp:
        raise HTTPException(status_code=401, detail="Internal auth token expired")
    if not isinstance(iat, int) or iat > now + 60:
        raise HTTPException(status_code=401, detail="Invalid internal auth token iat")
    if claims.get("mth") != method.upper() or claims.get("pth") != path:
        raise HTTPException(status_code=401, detail="Internal auth request binding mismatch")

    user_id, facility_id = claims.get("sub"), claims.get("facility_id")
    if not user_id or not facility_id:
        raise HTTPException(status_code=401, detail="Internal auth token missing subject claims")
    return RequestIdentity(
        user_id=str(user_id),
        facility_id=str(facility_id),
        role=str(claims.get("role") or DEFAULT_ROLE),
    )


def _identity_from_jwt(request: Request, token: str, x_user_id: str | None,
                       x_facility_id: str | None) -> RequestIdentity:
    secret = os.getenv("API_INTERNAL_JWT_SECRET", "").strip()
    if len(secret) < 32:
        raise HTTPException(
            status_code=500,
            detail="API is misconfigured: API_INTERNAL_JWT_SECRET must be set for JWT mode",
        )
    identity = _verify_internal_jwt(token, secret=secret, method=request.method, path=request.url.path)
    if x_user_id and x_user_id != identity.user_id:
        raise HTTPException(status_code=401, detail="Identity header mismatch (user)")
    if x_facility_id and x_facility_id != identity.facility_id:
        raise HTTPException(status_code=401, detail="Identity header mismatch (facility)")
    return identity


def _identity_from_static(token: str | None, x_user_id: str | None, x_facility_id: str | None,
                          x_user_role: str | None) -> RequestIdentity:
    expected = os.getenv("API_INTERNAL_TOKEN", "").strip()
    if len(expected) < 24:
        raise HTTPException(
            status_code=500,
            detail="API is misconfigured: API_INTERNAL_TOKEN must be set for static mode",
        )
    if token is None or not hmac.compare_digest(token, expected):
        raise HTTPException(status_code=401, detail="Invalid internal token")
    if not x_user_id or not x_facility_id:
        raise HTTPException(
            status_code=401,
            detail="Missing required identity headers: X-User-Id and X-Facility-Id",
        )
    return RequestIdentity(user_id=x_user_id, facility_id=x_facility_id, role=x_user_role or DEFAULT_ROLE)


def get_request_identity(
    request: Request,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_facility_id: str | None = Header(default=None, alias="X-Facility-Id"),
    x_user_role: str | None = Header(default=None, alias="X-User-Role"),
    x_internal_token: str | None = Header(default=None, alias="X-Internal-Token"),
    x_internal_auth: str | None = Header(default=None, alias="X-Internal-Auth"),
) -> RequestIdentity | None:
    """
    Resolve request identity when access enforcement is enabled.
    Returns None when enforcement is disabled.
    """
    if not access_enforcement_enabled():
        return None

    mode = auth_mode()
    if mode not in AUTH_MODES:
        raise HTTPException(status_code=500, detail="Invalid API_INTERNAL_AUTH_MODE")

    if mode in {"jwt", "either"} and x_internal_auth:
        return _identity_from_jwt(request, x_internal_auth, x_user_id, x_facility_id)
    if mode in {"static", "either"}:
        return _identity_from_static(x_internal_token, x_user_id, x_facility_id, x_user_role)
    raise HTTPException(status_code=401, detail="Missing internal auth token")


def assert_facility_access(identity: RequestIdentity | None, facility_id: str) -> None:
    if identity is None:
        return
    if identity.facility_id != facility_id:
        raise HTTPException(status_code=403, detail="Forbidden: cross-facility access denied")


def identity_role(identity: RequestIdentity | None) -> str:
    """Role used for sync access checks; unauthenticated local mode acts as the system."""
    return identity.role if identity is not None else "system"
