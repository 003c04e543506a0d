import logging
import math
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Cookie, FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
import psycopg2
from dotenv import load_dotenv
from jose import JWTError, jwt

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))

from backend import app_context
from backend.app.membership import Principal, PrincipalRole, User
from backend.app.routes.admin import router as admin_router
from backend.app.routes.membership import router as membership_router
from backend.app.routes.plans import router as plans_router
from backend.app.services.membership import get_membership_store
from backend.scheduler import (
    get_expiry_metrics,
    shutdown_expiry_scheduler,
    start_expiry_scheduler,
)


load_dotenv()

def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))

DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "membership_db"),
    user=os.getenv("DB_USER", "membership_user"),
    password=os.getenv("DB_PASSWORD", "membership_pass"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXP_MINUTES = int(os.getenv("JWT_EXP_MINUTES", str(60 * 24 * 7)))  # default: 7 days
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")

logger = logging.getLogger("membership")


def get_conn():
    return psycopg2.connect(**DB_CFG)


def create_access_token(
    *,
    subject: str,
    role: PrincipalRole = PrincipalRole.USER,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Sign a session token. Issuing tokens belongs to the login service; this is for tooling."""

    payload: Dict[str, Any] = {"sub": subject, "role": PrincipalRole(role).value}
    if expires_delta is None:
        expires_delta = timedelta(minutes=JWT_EXP_MINUTES)
    payload["exp"] = datetime.utcnow() + expires_delta
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def get_user_by_id(uid: int) -> Optional[User]:
    with get_membership_store().transaction() as tx:
        return tx.get_user(uid)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()


def resolve_principal_from_token(token: str) -> Optional[Principal]:
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        subject = payload.get("sub")
        if subject is None:
            return None
        user_id = int(subject)
        role = PrincipalRole(str(payload.get("role") or PrincipalRole.USER.value).lower())
    except (JWTError, ValueError) as exc:
        logger.debug("Rejected session token: %s", exc)
        return None

    user = get_user_by_id(user_id)
    if user is None or user.is_deleted:
        return None
    return Principal(id=user_id, role=role, email=user.email)


def get_current_principal(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
    authorization: Optional[str] = Header(None),
) -> Principal:
    token = session_token or _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    principal = resolve_principal_from_token(token)
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return principal


app_context.configure(get_conn=get_conn, get_current_principal=get_current_principal)

app = FastAPI(title="Membership API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(membership_router)
app.include_router(plans_router)
app.include_router(admin_router)


@app.on_event("startup")
def _start_expiry_scheduler() -> None:
    start_expiry_scheduler()


@app.on_event("shutdown")
def _shutdown_expiry_scheduler() -> None:
    shutdown_expiry_scheduler()


@app.get("/api/healthz")
def healthz():
    return {"ok": True}


@app.get("/api/metrics/access-expiry")
def read_expiry_metrics() -> Dict[str, Any]:
    return get_expiry_metrics()
