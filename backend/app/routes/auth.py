"""Principal resolution shared by the membership routers."""
from __future__ import annotations

import os
from typing import Optional

from fastapi import Cookie, Header

from ... import app_context
from ..membership import Principal

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def current_principal(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
    authorization: Optional[str] = Header(None),
) -> Principal:
    """Resolve the caller through the dependency registered in the app context."""

    return app_context.get_current_principal(session_token=session_token, authorization=authorization)
