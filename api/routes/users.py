"""
api/routes/users.py -- User listing.

Routes:
  GET /api/users  -- every account, without password hashes
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from api.models import UserResponse
from auth.service import Authenticator

router = APIRouter()


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request) -> list[UserResponse]:
    """List all user accounts."""
    authenticator: Authenticator = request.app.state.authenticator
    return [UserResponse.from_user(u) for u in authenticator.list_users()]
