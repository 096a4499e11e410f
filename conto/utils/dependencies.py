"""
FastAPI dependencies for dependency injection.
Provides reusable dependencies for authentication, cache and query params.
"""
from fastapi import Depends, HTTPException, Path, Query, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional, Dict, Any
from jose import jwt, JWTError
from datetime import datetime, timezone
import logging

from conto.config import settings
from conto.exceptions import AuthenticationError
from conto.models import AccountType, ContoFilters, TransactionStatus, TransactionType
from conto.services.conto_cache import ContoCache
from conto.services.scope_resolver import ADMIN_ROLES

logger = logging.getLogger(__name__)

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict[str, Any]:
    """
    Dependency to get current authenticated user from JWT token.

    Tokens are issued by the authentication service; here they are only
    decoded. The payload must carry "sub" (user id) and "role".

    Raises:
        HTTPException: If token is invalid or expired
    """
    token = credentials.credentials

    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )

        user_id: str = payload.get("sub")
        if user_id is None:
            raise AuthenticationError("Invalid token: missing user ID")

        exp = payload.get("exp")
        if exp and datetime.fromtimestamp(exp, tz=timezone.utc) < datetime.now(timezone.utc):
            raise AuthenticationError("Token has expired")

        return {
            "user_id": user_id,
            "email": payload.get("email"),
            "name": payload.get("name"),
            "role": payload.get("role", "user")
        }

    except JWTError as e:
        logger.error(f"JWT validation error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"}
        )
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"}
        )


async def get_current_admin_user(
    current_user: Dict[str, Any] = Depends(get_current_user)
) -> Dict[str, Any]:
    """
    Dependency to ensure current user has an admin role (admin, super_admin).

    Raises:
        HTTPException: If user is not admin
    """
    if current_user.get("role") not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    return current_user


def get_account(
    account: AccountType = Path(..., description="proselitismo | servizi")
) -> str:
    """The ledger comes from the path only."""
    return account.value


def get_conto_cache(request: Request) -> ContoCache:
    """The cache built by the app factory; a fresh one if the app has none."""
    cache = getattr(request.app.state, "conto_cache", None)
    if cache is None:
        cache = ContoCache(
            ttl_seconds=settings.CONTO_CACHE_TTL_SECONDS,
            enabled=settings.CONTO_CACHE_ENABLED
        )
        request.app.state.conto_cache = cache
    return cache


def pagination_params(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1)
) -> Dict[str, int]:
    """
    Dependency for pagination parameters.

    Returns:
        {"page", "limit"} with limit clamped to 1000
    """
    return {"page": page, "limit": min(limit, 1000)}


def _parse_day(value: Optional[str], name: str) -> Optional[str]:
    if not value:
        return None
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date().isoformat()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name} format. Expected YYYY-MM-DD, got: {value}"
        )


def conto_filters(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    type: Optional[TransactionType] = Query(None),
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    q: Optional[str] = Query(None),
    company_id: Optional[str] = Query(None, alias="companyId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    current_user: Dict[str, Any] = Depends(get_current_user)
) -> ContoFilters:
    """
    Query filters for scoped reads.

    userId narrows the view only for admins; any other role gets it dropped.
    """
    parsed_from = _parse_day(date_from, "from")
    parsed_to = _parse_day(date_to, "to")
    if parsed_from and parsed_to and parsed_from > parsed_to:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="from must be before or equal to to"
        )

    return ContoFilters(
        date_from=parsed_from,
        date_to=parsed_to,
        type=type,
        status=status_filter,
        q=q.strip() if q and q.strip() else None,
        company_id=company_id,
        user_id=user_id if current_user.get("role") in ADMIN_ROLES else None,
    )
