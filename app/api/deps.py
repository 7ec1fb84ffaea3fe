from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.core.config import settings
from app.core.rate_limit import RateLimiter
from app.core.security import decode_token
from app.models.user import User

bearer = HTTPBearer(auto_error=False)

booking_limiter = RateLimiter(settings.BOOKING_RATE_LIMIT_PER_MINUTE)
payment_limiter = RateLimiter(settings.PAYMENT_RATE_LIMIT_PER_MINUTE)


def _user_from_token(token: str, db: Session) -> User:
    try:
        payload = decode_token(token)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")
    user_id = payload.get("sub")
    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds:
        raise HTTPException(status_code=401, detail="Unauthorized. Please log in to continue.")
    return _user_from_token(creds.credentials, db)


def get_optional_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User | None:
    """Guests may book; a token that is present must still be valid."""
    if not creds:
        return None
    return _user_from_token(creds.credentials, db)


def require_roles(*roles: str):
    def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return _guard


def client_identifier(request: Request, user: User | None) -> str:
    if user is not None:
        return f"user:{user.id}"
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() or request.headers.get("x-real-ip", "")
    if not ip and request.client:
        ip = request.client.host
    return f"ip:{ip or 'unknown'}"


def rate_limited(limiter: RateLimiter, optional_auth: bool = False):
    """Dependency that consumes one token for the caller and returns the user (or None for guests)."""
    user_dep = get_optional_user if optional_auth else get_current_user

    def _check(request: Request, user: User | None = Depends(user_dep)) -> User | None:
        result = limiter.check(client_identifier(request, user))
        if not result.allowed:
            raise HTTPException(
                status_code=429,
                detail="Too many requests. Please try again later.",
                headers={
                    "Retry-After": str(result.retry_after),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )
        return user
    return _check
