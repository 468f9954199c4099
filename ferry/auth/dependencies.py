from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from typing import Optional
from datetime import datetime, timedelta, timezone
import jwt

from ferry.config import settings
from ferry.auth.schemas import Actor, Capability, TokenData, GUEST

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login", auto_error=False)

def create_access_token(profile_id: int, role: str, email: Optional[str] = None) -> str:
    """Issue a signed access token for a profile"""
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {"sub": str(profile_id), "role": role, "exp": expire}
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def decode_access_token(token: str) -> TokenData:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return TokenData(sub=int(payload["sub"]), role=payload["role"], email=payload.get("email"))
    except (jwt.PyJWTError, KeyError, ValueError):
        raise credentials_exception

def get_optional_actor(token: Optional[str] = Depends(oauth2_scheme)) -> Actor:
    """Actor for endpoints open to guests (online self-serve booking)"""
    if not token:
        return GUEST
    token_data = decode_access_token(token)
    return Actor(profile_id=token_data.sub, role=token_data.role, email=token_data.email)

def get_current_actor(actor: Actor = Depends(get_optional_actor)) -> Actor:
    """Get current authenticated actor"""
    if actor.is_guest:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor

def require_capability(capability: Capability):
    """Dependency factory: require the actor's role to grant a capability"""
    def checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not actor.can(capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions"
            )
        return actor
    return checker
