from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.container import ApplicationContainer
from app.core.security import decode_token
from app.db.session import get_db
from app.services.entitlement_store import SqlEntitlementStore

bearer = HTTPBearer()


def get_container(request: Request) -> ApplicationContainer:
    return request.app.state.container


def get_store(db: Session = Depends(get_db)) -> SqlEntitlementStore:
    return SqlEntitlementStore(db)


def get_current_profile_id(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> str:
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    profile_id = payload.get("sub")
    if not profile_id:
        raise HTTPException(status_code=401, detail="Invalid token subject")
    return str(profile_id)
