from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from ..auth.jwt_handler import decode_token
from ..config.database import get_db
from ..model.user import User
from ..util.exceptions import AuthException, NotFoundException

security = HTTPBearer()


async def get_current_user(
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
) -> User:
    token = credentials.credentials

    payload = decode_token(token)
    if payload is None or payload.get("type") != "access":
        raise AuthException(detail="Invalid token")

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthException(detail="Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundException()

    return user
