from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session
from ..auth.dependencies import get_current_user
from ..config.database import get_db
from ..model.user import User
from ..schema.auth import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    ProfileResponse,
    RegisterRequest,
    UpdateProfileRequest,
)
from ..service.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: RegisterRequest, db: Session = Depends(get_db)):
    return AuthService(db).register(user_data)


@router.post("/login", response_model=AuthResponse)
async def login(credentials: LoginRequest, request: Request, db: Session = Depends(get_db)):
    return AuthService(db).login(
        credentials.email,
        credentials.password,
        ip_address=request.client.host if request.client else None
    )


@router.get("/profile", response_model=ProfileResponse)
async def profile(current_user: User = Depends(get_current_user)):
    return {"user": current_user.to_public_dict()}


@router.put("/profile", response_model=ProfileResponse)
async def update_profile(
        data: UpdateProfileRequest,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    """Atualiza nome e, se enviado, o avatar"""
    return AuthService(db).update_profile(current_user, name=data.name, avatar=data.avatar)


settings_router = APIRouter(prefix="/settings", tags=["Settings"])


@settings_router.put("/password", response_model=MessageResponse)
async def change_password(
        data: ChangePasswordRequest,
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
):
    return AuthService(db).change_password(current_user, data.current_password, data.new_password)
