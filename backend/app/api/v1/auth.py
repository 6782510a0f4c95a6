"""
Authentication API Routes
"""
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.api.deps import success, get_client_info
from app.core.database import get_db
from app.core.roles import get_permissions
from app.core.security import create_user_token, get_current_user
from app.schemas import LoginRequest, RegisterRequest, Token, UserResponse
from app.services.audit_service import ActivityLogService, ActivityAction
from app.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    db: Session = Depends(get_db)
):
    """Register a buyer account"""
    user = UserService(db).register(data)
    db.commit()
    db.refresh(user)
    token = Token(access_token=create_user_token(user), user=UserResponse.model_validate(user))
    return success(token, message="Account created successfully")


@router.post("/login")
async def login(
    data: LoginRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """Exchange email and password for a bearer token"""
    user = UserService(db).authenticate(data.email, data.password)

    ip_address, user_agent = get_client_info(request)
    ActivityLogService(db).log(
        action=ActivityAction.LOGIN,
        entity_type="User",
        entity_id=user.id,
        entity_name=user.email,
        description="Logged in",
        user=user,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.commit()
    db.refresh(user)

    return success(Token(access_token=create_user_token(user), user=UserResponse.model_validate(user)))


@router.get("/me")
async def me(current_user=Depends(get_current_user)):
    """Current user with the permissions granted by their role"""
    return success({
        "user": UserResponse.model_validate(current_user),
        "permissions": sorted(p.value for p in get_permissions(current_user.role)),
    })
