# Authentication routes and request dependencies

import logging
from typing import Dict, Any, Optional
from fastapi import APIRouter, HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .models import RegisterRequest, LoginRequest, LoginResponse, TokenData, UserInfo
from db.manager import DatabaseManager
from db.supporting_operations import SupportingOperations
from utils.config import Config
from utils.security import JWTManager
from utils.response import create_success_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])

config = Config()
jwt_manager = JWTManager(
    secret_key=config.get("auth.jwt_secret_key"),
    algorithm=config.get("auth.jwt_algorithm", "HS256"),
    access_token_expire_minutes=config.get("auth.access_token_expire_minutes", 1440)
)
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def get_database():
    """One connection per request"""
    db_config = config.get_database_config()
    db_manager = DatabaseManager(
        db_config["path"], auto_connect=True, timeout=db_config.get("busy_timeout_seconds", 10)
    )
    try:
        yield db_manager
    finally:
        db_manager.close()


def _token_user(token: str, db: DatabaseManager) -> TokenData:
    payload = jwt_manager.verify_token(token)
    if not payload or "user_id" not in payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Please sign in again")

    user = SupportingOperations(db).get_user_by_id(payload["user_id"])
    if not user or user["status"] != "active" or user["is_shadow"]:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Please sign in again")

    return TokenData(user_id=user["user_id"], email=user["email"], is_admin=user["is_admin"])


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: DatabaseManager = Depends(get_database)
) -> TokenData:
    return _token_user(credentials.credentials, db)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: DatabaseManager = Depends(get_database)
) -> Optional[TokenData]:
    """Signed-in user, or None for guest checkout"""
    if credentials is None:
        return None
    return _token_user(credentials.credentials, db)


def get_admin_user(current_user: TokenData = Depends(get_current_user)) -> TokenData:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator access required")
    return current_user


def _login_response(user: Dict[str, Any]) -> Dict[str, Any]:
    access_token = jwt_manager.create_access_token({
        "user_id": user["user_id"],
        "email": user["email"],
        "is_admin": user["is_admin"],
    })
    return LoginResponse(
        access_token=access_token,
        expires_in=jwt_manager.access_token_expire_minutes * 60,
        user_info=UserInfo(**user)
    ).model_dump()


@router.post("/register", response_model=Dict[str, Any])
def register(request: RegisterRequest, db: DatabaseManager = Depends(get_database)):
    """
    Create an account; an email used earlier for guest checkout keeps its orders
    """
    user = SupportingOperations(db).register_user(
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
        phone=request.phone
    )
    return create_success_response(data=_login_response(user), message="Account created")


@router.post("/login", response_model=Dict[str, Any])
def login(request: LoginRequest, db: DatabaseManager = Depends(get_database)):
    user = SupportingOperations(db).authenticate_user(request.email, request.password)
    logger.info(f"User {user['user_id']} signed in")
    return create_success_response(data=_login_response(user), message="Signed in")


@router.get("/me", response_model=Dict[str, Any])
def me(current_user: TokenData = Depends(get_current_user), db: DatabaseManager = Depends(get_database)):
    user = SupportingOperations(db).get_user_by_id(current_user.user_id)
    return create_success_response(data=UserInfo(**user).model_dump())
