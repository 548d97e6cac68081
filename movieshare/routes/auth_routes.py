from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field

from movieshare.database import ensure_db
from movieshare.errors import AuthError, PasswordMismatchError
from movieshare.services.activity_service import SessionActivityRecorder
from movieshare.services.session_service import SessionManager
from movieshare.utils.auth import get_session_manager
from movieshare.utils.logger import logger
from movieshare.utils.notifications import error_detail, notification

router = APIRouter(prefix="/api/auth", tags=["Auth"], dependencies=[Depends(ensure_db)])


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    confirm_password: str = Field(alias="confirmPassword")


@router.post("/register")
async def register(req: RegisterRequest, manager: SessionManager = Depends(get_session_manager)):
    await manager.subscribe(SessionActivityRecorder())
    try:
        token = await manager.register(req.email, req.password, req.confirm_password)
    except PasswordMismatchError as e:
        raise HTTPException(status_code=400, detail=error_detail(e.message))
    except AuthError as e:
        raise HTTPException(status_code=400, detail=error_detail(f"Registration failed: {e.message}"))
    except Exception as e:
        logger.error(f"Registration failed: {e}")
        raise HTTPException(status_code=502, detail=error_detail(f"Registration failed: {str(e)}"))

    return {
        "token": token,
        "session": manager.affordances(),
        "notification": notification("Registration successful!"),
    }


@router.post("/login")
async def login(req: LoginRequest, manager: SessionManager = Depends(get_session_manager)):
    await manager.subscribe(SessionActivityRecorder())
    try:
        token = await manager.sign_in(req.email, req.password)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=error_detail(f"Login failed: {e.message}"))
    except Exception as e:
        logger.error(f"Login failed: {e}")
        raise HTTPException(status_code=502, detail=error_detail(f"Login failed: {str(e)}"))

    return {
        "token": token,
        "session": manager.affordances(),
        "notification": notification("Login successful!"),
    }


@router.post("/logout")
async def logout(manager: SessionManager = Depends(get_session_manager)):
    await manager.subscribe(SessionActivityRecorder())
    try:
        await manager.sign_out()
    except Exception as e:
        logger.error(f"Logout failed: {e}")
        raise HTTPException(status_code=502, detail=error_detail(f"Logout failed: {str(e)}"))

    return {
        "session": manager.affordances(),
        "notification": notification("Logged out successfully"),
    }


@router.get("/session")
async def get_session(manager: SessionManager = Depends(get_session_manager)):
    """What the current caller may do (drives login/upload/download affordances)."""
    return manager.affordances()
