# API Router for the operator login gate
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from csr_request_service.app.config import settings
from csr_request_service.app.dependencies.services import get_captcha_registry
from csr_request_service.app.service.auth import CaptchaRegistry, verify_login
from csr_request_service.app.service.exceptions import CaptchaMismatchError, MissingFieldError

logger = logging.getLogger(__name__)
router = APIRouter()


class CaptchaResponse(BaseModel):
    challenge_id: str
    question: str


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    challenge_id: Optional[str] = None
    captcha_answer: Optional[str] = None


class LoginResponse(BaseModel):
    username: str
    message: str


@router.post("/auth/captcha", response_model=CaptchaResponse, tags=["Auth"])
async def issue_captcha(registry: CaptchaRegistry = Depends(get_captcha_registry)):
    challenge = registry.issue()
    return CaptchaResponse(challenge_id=challenge.challenge_id, question=challenge.question)


@router.post("/auth/login", response_model=LoginResponse, tags=["Auth"])
async def login(
    login_data: LoginRequest = Body(...),
    registry: CaptchaRegistry = Depends(get_captcha_registry)
):
    """
    Checks the login form. Any non-empty username and password are accepted
    once the CAPTCHA sum is right; the challenge is consumed on success.
    """
    await asyncio.sleep(settings.LOGIN_LATENCY_SECONDS)
    try:
        username = verify_login(
            login_data.username,
            login_data.password,
            registry.get(login_data.challenge_id),
            login_data.captcha_answer,
        )
    except (MissingFieldError, CaptchaMismatchError) as e:
        logger.info(f"Login rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Unexpected error during login: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="An unexpected error occurred during login.")

    registry.discard(login_data.challenge_id)
    logger.info(f"Operator {username} logged in.")
    return LoginResponse(username=username, message="Login successful")


@router.post("/auth/logout", tags=["Auth"])
async def logout():
    # No server-side session to end
    return {"message": "Logged out"}
