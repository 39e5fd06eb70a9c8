# accounts_api/api/v1/endpoints/auth.py

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status, Query, Response

from accounts_api.api.deps import AuthServiceDep, CurrentUser, require_registration_enabled
from accounts_api.core.exceptions import (
    DuplicateKeyFieldError,
    ExpiredTokenError,
    IncorrectPasswordError,
    InvalidTokenError,
    MalformedRequestError,
    NotFoundError,
    RegistrationDisabledError,
    WeakPasswordError,
)
from accounts_api.db import crud
from accounts_api.models.user import (
    PasswordChange,
    PasswordReset,
    RegistrationResponse,
    SignIn,
    TokenResponse,
    UserPublic,
    UserRegister,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Auth"]
)

# --- POST /auth/signup ---
@router.post(
    "/signup",
    response_model=RegistrationResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    # Checked before the body is parsed, so a disabled signup is 403 even for malformed input
    dependencies=[Depends(require_registration_enabled)],
    summary="Register a new account",
    responses={
        400: {"description": "Weak password or username already taken"},
        403: {"description": "Registration is disabled"},
    }
)
async def signup(body: UserRegister, auth_service: AuthServiceDep):
    try:
        return await auth_service.register(body)
    except RegistrationDisabledError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except WeakPasswordError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DuplicateKeyFieldError as e:
        if e.index_name == crud.USERNAME_INDEX:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username is taken")
        logger.error(f"Error registering user, duplicate key on {e.index_name}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to register user.")
    except Exception as e:
        logger.error(f"Error registering user: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to register user.")

# --- POST /auth/signin ---
@router.post(
    "/signin",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Exchange username and password for a bearer token",
)
async def signin(body: SignIn, auth_service: AuthServiceDep):
    try:
        return await auth_service.authenticate(body.username, body.password)
    except IncorrectPasswordError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    except Exception as e:
        logger.error(f"Error signing in: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to sign in.")

# --- POST /auth/change-password ---
@router.post(
    "/change-password",
    response_model=UserPublic,
    status_code=status.HTTP_200_OK,
    summary="Change the authenticated user's password",
)
async def change_password(body: PasswordChange, current_user: CurrentUser, auth_service: AuthServiceDep):
    try:
        return await auth_service.change_password(current_user, body)
    except (IncorrectPasswordError, WeakPasswordError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error changing password for user {current_user.get('_id')}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to change password.")

# --- GET /auth/verify-email ---
@router.get(
    "/verify-email",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Confirm an email address with the emailed token",
    responses={400: {"description": "Token invalid or expired"}}
)
async def verify_email(auth_service: AuthServiceDep, token: Optional[str] = Query(None)):
    try:
        await auth_service.verify_email(token)
    except (InvalidTokenError, ExpiredTokenError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error verifying email: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to verify email.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# --- POST /auth/verify-email/request ---
@router.post(
    "/verify-email/request",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Send a fresh verification email to the authenticated user",
)
async def request_verification_email(current_user: CurrentUser, auth_service: AuthServiceDep):
    try:
        await auth_service.request_verification_email(current_user)
    except Exception as e:
        logger.error(f"Error sending verification email to user {current_user.get('_id')}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send verification email."
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# --- POST /auth/forgot-password ---
@router.post(
    "/forgot-password",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Email a password reset link",
    responses={400: {"description": "Missing or unknown email"}}
)
async def request_password_reset_email(auth_service: AuthServiceDep, email: Optional[str] = Query(None)):
    try:
        await auth_service.request_password_reset_email(email)
    except (MalformedRequestError, NotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error sending password reset email: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send password reset email."
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# --- POST /auth/reset-password ---
@router.post(
    "/reset-password",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Set a new password using a reset token",
    responses={400: {"description": "Missing fields, weak password, or bad token"}}
)
async def reset_password(body: PasswordReset, auth_service: AuthServiceDep):
    try:
        await auth_service.reset_password(body)
    except (MalformedRequestError, WeakPasswordError, InvalidTokenError, ExpiredTokenError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error resetting password: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to reset password.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
