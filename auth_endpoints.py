"""
Trading Journal - Auth Endpoints
================================

Email/password accounts with bearer-token sessions.

Endpoints:
- POST /api/auth/signup - Create account, send confirmation email
- GET /api/auth/confirm - Confirm email address from the emailed link
- POST /api/auth/signin - Exchange credentials for a bearer token
- POST /api/auth/signout - Revoke the current token
- POST /api/auth/reset-password - Email a password reset link
- POST /api/auth/reset-password/confirm - Set a new password from a reset token
- GET /api/auth/user - Current signed-in user

Tokens are random (secrets.token_urlsafe); only their SHA-256 digests are
stored, so a leaked database cannot be replayed as sessions.

Author: Trading Journal Team
"""

import hashlib
import logging
import secrets
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from config import (
    DEFAULT_DATABASE_URL, PASSWORD_HASH_ITERATIONS, PASSWORD_MIN_LENGTH,
    RESET_TOKEN_TTL_MINUTES, SESSION_TTL_HOURS,
    ensure_utc_aware, get_database_url, require_email_confirmation, utc_now,
)
from email_service import send_confirmation_email, send_password_reset_email
from journal_models import (
    AuthSession, PasswordResetToken, User,
    get_engine, get_session_factory, init_db,
)
from journal_schemas import (
    AuthUser, ResetPasswordConfirm, ResetPasswordRequest, SignInRequest, SignUpRequest,
)

logger = logging.getLogger(__name__)

# Initialize router
router = APIRouter()


# ==================== PASSWORDS & TOKENS ====================

PASSWORD_HASH_METHOD = f"pbkdf2:sha256:{PASSWORD_HASH_ITERATIONS}"


def hash_password(password: str) -> str:
    """Salted hash in werkzeug's ``method$salt$hash`` format"""
    return generate_password_hash(password, method=PASSWORD_HASH_METHOD)


def verify_password(password: str, stored_hash: str) -> bool:
    return check_password_hash(stored_hash, password)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def new_token() -> str:
    return secrets.token_urlsafe(32)


def _check_new_password(password: str, confirm_password: Optional[str] = None):
    if confirm_password is not None and password != confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
        )


def _user_payload(user: User) -> dict:
    return AuthUser.model_validate(user).model_dump(mode="json", by_alias=True)


# ==================== DEPENDENCY INJECTION ====================

@lru_cache(maxsize=None)
def session_factory_for(database_url: str):
    """One engine per database URL, tables created on first use"""
    engine = get_engine(database_url)
    init_db(engine)
    return get_session_factory(engine)


def get_db():
    """Database session dependency"""
    session = session_factory_for(get_database_url() or DEFAULT_DATABASE_URL)()
    try:
        yield session
    finally:
        session.close()


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _active_session(db: Session, authorization: Optional[str]) -> AuthSession:
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    session = db.query(AuthSession).filter(AuthSession.token_hash == hash_token(token)).first()
    if (
        session is None
        or session.revoked_at is not None
        or ensure_utc_aware(session.expires_at) <= utc_now()
    ):
        raise HTTPException(status_code=401, detail="Session expired or invalid")
    return session


def get_current_user(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)) -> User:
    """Verify bearer token and return the signed-in user"""
    return _active_session(db, authorization).user


# ==================== ACCOUNT ENDPOINTS ====================

@router.post("/api/auth/signup", status_code=201)
async def sign_up(
    data: SignUpRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """
    Create an account and email a confirmation link

    Public: No auth required
    """
    _check_new_password(data.password, data.confirm_password)

    email = data.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="User already registered")

    token = new_token()
    user = User(
        email=email,
        password_hash=hash_password(data.password),
        confirmation_token_hash=hash_token(token),
    )

    try:
        db.add(user)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="User already registered")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Error creating account: {e}")
        raise HTTPException(status_code=500, detail="Error creating account. Please try again.")

    logger.info(f"✅ New user registered: {email}")
    background_tasks.add_task(send_confirmation_email, email, token)

    return {
        "status": "success",
        "message": "Account created! Please check your email to verify your account.",
        "user": _user_payload(user),
    }


@router.get("/api/auth/confirm")
async def confirm_email(token: str, db: Session = Depends(get_db)):
    """Mark the email address confirmed (link from the confirmation email)"""
    user = db.query(User).filter(User.confirmation_token_hash == hash_token(token)).first()
    if user is None:
        raise HTTPException(status_code=400, detail="Invalid or expired confirmation link")

    user.email_confirmed = True
    user.confirmation_token_hash = None
    db.commit()

    logger.info(f"✅ Email confirmed: {user.email}")
    return {"status": "success", "message": "Email confirmed! You can now sign in."}


@router.post("/api/auth/signin")
async def sign_in(data: SignInRequest, db: Session = Depends(get_db)):
    """
    Exchange email and password for a bearer token

    Returns the token once; send it as ``Authorization: Bearer <token>``.
    """
    user = db.query(User).filter(User.email == data.email.lower()).first()
    if user is None or not verify_password(data.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid login credentials")

    if require_email_confirmation() and not user.email_confirmed:
        raise HTTPException(status_code=403, detail="Email not confirmed")

    token = new_token()
    now = utc_now()
    session = AuthSession(
        user_id=user.id,
        token_hash=hash_token(token),
        expires_at=now + timedelta(hours=SESSION_TTL_HOURS),
    )
    user.last_sign_in_at = now
    db.add(session)
    db.commit()

    logger.info(f"🔑 User signed in: {user.email}")
    return {
        "status": "success",
        "access_token": token,
        "token_type": "bearer",
        "expires_at": session.expires_at.isoformat(),
        "user": _user_payload(user),
    }


@router.post("/api/auth/signout")
async def sign_out(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)):
    session = _active_session(db, authorization)
    session.revoked_at = utc_now()
    db.commit()

    logger.info(f"👋 User signed out: {session.user.email}")
    return {"status": "success", "message": "Signed out"}


@router.post("/api/auth/reset-password")
async def request_password_reset(
    data: ResetPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """
    Email a password reset link

    Always reports success so the endpoint can't be used to probe which
    emails have accounts.
    """
    response = {"status": "success", "message": "Password reset email sent! Check your inbox."}

    user = db.query(User).filter(User.email == data.email.lower()).first()
    if user is None:
        logger.info(f"🔍 Password reset requested for unknown email: {data.email}")
        return response

    token = new_token()
    db.add(PasswordResetToken(
        user_id=user.id,
        token_hash=hash_token(token),
        expires_at=utc_now() + timedelta(minutes=RESET_TOKEN_TTL_MINUTES),
    ))
    db.commit()

    background_tasks.add_task(send_password_reset_email, user.email, token, RESET_TOKEN_TTL_MINUTES)
    return response


@router.post("/api/auth/reset-password/confirm")
async def confirm_password_reset(data: ResetPasswordConfirm, db: Session = Depends(get_db)):
    """Set a new password; the token is single-use and all sessions are revoked"""
    _check_new_password(data.password)

    reset = db.query(PasswordResetToken).filter(
        PasswordResetToken.token_hash == hash_token(data.token)
    ).first()
    now = utc_now()
    if reset is None or reset.used_at is not None or ensure_utc_aware(reset.expires_at) <= now:
        raise HTTPException(status_code=400, detail="Invalid or expired reset link")

    user = reset.user
    user.password_hash = hash_password(data.password)
    reset.used_at = now

    db.query(AuthSession).filter(
        AuthSession.user_id == user.id,
        AuthSession.revoked_at.is_(None)
    ).update({AuthSession.revoked_at: now}, synchronize_session=False)
    db.commit()

    logger.info(f"🔐 Password reset for {user.email}")
    return {"status": "success", "message": "Password updated successfully!"}


@router.get("/api/auth/user")
async def current_user(user: User = Depends(get_current_user)):
    return {"user": _user_payload(user)}
