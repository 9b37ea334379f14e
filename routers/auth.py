from typing import Annotated, Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from itsdangerous import BadData, URLSafeTimedSerializer
from passlib.context import CryptContext
from pydantic import ValidationError
from sqlmodel import select

from config import settings
from db import SessionDep
from models import Profile
from schemas import LoginData, ProfileCreate, ProfilePrivate

router = APIRouter(tags=["auth"])

SESSION_COOKIE = "session"

serializer = URLSafeTimedSerializer(settings.secret_key)


pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_session_token(user_id: int) -> str:
    """
    Store the user id in the signed token.
    Example data:
        {"user_id": 3}
    """
    return serializer.dumps({"user_id": user_id})


def verify_session_token(token: str, max_age_seconds: Optional[int] = None) -> Optional[dict]:
    """
    Returns {'user_id': ...} if valid,
    or None if token is invalid/expired.
    """
    try:
        return serializer.loads(token, max_age=max_age_seconds or settings.session_max_age)
    except BadData:
        return None


def _set_session_cookie(response: Response, user_id: int) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=create_session_token(user_id),
        httponly=True,
        secure=False,
        samesite="lax",
        max_age=settings.session_max_age,
    )


def get_current_user(
    session: SessionDep,
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE),
) -> Profile:
    """
    Reads the 'session' cookie, verifies the token and looks up the profile.
    Raises 401 if not logged in / invalid.
    """
    if session_token is None:
        raise HTTPException(status_code=401, detail="Not logged in")

    data = verify_session_token(session_token)
    if not data:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    user = session.get(Profile, data["user_id"])
    if user is None:
        raise HTTPException(status_code=401, detail="User not found for this session")

    return user


CurrentUserDep = Annotated[Profile, Depends(get_current_user)]


def get_optional_user(
    session: SessionDep,
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE),
) -> Optional[Profile]:
    """
    Like get_current_user, but returns None instead of raising 401.
    """
    if session_token is None:
        return None

    data = verify_session_token(session_token)
    if not data:
        return None

    return session.get(Profile, data["user_id"])


OptionalUserDep = Annotated[Optional[Profile], Depends(get_optional_user)]


async def _read_payload(request: Request) -> dict:
    """Accept either JSON (API clients) or form-data (HTML forms)."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        data = await request.json()
        if not isinstance(data, dict):
            raise HTTPException(status_code=400, detail="Expected a JSON object")
        return data
    form = await request.form()
    return {k: v for k, v in form.items() if isinstance(v, str)}


@router.post("/register", status_code=201)
async def register(request: Request, session: SessionDep):
    """
    Register a new profile with a hashed password and log it in.
    """
    data = await _read_payload(request)
    try:
        user_in = ProfileCreate(**data)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors(include_url=False, include_context=False))

    existing = session.exec(
        select(Profile).where(Profile.email == user_in.email)
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    role = "admin" if user_in.email.lower() in {e.lower() for e in settings.admin_emails} else user_in.role

    user = Profile(
        email=user_in.email,
        display_name=user_in.display_name,
        password_hash=hash_password(user_in.password),
        role=role,
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    if user.id is None:
        raise HTTPException(status_code=500, detail="User was not created successfully")

    resp = JSONResponse(
        {"message": "Registration successful", "id": user.id, "role": user.role},
        status_code=201,
    )
    _set_session_cookie(resp, user.id)
    return resp


@router.post("/login")
async def login(request: Request, session: SessionDep):
    """
    Log in with email + password and set a signed cookie.
    """
    data = await _read_payload(request)
    try:
        payload = LoginData(**data)
    except ValidationError:
        raise HTTPException(status_code=400, detail="All fields are required")

    user = session.exec(
        select(Profile).where(Profile.email == payload.email)
    ).first()

    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Invalid email or password")

    resp = JSONResponse({"message": "Login successful", "id": user.id, "role": user.role})
    _set_session_cookie(resp, user.id)
    return resp


@router.post("/logout")
def logout():
    """
    Clear the session cookie.
    """
    response = JSONResponse({"message": "Logged out"})
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("/me", response_model=ProfilePrivate)
def read_me(current: CurrentUserDep):
    """
    Get the currently logged-in profile.
    """
    return current
