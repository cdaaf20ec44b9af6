# File: cityfix/routers/auth.py

import uuid
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from cityfix.db.session import get_db
from cityfix.models.user import Profile, UserRole
from cityfix.schemas.auth import RegisterIn, LoginIn, AccessToken, UserOut
from cityfix.core.security import hash_password, verify_password, make_token, get_current_user

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/register", response_model=AccessToken, status_code=201)
def register(body: RegisterIn, db: Session = Depends(get_db)):
    # Ensure unique email
    if db.query(Profile).filter(Profile.email == body.email).first():
        raise HTTPException(status_code=400, detail="Email already registered")

    user = Profile(
        id=str(uuid.uuid4()),
        email=body.email,
        name=body.name.strip(),
        hashed_password=hash_password(body.password),
        role=UserRole.citizen,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    # Sign-in immediately
    return make_token(user)

@router.post("/login", response_model=AccessToken)
def login(body: LoginIn, db: Session = Depends(get_db)):
    user = db.query(Profile).filter(Profile.email == body.email).first()
    if not user or not user.hashed_password:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not verify_password(body.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Your account has been deactivated. Please contact support.")
    return make_token(user)

@router.get("/me", response_model=UserOut)
def me(current: Profile = Depends(get_current_user)):
    return {
        "id": current.id,
        "email": current.email,
        "name": current.name,
        "role": current.role.value,
    }
