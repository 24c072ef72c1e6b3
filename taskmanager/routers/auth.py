import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from taskmanager.database import get_db
from taskmanager.dependencies import get_current_user
from taskmanager.errors import persistence_guard
from taskmanager.models.user import User, new_id
from taskmanager.schemas.user import PasswordChange, ProfileUpdate, UserLogin, UserRegister, serialize_user
from taskmanager.utils.auth import create_token, hash_password, verify_password
from taskmanager.utils.responses import success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: UserRegister, db: Session = Depends(get_db)):
    with persistence_guard(db, "Server error during registration"):
        exists = db.query(User).filter(User.email == payload.email).first()
        if exists:
            raise HTTPException(status_code=400, detail="User with this email already exists")

        user = User(
            id=new_id(),
            name=payload.name,
            email=payload.email,
            password=hash_password(payload.password),
        )
        db.add(user)
        db.flush()
        # sign before committing so a missing secret leaves no half-registered user
        token = create_token(user)
        db.commit()
        db.refresh(user)

    logger.info("registered user %s", user.id)
    return success({"user": serialize_user(user), "token": token}, "User registered successfully")


@router.post("/login")
def login(payload: UserLogin, db: Session = Depends(get_db)):
    with persistence_guard(db, "Server error during login"):
        user = db.query(User).filter(User.email == payload.email, User.is_active.is_(True)).first()
    if not user or not verify_password(payload.password, user.password):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    token = create_token(user)
    return success({"user": serialize_user(user), "token": token}, "Login successful")


@router.get("/profile")
def get_profile(current_user: User = Depends(get_current_user)):
    return success({"user": serialize_user(current_user)})


@router.put("/profile")
def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    with persistence_guard(db, "Server error while updating profile"):
        email = changes.get("email")
        if email and email != current_user.email:
            taken = db.query(User).filter(User.email == email, User.id != current_user.id).first()
            if taken:
                raise HTTPException(status_code=400, detail="Email is already in use")
        for field, value in changes.items():
            setattr(current_user, field, value)
        db.commit()
        db.refresh(current_user)

    return success({"user": serialize_user(current_user)}, "Profile updated successfully")


@router.put("/change-password")
def change_password(
    payload: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not verify_password(payload.current_password, current_user.password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    with persistence_guard(db, "Server error while changing password"):
        current_user.password = hash_password(payload.new_password)
        db.commit()

    logger.info("password changed for user %s", current_user.id)
    return success(message="Password changed successfully")
