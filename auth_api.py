# auth_api.py
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

import accounts, auth, models, schemas
from config import settings
from database import get_db
from schemas import envelope

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=201)
def register(body: schemas.RegisterRequest, db: Session = Depends(get_db)):
    return envelope(accounts.register(db, body), "Registration successful.")

@router.post("/login")
def login(body: schemas.LoginRequest, response: Response, db: Session = Depends(get_db)):
    user, data = accounts.login(db, body.email, body.password)
    response.set_cookie(key="access_token", value=f"Bearer {data['access_token']}", httponly=True,
                        samesite="Lax", secure=settings.ENV == "prod",
                        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60)
    return envelope(data, "Login successful.")

@router.post("/refresh")
def refresh(body: schemas.RefreshRequest, db: Session = Depends(get_db)):
    return envelope(accounts.refresh(db, body.refresh_token), "Token refreshed.")

@router.post("/logout")
def logout(response: Response):
    response.delete_cookie("access_token")
    return envelope(None, "Logged out.")

@router.get("/me")
def me(current_user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    return envelope(accounts.profile(db, current_user), "Profile retrieved.")

@router.post("/change-password")
def change_password(body: schemas.ChangePasswordRequest, current_user: models.User = Depends(auth.get_current_user), db: Session = Depends(get_db)):
    accounts.change_password(db, current_user, body.current_password, body.new_password)
    return envelope(None, "Password changed.")
