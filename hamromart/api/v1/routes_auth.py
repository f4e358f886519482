from fastapi import APIRouter, Depends, status
from redis import Redis
from sqlalchemy.orm import Session

from hamromart.api.deps import get_db, get_redis, get_mailer
from hamromart.api.v1.schemas import (
    RegisterPayload,
    RegistrationPending,
    VerifyOtpPayload,
    ResendOtpPayload,
    LoginPayload,
    TokenPair,
    RefreshRequest,
    UserRead,
    ProfileUpdate,
)
from hamromart.core.auth import Identity, get_current_identity
from hamromart.services import accounts, registration

router = APIRouter()  # main.py mounts at /api/v1/auth


@router.post("/register", response_model=RegistrationPending, status_code=status.HTTP_202_ACCEPTED)
def register(payload: RegisterPayload, db: Session = Depends(get_db), r: Redis = Depends(get_redis),
             mailer=Depends(get_mailer)):
    email = registration.register(db, r, mailer, payload)
    return {"email": email, "message": "An OTP has been sent to your email. Please verify to complete registration."}


@router.post("/otp/verify", response_model=TokenPair, status_code=status.HTTP_201_CREATED)
def verify_otp(payload: VerifyOtpPayload, db: Session = Depends(get_db), r: Redis = Depends(get_redis)):
    _, tokens = registration.verify_otp(db, r, str(payload.email), payload.otp)
    return tokens


@router.post("/otp/resend", response_model=RegistrationPending)
def resend_otp(payload: ResendOtpPayload, db: Session = Depends(get_db), r: Redis = Depends(get_redis),
               mailer=Depends(get_mailer)):
    email = registration.resend_otp(db, r, mailer, str(payload.email))
    return {"email": email, "message": "A new OTP has been sent to your email."}


@router.post("/login", response_model=TokenPair)
def login(payload: LoginPayload, db: Session = Depends(get_db)):
    return accounts.login(db, str(payload.email), payload.password)


@router.post("/refresh", response_model=TokenPair)
def refresh_token(payload: RefreshRequest, db: Session = Depends(get_db)):
    return accounts.refresh(db, payload.refresh_token)


@router.post("/logout")
def logout(payload: RefreshRequest, db: Session = Depends(get_db)) -> dict:
    accounts.logout(db, payload.refresh_token)
    return {"status": "ok"}


@router.get("/me", response_model=UserRead)
def me(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return accounts.get_profile(db, identity)


@router.patch("/me", response_model=UserRead)
def update_me(payload: ProfileUpdate, identity: Identity = Depends(get_current_identity),
              db: Session = Depends(get_db)):
    return accounts.update_profile(db, identity, payload)
