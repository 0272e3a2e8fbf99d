from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm

from app.api.deps import CurrentUser, DbSession
from app.core.security import create_access_token
from app.schemas.user import LoginRequest, RegisterRequest, RolesUpdate, TokenOut, UserOut
from app.services import user_service

router = APIRouter()

@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, db: DbSession):
    """Inscription : le compte reçoit ses crédits de bienvenue."""
    return user_service.register_user(db, body.email, body.password, body.pseudo)

@router.post("/login", response_model=TokenOut)
def login(body: LoginRequest, db: DbSession):
    user = user_service.authenticate(db, body.email, body.password)
    return TokenOut(access_token=create_access_token(subject=user.id))

@router.post("/token", response_model=TokenOut)
def login_form(db: DbSession, form: OAuth2PasswordRequestForm = Depends()):
    # Même chose que /login, au format attendu par la doc Swagger
    user = user_service.authenticate(db, form.username, form.password)
    return TokenOut(access_token=create_access_token(subject=user.id))

@router.get("/me", response_model=UserOut)
def read_me(current_user: CurrentUser):
    return current_user

@router.put("/me/roles", response_model=UserOut)
def update_my_roles(body: RolesUpdate, db: DbSession, current_user: CurrentUser):
    return user_service.set_ride_roles(db, current_user, body.roles)
