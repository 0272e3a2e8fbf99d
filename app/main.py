import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session, SQLModel

from app.core.config import settings
from app.core.errors import EcoRideError
from app.core.logging import setup_logging
from app.db.session import engine
from app.services.ledger import ensure_pool_accounts

# IMPORTANT : On doit importer les modèles ici pour que SQLModel les "voie"
# et puisse créer les tables au démarrage.
from app.models.user import User  # noqa: F401
from app.models.credit import CreditAccount, LedgerEntry, LedgerTransaction  # noqa: F401
from app.models.vehicle import Vehicle  # noqa: F401
from app.models.ride import Ride, RidePassenger  # noqa: F401
from app.models.validation import Validation  # noqa: F401
from app.models.review import AdminAction, Review  # noqa: F401

from app.api.v1.endpoints import admin, auth, credits, disputes, reviews, rides, validations

logger = logging.getLogger("app.main")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Fonction exécutée au démarrage (avant le yield)
    et à l'arrêt (après le yield) de l'application.
    """
    setup_logging()
    logger.info("Démarrage d'EcoRide API...")
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        ensure_pool_accounts(session)
    logger.info("Tables et comptes de la plateforme synchronisés.")
    yield
    logger.info("Arrêt d'EcoRide API.")

app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configuration CORS
origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(EcoRideError)
async def ecoride_error_handler(request: Request, exc: EcoRideError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.code} : {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.code} : {exc.message}")
    content = {"detail": exc.message, "code": exc.code}
    if hasattr(exc, "required"):
        content["required"] = exc.required
        content["available"] = exc.available
    return JSONResponse(status_code=exc.status_code, content=content)

# Inclusion des routes
app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])
app.include_router(rides.router, prefix="/api/v1", tags=["Rides"])
app.include_router(validations.router, prefix="/api/v1/validations", tags=["Validations"])
app.include_router(disputes.router, prefix="/api/v1/disputes", tags=["Disputes"])
app.include_router(reviews.router, prefix="/api/v1/reviews", tags=["Reviews"])
app.include_router(credits.router, prefix="/api/v1/credits", tags=["Credits"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["Administration"])

@app.get("/")
def read_root():
    return {"status": "online", "message": "EcoRide API is running"}

@app.get("/health")
def health_check():
    return {"status": "ok"}
