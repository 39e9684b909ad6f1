from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from collate.core.config import settings
from collate.core.http_hardening import configure_logging, install_http_hardening
from collate.api.people import router as people_router
from collate.data.people_seed import seed_people
from collate.db.session import Base, SessionLocal, engine
from collate.models.person import Person

configure_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if settings.DEMO_SEED_ENABLED:
        Base.metadata.create_all(bind=engine, tables=[Person.__table__])
        with SessionLocal() as db:
            seed_people(db, settings.DEMO_SEED_COUNT)
    yield


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_http_hardening(app)

app.include_router(people_router, prefix="/api/people")

@app.get("/", include_in_schema=False)
def landing():
    return JSONResponse({"service": settings.APP_NAME, "status": "ok"})

@app.get("/health")
def health():
    return {"status": "ok"}
