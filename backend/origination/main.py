"""
Loan Origination API - FastAPI Application

Main entry point for the loan origination backend.

Flow:
- Client intake → screening cloned from the SCREENING form template → history cycle 1
- Screening answers and status → approval tasks, client eligibility, notifications
- Completed cycle (screening, loan, ACAT) → next screening cloned from the last one
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from . import config
from .database import init_db
from .errors import OriginationError, origination_error_handler
from .routers import (
    answers_router, cbs_router, clients_router, forms_router, histories_router,
    questions_router, screenings_router, tasks_router,
)

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    logger.info("Loan Origination API started")
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Loan Origination API",
    description="""
    Loan Origination API - Client Screening and Loan Cycle Tracking

    ## Workflow
    1. **Intake**: Create a client with its first screening (loan cycle 1)
    2. **Screening**: Fill in answers, submit, approve or decline
    3. **History**: Loan and ACAT applications are recorded per cycle
    4. **New cycle**: Once a cycle is complete, the next screening is cloned from the last one

    ## Key Principles
    - Screenings are deep clones, template edits never reach them and vice versa
    - Only one screening, loan or ACAT may be live per client
    - Decisions on a screening require the AUTHORIZE permission
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(OriginationError, origination_error_handler)

# Include routers
app.include_router(histories_router)
app.include_router(clients_router)
app.include_router(answers_router)
app.include_router(screenings_router)
app.include_router(questions_router)
app.include_router(forms_router)
app.include_router(tasks_router)
app.include_router(cbs_router)

# Uploaded client documents
app.mount("/media", StaticFiles(directory=str(config.ASSETS_DIR), check_dir=False), name="media")


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Loan Origination API",
        "version": "1.0.0",
        "description": "Client Screening and Loan Cycle Tracking",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m origination.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8040)
