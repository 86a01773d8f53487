from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware
import os
import logging
import sys

# Configure logging for the entire application at the very beginning
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)
logger.debug("Application startup: Initializing FastAPI application.")

# Load environment variables from the .env file in the 'backend' directory
dotenv_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", ".env")
load_dotenv(dotenv_path=dotenv_path)

# Import settings and database session management
from feedback_insights.core.config import settings
from feedback_insights.db.session import engine, Base
from feedback_insights.models import chunk, insight  # noqa: F401  (registers tables on Base)
logger.debug("Main: Imported settings and database session management.")

# Import the API routers for each resource
from feedback_insights.api.v1 import analysis, grouped_insights, evaluations, snippets
from feedback_insights.services.evaluation_service import create_evaluation_scheduler, get_evaluation_worker
logger.debug("Main: Imported API routers.")

# --- Database Table Creation ---
def create_tables():
    """
    Creates all database tables based on the SQLAlchemy Base metadata.
    """
    Base.metadata.create_all(bind=engine)

# Create the main FastAPI application instance
app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)
logger.debug(f"Main: FastAPI application instance created with title '{settings.PROJECT_NAME}'.")

# --- Middleware ---
# Permissive CORS so the dashboard frontend can call the API from another origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Background evaluation of stored insights, started with the app.
evaluation_scheduler = create_evaluation_scheduler(get_evaluation_worker())

# --- Event Handlers ---
@app.on_event("startup")
def on_startup():
    """
    Creates the database tables and starts the evaluation worker.
    """
    logger.debug("Main: Startup event triggered. Creating database tables.")
    create_tables()
    if settings.EVAL_WORKER_ENABLED:
        evaluation_scheduler.start()
    else:
        logger.info("Main: Evaluation worker disabled (EVAL_WORKER_ENABLED=false).")

@app.on_event("shutdown")
def on_shutdown():
    if evaluation_scheduler.running:
        evaluation_scheduler.stop(timeout=5)

# --- API Routers ---
app.include_router(analysis.router, prefix=f"{settings.API_V1_STR}/topic-analysis", tags=["Topic Analysis"])
app.include_router(grouped_insights.router, prefix=f"{settings.API_V1_STR}/grouped-insights", tags=["Grouped Insights"])
app.include_router(evaluations.router, prefix=f"{settings.API_V1_STR}/evaluations", tags=["Evaluations"])
app.include_router(snippets.router, prefix=f"{settings.API_V1_STR}/snippets", tags=["Snippets"])
logger.debug(f"Main: Included routers under {settings.API_V1_STR}")

# --- Root Endpoint ---
@app.get("/", tags=["Root"])
def read_root():
    """
    A simple root endpoint for health checks and to welcome users.
    """
    return {"message": f"Welcome to the {settings.PROJECT_NAME}"}
