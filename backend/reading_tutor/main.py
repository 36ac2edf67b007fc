import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .errors import FormValidationError, TransitionError
from .materials import MaterialRepository
from .settings import settings
from .routers import health, materials
from .routers import flows

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("pypdf").setLevel(logging.ERROR)
logger = logging.getLogger(__name__)

app = FastAPI(title="AI Reading Evaluation API")
app.include_router(health.router)
app.include_router(materials.router)
app.include_router(flows.router)

# One material list for the whole process, seeded with the built-in passage
app.state.materials = MaterialRepository.with_builtin()


@app.exception_handler(FormValidationError)
async def form_validation_handler(request: Request, exc: FormValidationError):
	return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(TransitionError)
async def transition_handler(request: Request, exc: TransitionError):
	return JSONResponse(status_code=409, content={"detail": exc.message})


@app.get("/info")
def root():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key), "model": settings.gemini_model}


def ensure_configured() -> None:
	if not settings.gemini_api_key:
		raise RuntimeError("GEMINI_API_KEY is not configured; refusing to start")


@app.on_event("startup")
async def startup_event():
	ensure_configured()
	logger.info("Reading tutor ready (model=%s, provider=%s)", settings.gemini_model, settings.gemini_provider)
