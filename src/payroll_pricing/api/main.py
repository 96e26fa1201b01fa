import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config.log_setup import configure_logging
from ..errors import NotFoundError, PayrollPricingError, PricingError, TaxConfigurationError
from .pricing_api import router as pricing_router
from .state import AppState, get_state
from .tax_api import router as tax_router

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Payroll Pricing API",
    description="Payroll subscription pricing and payroll tax calculation",
    version="1.0.0"
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pricing_router)
app.include_router(tax_router)

STATUS_CODES = {
    PricingError: 400,
    NotFoundError: 404,
    TaxConfigurationError: 422,
}


@app.exception_handler(PayrollPricingError)
async def payroll_error_handler(request: Request, exc: PayrollPricingError):
    status = STATUS_CODES.get(type(exc), 400)
    logger.info("%s %s -> %d: %s", request.method, request.url.path, status, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.get("/")
async def root():
    return {"status": "online", "message": "Payroll Pricing API Active"}


@app.get("/system/status")
async def get_status(state: AppState = Depends(get_state)):
    settings = state.settings
    has_report = settings.build_report.exists()
    return {
        "engine_active": True,
        "data_dir": str(settings.data_dir),
        "pricing": state.pricing_service.get_stats(),
        "jurisdictions": len(state.tax_service.jurisdictions),
        "tax_tables": len(state.tax_service.tax_tables),
        "tables_last_build": settings.build_report.stat().st_mtime if has_report else None
    }
