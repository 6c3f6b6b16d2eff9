# services/api_gateway/main.py
"""FastAPI gateway for the carbon-footprint tracker.

* **/api/transactions**  CRUD over the PocketBase collection.
* **/api/ai/…**          predictions, Gemini emissions and recommendations.
* **/api/health**        simple liveness check.

❗ DTO models live in `services.api_gateway.schemas`; the analysis itself is
in `footprint.analysis` – this module is request/response glue only.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.concurrency import asynccontextmanager
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from footprint.analysis import CarbonAnalyzer, get_analyzer
from footprint.config import get_settings
from footprint.exceptions import (
    ConfigurationError,
    InputValidationError,
    TransactionNotFound,
    UpstreamError,
)
from footprint.gemini_client import get_gemini_client
from footprint.metrics import start_metrics_server
from footprint.models import current_month_key
from footprint.pocketbase import close_async_pb_client
from footprint.predictor import get_spending_predictor
from footprint.sentry import init_sentry, sentry_capture
from footprint.transactions import TransactionStore, get_transaction_store
from services.api_gateway.schemas import (
    CompareMonthsPayload,
    TransactionCreate,
    TransactionList,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────
# ✨  Logging
# ──────────────────────────────────────────────────────────────────────────
_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _configure_logging(settings) -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=_LOG_FORMAT)
    if settings.log_dir:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_dir / "api_gateway.log", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)


# ---------------------------------------------------------------------------#
# Lifespan                                                                   #
# ---------------------------------------------------------------------------#
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    _configure_logging(settings)
    init_sentry(release="footprint-api@0.1.0")
    start_metrics_server(settings.metrics_port)

    # Missing credentials must fail the start, not the first request
    await get_transaction_store()
    get_gemini_client()
    get_spending_predictor()

    logger.info("API gateway started")
    yield
    logger.info("API gateway shutting down…")
    await close_async_pb_client()


app = FastAPI(title="Carbon Footprint API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=False,
)
router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------#
# Error mapping                                                              #
# ---------------------------------------------------------------------------#
@app.exception_handler(InputValidationError)
async def _input_error(_: Request, exc: InputValidationError) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "error": exc.message}
    if exc.example is not None:
        content["example"] = exc.example
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


@app.exception_handler(RequestValidationError)
async def _body_error(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": "Invalid payload", "details": jsonable_errors(exc)},
    )


@app.exception_handler(TransactionNotFound)
async def _not_found(_: Request, exc: TransactionNotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Not found"})


@app.exception_handler(UpstreamError)
async def _upstream_error(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.error("[%s %s] FAILED: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"success": False, "error": f"{exc.service} request failed", "message": str(exc)},
    )


@app.exception_handler(ConfigurationError)
async def _config_error(_: Request, exc: ConfigurationError) -> JSONResponse:
    sentry_capture(exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"success": False, "error": "Service is not configured", "message": str(exc)},
    )


@app.exception_handler(Exception)
async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("[%s %s] unhandled error", request.method, request.url.path)
    sentry_capture(exc, extras={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Internal error", "message": str(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]


def _ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


# ---------------------------------------------------------------------------#
# Service routes                                                             #
# ---------------------------------------------------------------------------#
@app.get("/favicon.ico", include_in_schema=False)
async def favicon() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/health")
async def health() -> Dict[str, Any]:
    return {"ok": True, "ts": int(time.time() * 1000)}


@router.get("")
async def root() -> Dict[str, str]:
    return {"status": "ok", "service": "carbonTransactions API"}


# ---------------------------------------------------------------------------#
# Transactions CRUD                                                          #
# ---------------------------------------------------------------------------#
def _txn_json(txn) -> Dict[str, Any]:
    return txn.model_dump(by_alias=True, mode="json")


@router.post("/transactions", status_code=status.HTTP_201_CREATED)
async def create_transaction(
    payload: TransactionCreate, store: TransactionStore = Depends(get_transaction_store)
) -> Dict[str, Any]:
    txn = await store.create_transaction(payload.to_store())
    logger.info("Created transaction %s", txn.id)
    return _txn_json(txn)


@router.get("/transactions", response_model=TransactionList)
async def list_transactions(store: TransactionStore = Depends(get_transaction_store)) -> Dict[str, Any]:
    items = await store.list_transactions()
    logger.info("[/transactions GET] count: %d", len(items))
    return {"transactions": [_txn_json(t) for t in items]}


@router.get("/transactions/{txn_id}")
async def get_transaction(txn_id: str, store: TransactionStore = Depends(get_transaction_store)) -> Dict[str, Any]:
    txn = await store.get_transaction(txn_id)
    if txn is None:
        raise TransactionNotFound(txn_id)
    return _txn_json(txn)


@router.put("/transactions/{txn_id}")
async def update_transaction(
    txn_id: str,
    payload: TransactionUpdate,
    store: TransactionStore = Depends(get_transaction_store),
) -> Dict[str, Any]:
    txn = await store.update_transaction(txn_id, payload.to_store())
    return _txn_json(txn)


@router.delete("/transactions/{txn_id}")
async def delete_transaction(txn_id: str, store: TransactionStore = Depends(get_transaction_store)) -> Dict[str, bool]:
    await store.delete_transaction(txn_id)
    return {"ok": True}


# ---------------------------------------------------------------------------#
# AI endpoints                                                               #
# ---------------------------------------------------------------------------#
@router.get("/ai/emissions")
async def ai_emissions(
    month: Optional[str] = Query(None, description="YYYY-MM; all recent transactions when omitted"),
    analyzer: CarbonAnalyzer = Depends(get_analyzer),
) -> Dict[str, Any]:
    result = await analyzer.estimate_emissions(month)
    data = result.model_dump(by_alias=True, mode="json")
    data["month"] = month
    return data


@router.get("/ai/predict-spending")
async def ai_predict_spending(
    month: Optional[str] = Query(None, description="YYYY-MM"),
    analyzer: CarbonAnalyzer = Depends(get_analyzer),
) -> Dict[str, Any]:
    prediction = analyzer.predict_spending(month)
    return _ok(prediction.model_dump(by_alias=True, mode="json"))


@router.get("/ai/comprehensive-analysis")
async def ai_comprehensive_analysis(
    month: Optional[str] = Query(None, description="YYYY-MM; defaults to the current month"),
    analyzer: CarbonAnalyzer = Depends(get_analyzer),
) -> Dict[str, Any]:
    analysis = await analyzer.comprehensive_analysis(month or current_month_key())
    return _ok(analysis.model_dump(by_alias=True, mode="json"))


@router.post("/ai/compare-months")
async def ai_compare_months(
    payload: CompareMonthsPayload,
    analyzer: CarbonAnalyzer = Depends(get_analyzer),
) -> Dict[str, Any]:
    result = await analyzer.compare_months(payload.months)
    return _ok(result.model_dump(by_alias=True, mode="json"))


@router.get("/ai/handprint-suggestions")
async def ai_handprint_suggestions(
    month: Optional[str] = Query(None, description="YYYY-MM; defaults to the current month"),
    analyzer: CarbonAnalyzer = Depends(get_analyzer),
) -> Dict[str, Any]:
    return _ok(await analyzer.handprint_suggestions(month or current_month_key()))


@router.get("/ai/greener-alternatives")
async def ai_greener_alternatives(
    month: Optional[str] = Query(None, description="YYYY-MM; defaults to the current month"),
    analyzer: CarbonAnalyzer = Depends(get_analyzer),
) -> Dict[str, Any]:
    return _ok(await analyzer.greener_alternatives(month or current_month_key()))


app.include_router(router)


# ---------------------------------------------------------------------------#
# Entrypoint                                                                 #
# ---------------------------------------------------------------------------#
def main() -> None:  # pragma: no cover
    settings = get_settings()
    uvicorn.run(
        "services.api_gateway.main:app",
        host=settings.api_host,
        port=settings.api_port,
        lifespan="on",
    )


if __name__ == "__main__":  # pragma: no cover
    main()
