from __future__ import annotations

import logging
from typing import Literal

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from expense_parser.config import Settings
from expense_parser.extractor import DocumentFieldExtractor, ExtractorConfig
from expense_parser.model_extraction import ExtractionError, TextModelClient, client_from_settings
from expense_parser.service import parse_document_text

logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    "insufficient_text": 422,
    "missing_api_key": 503,
}


class ParseTextRequest(BaseModel):
    text: str
    method: Literal["rules", "model"] = "rules"
    document_id: str | None = None


def create_app(
    settings: Settings | None = None,
    *,
    model_client: TextModelClient | None = None,
) -> FastAPI:
    active_settings = settings or Settings.from_env()
    extractor = DocumentFieldExtractor(ExtractorConfig.from_settings(active_settings))
    app = FastAPI(title="Expense Document Parser API", version="0.1.0")

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/parse-text")
    def parse_text(request: ParseTextRequest) -> JSONResponse:
        try:
            client = None
            if request.method == "model":
                client = model_client or client_from_settings(active_settings)
            outcome = parse_document_text(
                request.text,
                extractor=extractor,
                settings=active_settings,
                document_id=request.document_id,
                method=request.method,
                model_client=client,
            )
        except ExtractionError as exc:
            logger.warning("Parse failed code=%s: %s", exc.code, exc)
            return JSONResponse(
                status_code=_ERROR_STATUS.get(exc.code, 502),
                content={"success": False, "error": str(exc), "code": exc.code},
            )
        return JSONResponse(content=outcome.to_response())

    return app
