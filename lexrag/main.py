"""Quart application exposing the legal document assistant."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError
from quart import Quart, jsonify, request
import structlog

from lexrag import config
from lexrag.errors import AssistantError
from lexrag.models import (
    AnalyzeTextRequest,
    ChatRequest,
    ExplainSimpleRequest,
    ExtractClausesRequest,
)
from lexrag.rag.embedder import get_embedding_provider, shutdown_embedding_provider
from lexrag.service import AssistantService, build_service

# Configure structured logging
logging.basicConfig(format="%(message)s", level=config.LOG_LEVEL)
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()


async def _read(model_cls, required_field: str, message: str):
    """Validate the JSON body; returns (model, None) or (None, error response)."""
    data = await request.get_json(silent=True) or {}
    try:
        body = model_cls.model_validate(data)
    except ValidationError as e:
        logger.warning("invalid_request_body", errors=e.error_count(), path=request.path)
        return None, (jsonify({"message": message}), 400)

    if not getattr(body, required_field).strip():
        return None, (jsonify({"message": message}), 400)
    return body, None


def _failure(message: str, error: Exception):
    return jsonify({"message": message, "error": str(error)}), 500


def create_app(service: Optional[AssistantService] = None) -> Quart:
    """Build the Quart app.

    Args:
        service: Pre-built service (tests); built at startup when omitted
    """
    app = Quart(__name__)
    app.config["ASSISTANT_SERVICE"] = service

    @app.before_serving
    async def startup():
        if app.config["ASSISTANT_SERVICE"] is None:
            app.config["ASSISTANT_SERVICE"] = build_service(get_embedding_provider())
            logger.info("assistant_service_started")

    @app.after_serving
    async def shutdown():
        # close() waits for in-flight inference; keep it off the event loop
        await asyncio.to_thread(shutdown_embedding_provider)

    def _service() -> AssistantService:
        return app.config["ASSISTANT_SERVICE"]

    @app.route("/api/analyze-text", methods=["POST"])
    async def analyze_text():
        """Analyze text for risks, review points, ambiguities or general insights.

        Expects JSON body:
        {
            "text": "legal text",
            "analysisType": "risk" | "review" | "ambiguity" | "generic"
        }
        """
        body, error = await _read(AnalyzeTextRequest, "text", "Text is required for analysis")
        if error:
            return error

        logger.info(
            "analyze_text_request",
            text_length=len(body.text),
            analysis_type=body.analysis_type,
        )

        try:
            result = await _service().analyze_text(body.text, body.analysis_type)
            return jsonify(result.model_dump(by_alias=True))
        except AssistantError as e:
            logger.error("analyze_text_error", error=str(e), error_type=type(e).__name__)
            return _failure("Error analyzing text", e)

    @app.route("/api/extract-clauses", methods=["POST"])
    async def extract_clauses():
        """Extract typed clauses from text. Returns a JSON list."""
        body, error = await _read(
            ExtractClausesRequest, "text", "Text is required for clause extraction"
        )
        if error:
            return error

        logger.info("extract_clauses_request", text_length=len(body.text))

        try:
            clauses = await _service().extract_clauses(body.text)
            return jsonify([c.model_dump(by_alias=True) for c in clauses])
        except AssistantError as e:
            logger.error("extract_clauses_error", error=str(e))
            return _failure("Error extracting clauses", e)

    @app.route("/api/explain-simple", methods=["POST"])
    async def explain_simple():
        """Explain text in plain language."""
        body, error = await _read(ExplainSimpleRequest, "text", "Text is required for explanation")
        if error:
            return error

        logger.info("explain_simple_request", text_length=len(body.text))

        try:
            result = await _service().explain_simple(body.text)
            return jsonify(result.model_dump(by_alias=True))
        except AssistantError as e:
            logger.error("explain_simple_error", error=str(e))
            return _failure("Error explaining text", e)

    @app.route("/api/chat", methods=["POST"])
    async def chat():
        """Answer a question about a document.

        Expects JSON body:
        {
            "question": "user question",
            "documentText": "extracted document text"
        }

        Returns JSON:
        {
            "text": "answer",
            "timestamp": "ISO-8601 timestamp"
        }
        """
        body, error = await _read(ChatRequest, "question", "Question is required for chat")
        if error:
            return error

        logger.info(
            "chat_request_received",
            question_preview=body.question[:100],
            document_length=len(body.document_text),
        )

        try:
            answer = await _service().chat(body.question, body.document_text)
            return jsonify(answer.model_dump(mode="json", by_alias=True))
        except AssistantError as e:
            logger.error("chat_endpoint_error", error=str(e), error_type=type(e).__name__)
            return _failure("Error processing chat", e)

    @app.route("/api/ai/explain", methods=["POST"])
    async def demo_explain():
        """Explanation wrapped with a success flag and timestamp."""
        body, error = await _read(ExplainSimpleRequest, "text", "Text is required for explanation")
        if error:
            return error

        try:
            result = await _service().explain_simple(body.text)
            return jsonify({
                "success": True,
                "original": result.original,
                "simplified": result.simplified,
                "keyPoints": result.key_points,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            })
        except AssistantError as e:
            logger.error("demo_explain_error", error=str(e))
            return jsonify({
                "success": False,
                "message": "Error explaining text",
                "error": str(e),
            }), 500

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe.

        Checks:
        - Embedding provider is loaded
        - Completion backend is reachable
        """
        checks = {
            "status": "healthy",
            "embeddings": False,
            "completion_backend": False,
        }

        service = _service()
        if service is None:
            checks["status"] = "unhealthy"
            checks["error"] = "Service not initialized"
            return jsonify(checks), 503

        provider = service.retrieval.ranker.provider
        checks["embeddings"] = not provider.closed

        try:
            await service.completion_client.list_models()
            checks["completion_backend"] = True
        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            checks["error"] = str(e)

        if not (checks["embeddings"] and checks["completion_backend"]):
            checks["status"] = "unhealthy"

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
