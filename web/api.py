"""API endpoints for the product scraper.

Endpoints:
1. POST /api/scrape - scrape one URL into a record or a listing result
2. GET /api/health - liveness check
3. POST /api/export - scrape one URL and return the records as a workbook

All scraping errors are reported as ``{error, message, statusCode}`` with
the HTTP status chosen by error kind.
"""

import io
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Tuple, Union

from flask import Blueprint, Response, jsonify, request, send_file

from productscrape.config import SERVICE_NAME, VERSION, ScraperConfig
from productscrape.errors import InvalidInputError, ScrapeError
from productscrape.export import export_records_to_xlsx, records_from_result
from productscrape.models import ListResult
from productscrape.scraper import Scraper

from .config import CORS_HEADERS, CORS_ORIGIN, ENVIRONMENT

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def get_scraper() -> Scraper:
    """Build a scraper from the current environment."""
    return Scraper(ScraperConfig.from_env())


def _error_response(error: ScrapeError) -> Tuple[Response, int]:
    return jsonify(error.to_dict()), error.status_code


def _url_from_request() -> str:
    """Pull the ``url`` field out of the JSON body.

    Raises:
        InvalidInputError: If the body is not JSON or has no usable url
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInputError("Request body must be a JSON object with a 'url' field")
    url = data.get("url")
    if not isinstance(url, str) or not url.strip():
        raise InvalidInputError("URL is required")
    return url.strip()


def _scrape_payload(result: Union[ListResult, Any]) -> Dict[str, Any]:
    if isinstance(result, ListResult):
        return {
            "success": True,
            "data": [item.to_dict() for item in result.items],
            "count": len(result),
            "isListResult": True,
            "successRatio": result.success_ratio,
            "pageClass": result.page_class.value,
        }
    return {
        "success": True,
        "data": result.to_dict(),
        "count": 1,
        "isListResult": False,
    }


@api.after_app_request
def add_cors_headers(response: Response) -> Response:
    response.headers["Access-Control-Allow-Origin"] = CORS_ORIGIN
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = CORS_HEADERS
    return response


@api.route("/scrape", methods=["POST", "OPTIONS"])
def scrape() -> Union[Tuple[Response, int], Response]:
    """Scrape one product, search, category or store URL.

    Request body:
        {"url": "https://www.amazon.com/dp/B0..."}

    Returns:
        JSON with ``data`` (one record or a list), ``count`` and
        ``isListResult``; listings also carry ``successRatio``.
    """
    if request.method == "OPTIONS":
        return Response(status=200)

    try:
        url = _url_from_request()
        logger.info(f"Scrape request: {url}")
        result = get_scraper().handle(url)
    except ScrapeError as e:
        logger.warning(f"Scrape failed ({e.kind.value}): {e.message}")
        return _error_response(e)

    return jsonify(_scrape_payload(result)), 200


@api.route("/export", methods=["POST", "OPTIONS"])
def export() -> Union[Tuple[Response, int], Response]:
    """Scrape one URL and return the records as an .xlsx attachment."""
    if request.method == "OPTIONS":
        return Response(status=200)

    try:
        url = _url_from_request()
        result = get_scraper().handle(url)
    except ScrapeError as e:
        logger.warning(f"Export failed ({e.kind.value}): {e.message}")
        return _error_response(e)

    records = records_from_result(result)
    buffer = io.BytesIO()
    export_records_to_xlsx(records, buffer)
    buffer.seek(0)
    filename = f"products_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"
    logger.info(f"Exporting {len(records)} records to {filename}")
    return send_file(
        buffer,
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=filename,
    )


@api.route("/health", methods=["GET"])
def health() -> Response:
    return jsonify({
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": SERVICE_NAME,
        "version": VERSION,
        "environment": ENVIRONMENT,
    })


@api.app_errorhandler(405)
def method_not_allowed(error) -> Tuple[Response, int]:
    return jsonify({
        "error": "Method not allowed",
        "message": f"{request.method} is not supported for {request.path}",
    }), 405
