"""
CSV product import API routes.

Flow: upload a CSV (preview) → review and edit the session → execute.
Errors use the standard AppError response format.
"""

from fastapi import APIRouter, Form, UploadFile, File
from fastapi.responses import JSONResponse, Response
from typing import Optional
import structlog

from models.imports import (
    ActionUpdateRequest,
    CategoryChoiceRequest,
    ImportProgressResponse,
    ImportResultResponse,
    ImportSessionResponse,
    ProductDraftResponse,
)
from parsers import serialize_rows, tokenize_csv
from services.catalog_store import get_catalog_store
from services.import_service import build_plan, get_import_service, refresh_plan
from services import import_session_service as sessions
from config import settings
from exceptions import AppError, CSVFileTypeError

logger = structlog.get_logger(__name__)

router = APIRouter()

CSV_CONTENT_TYPES = {"text/csv", "application/csv"}


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def is_csv_upload(filename: Optional[str], content_type: Optional[str]) -> bool:
    if content_type and content_type.split(";")[0].strip().lower() in CSV_CONTENT_TYPES:
        return True
    return bool(filename) and filename.lower().endswith(".csv")


# ===================
# ROUTES
# ===================

@router.post("/preview", response_model=ImportSessionResponse, status_code=201)
async def preview_import(
    file: UploadFile = File(...),
    business_id: str = Form(..., description="Tenant to import into"),
    user_id: Optional[str] = Form(None, description="Uploading user"),
):
    """
    Upload a product CSV and open an import session.

    Parses the file, groups rows into products, matches categories and
    stored products, and proposes missing categories.

    Raises:
        422: Not a CSV file
    """
    logger.info(
        "import_upload_started",
        filename=file.filename,
        content_type=file.content_type,
        business_id=business_id
    )

    try:
        if not is_csv_upload(file.filename, file.content_type):
            raise CSVFileTypeError(file.filename, file.content_type)

        content = await file.read()
        parsed = tokenize_csv(content.decode("utf-8-sig", errors="replace"))

        store = await get_catalog_store()
        plan = await build_plan(store, parsed.rows, business_id, user_id)

        session = sessions.create_session(
            plan,
            business_id=business_id,
            user_id=user_id,
            preview=parsed.rows[:settings.import_preview_rows],
        )
        return session.to_response()

    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}", response_model=ImportSessionResponse)
async def get_import_session(session_id: str):
    """
    Get the current state of an import session.

    Raises:
        404: Session expired or not found
    """
    try:
        return sessions.get_session(session_id).to_response()
    except Exception as e:
        return handle_error(e)


@router.patch("/{session_id}/products/{index}", response_model=ProductDraftResponse)
async def update_product_action(session_id: str, index: int, data: ActionUpdateRequest):
    """Set create / update / skip for one parsed product."""
    try:
        session = sessions.get_session(session_id)
        session.ensure_idle()
        product = session.plan.set_action(index, data.action)
        return ProductDraftResponse.from_draft(index, product)
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/duplicates/action", response_model=ImportSessionResponse)
async def update_duplicates_action(session_id: str, data: ActionUpdateRequest):
    """Apply one action to every product that matches a stored product."""
    try:
        session = sessions.get_session(session_id)
        session.ensure_idle()
        changed = session.plan.apply_action_to_duplicates(data.action)
        logger.info("duplicates_action_applied", session_id=session_id, action=data.action.value, changed=changed)
        return session.to_response()
    except Exception as e:
        return handle_error(e)


@router.patch("/{session_id}/categories/{key:path}", response_model=ImportSessionResponse)
async def update_category_choice(session_id: str, key: str, data: CategoryChoiceRequest):
    """Select or deselect one proposed category for creation."""
    try:
        session = sessions.get_session(session_id)
        session.ensure_idle()
        session.plan.set_category_choice(key, data.create)
        return session.to_response()
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/categories/selection", response_model=ImportSessionResponse)
async def update_all_category_choices(session_id: str, data: CategoryChoiceRequest):
    """Select all or none of the proposed categories."""
    try:
        session = sessions.get_session(session_id)
        session.ensure_idle()
        session.plan.set_all_category_choices(data.create)
        return session.to_response()
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/refresh", response_model=ImportSessionResponse)
async def refresh_import_session(session_id: str):
    """Reload categories and stored products, then re-match the session."""
    try:
        session = sessions.get_session(session_id)
        session.ensure_idle()
        store = await get_catalog_store()
        await refresh_plan(store, session.plan, session.business_id, session.user_id)
        return session.to_response()
    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/execute", response_model=ImportResultResponse)
async def execute_import(session_id: str):
    """
    Run the import.

    Validation problems come back as an aborted-validation result, not an
    error status.

    Raises:
        403: Read-only mode
        404: Session expired or not found
        409: Import already running
    """
    try:
        session = sessions.get_session(session_id)
        service = await get_import_service()

        session.start()
        result = None
        try:
            result = await service.run(
                session.plan,
                session.business_id,
                session.user_id,
                on_progress=session.report_progress,
            )
        finally:
            session.finish(result)

        return result

    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}/progress", response_model=ImportProgressResponse)
async def get_import_progress(session_id: str):
    """Completed / total of the running (or last) import phase."""
    try:
        return sessions.get_session(session_id).progress()
    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}/failures.csv")
async def download_failures(session_id: str):
    """Source rows of products that failed in the last run, as CSV."""
    try:
        session = sessions.get_session(session_id)
        indexes = session.last_result.failed_indexes if session.last_result else []
        rows = [
            row
            for i in indexes
            for row in session.plan.products[i].source_rows
        ]
        return Response(
            content=serialize_rows(rows),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="import-failures-{session_id}.csv"'}
        )
    except Exception as e:
        return handle_error(e)


@router.delete("/{session_id}", status_code=204)
async def delete_import_session(session_id: str):
    """Discard an import session."""
    try:
        sessions.get_session(session_id)
        sessions.delete_session(session_id)
        return Response(status_code=204)
    except Exception as e:
        return handle_error(e)
