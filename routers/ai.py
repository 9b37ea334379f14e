import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from intake import MAX_IMAGES, IntakeDep, IntakeError, collect_warnings, merge_prefill

router = APIRouter(tags=["ai"])

logger = logging.getLogger(__name__)


def _read_dirty(form) -> list:
    names = []
    for value in form.getlist("dirty"):
        if isinstance(value, str):
            names.extend(part.strip() for part in value.split(",") if part.strip())
    return names


@router.post("/intake")
async def ai_intake(request: Request, intake: IntakeDep):
    """
    Turn 1-3 photos (multipart field `images`) into a listing draft.

    An optional `draft` field (JSON object) plus `dirty` field names make the
    response carry a `prefill` that never overwrites the dirty fields.
    """
    form = await request.form()
    uploads = [f for f in form.getlist("images") if isinstance(f, UploadFile)]
    if not uploads:
        return JSONResponse({"error": "No images provided"}, status_code=400)
    if len(uploads) > MAX_IMAGES:
        return JSONResponse({"error": f"Maximum {MAX_IMAGES} images allowed"}, status_code=400)

    draft = None
    raw_draft = form.get("draft")
    if isinstance(raw_draft, str) and raw_draft.strip():
        try:
            draft = json.loads(raw_draft)
        except ValueError:
            return JSONResponse({"error": "draft must be a JSON object"}, status_code=400)
        if not isinstance(draft, dict):
            return JSONResponse({"error": "draft must be a JSON object"}, status_code=400)

    images = [(await upload.read(), upload.content_type) for upload in uploads]
    try:
        result = await intake.analyze(images)
    except IntakeError as exc:
        logger.warning("Intake failed: %s", exc.message)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    body = dict(result)
    body["warnings"] = collect_warnings(result)
    if draft is not None:
        body["prefill"] = merge_prefill(draft, _read_dirty(form), result)
    return body
