"""
Customer response endpoints - hit from the review link embedded in every message.

- GET  /r/{token}             - link clicked, redirects to the review page
- POST /r/{token}/submitted   - review submitted (completes the sequence)
- POST /r/{token}/unsubscribe - customer opted out of further requests
"""
import logging
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from reviewflow.database import get_db
from reviewflow.services.review_automation import (
    build_review_page_url,
    record_link_click,
    record_review_submission,
    record_unsubscribe,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/r", tags=["review-tracking"])


@router.get("/{token}")
async def link_clicked(token: str, db: AsyncSession = Depends(get_db)):
    """Record the click, then send the customer on to the review page."""
    if not await record_link_click(db, token):
        raise HTTPException(status_code=404, detail="Review request not found")
    return RedirectResponse(url=build_review_page_url(token), status_code=302)


@router.post("/{token}/submitted")
async def review_submitted(token: str, db: AsyncSession = Depends(get_db)):
    if not await record_review_submission(db, token):
        raise HTTPException(status_code=404, detail="Review request not found")
    return {"recorded": True, "status": "completed"}


@router.post("/{token}/unsubscribe")
async def unsubscribe(token: str, db: AsyncSession = Depends(get_db)):
    if not await record_unsubscribe(db, token):
        raise HTTPException(status_code=404, detail="Review request not found")
    return {"recorded": True}
