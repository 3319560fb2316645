"""Search endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas
from ..deps import get_db

router = APIRouter(prefix="/api", tags=["Search"])

SEARCH_RESULT_LIMIT = 10


def _like_pattern(q: str) -> str:
    escaped = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@router.get("/search", response_model=schemas.SearchResults)
def search(
    q: str | None = None,
    limit: int = Query(SEARCH_RESULT_LIMIT, ge=1, le=50),
    db: Session = Depends(get_db),
) -> schemas.SearchResults:
    """
    Case-insensitive substring search over usernames and post content.

    Users come first, then posts newest first.
    """
    if not q or not q.strip():
        return schemas.SearchResults(results=[])

    pattern = _like_pattern(q.strip())

    users = (
        db.query(models.User)
        .filter(models.User.username.ilike(pattern, escape="\\"))
        .order_by(models.User.username)
        .limit(limit)
        .all()
    )
    posts = (
        db.query(models.Post)
        .filter(models.Post.content.ilike(pattern, escape="\\"))
        .order_by(models.Post.created_at.desc(), models.Post.id.desc())
        .limit(limit)
        .all()
    )

    results: list[schemas.SearchResultUser | schemas.SearchResultPost] = [
        schemas.SearchResultUser.model_validate(u, from_attributes=True) for u in users
    ]
    results.extend(schemas.SearchResultPost.model_validate(p) for p in posts)
    return schemas.SearchResults(results=results)
