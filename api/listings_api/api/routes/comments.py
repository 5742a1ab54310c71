from fastapi import APIRouter, Depends, status

from listings_api.api.errors import to_http_exception
from listings_api.core.auth import Principal
from listings_api.core.security import get_human_principal
from listings_api.schemas.community import CommentCreateRequest, CommentOut
from listings_api.services.repository import RepositoryError, get_repository

router = APIRouter()


@router.post("/comment", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def create_comment(
    payload: CommentCreateRequest,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> CommentOut:
    try:
        row = await repository.create_comment(
            research_news_id=payload.research_news_id,
            parent_comment_id=payload.parent_comment_id,
            text=payload.text,
            student_id=principal.subject,
        )
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return CommentOut(**row)


@router.get("/comment/top-level/{research_news_id}", response_model=list[CommentOut])
async def list_top_level_comments(
    research_news_id: str,
    repository=Depends(get_repository),
) -> list[CommentOut]:
    try:
        rows = await repository.list_top_level_comments(research_news_id=research_news_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [CommentOut(**row) for row in rows]


@router.get("/comment/replies/{comment_id}", response_model=list[CommentOut])
async def list_comment_replies(
    comment_id: str,
    repository=Depends(get_repository),
) -> list[CommentOut]:
    try:
        rows = await repository.list_comment_replies(comment_id=comment_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [CommentOut(**row) for row in rows]


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: str,
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> None:
    try:
        await repository.delete_comment(comment_id=comment_id, student_id=principal.subject)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
