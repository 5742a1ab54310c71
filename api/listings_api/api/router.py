from fastapi import APIRouter

from listings_api.api.routes import booking, comments, health, profile
from listings_api.api.routes.listings import build_listing_router
from listings_api.services.listing_kinds import LISTING_KINDS, RESEARCH_NEWS

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
# Comment paths share the research-news prefix and must win over "/{listing_id}".
api_router.include_router(comments.router, prefix=f"/{RESEARCH_NEWS.key}", tags=["comments"])
for listing_kind in LISTING_KINDS.values():
    api_router.include_router(
        build_listing_router(listing_kind),
        prefix=f"/{listing_kind.key}",
        tags=[listing_kind.key],
    )
api_router.include_router(booking.router, prefix="/booking", tags=["booking"])
api_router.include_router(profile.router, prefix="/profile", tags=["profile"])
