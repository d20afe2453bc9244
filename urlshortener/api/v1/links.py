from fastapi import APIRouter, Depends, Header, Query, status
from typing import Optional

from ...config import Settings
from ...database import as_utc
from ...dependencies import Requester, get_app_settings, get_requester, get_shortener
from ...models import ShortLink
from ...schemas import LinkCreate, LinkResponse, PagedLinks
from ...services.shortener import ShortenerService, expiry_from_ttl

router = APIRouter()


def to_response(link: ShortLink, settings: Settings) -> LinkResponse:
    return LinkResponse(
        code=link.code,
        short_url=f"{settings.BASE_URL.rstrip('/')}/{link.code}",
        target_url=link.target_url,
        created_at=as_utc(link.created_at),
        expires_at=as_utc(link.expires_at),
    )


@router.post("/links", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def shorten_link(
    link_in: LinkCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    requester: Requester = Depends(get_requester),
    shortener: ShortenerService = Depends(get_shortener),
    settings: Settings = Depends(get_app_settings),
):
    expires_at = expiry_from_ttl(link_in.ttl_seconds)
    link = await shortener.create(
        link_in.target_url,
        owner=requester.email,
        code=link_in.code,
        expires_at=expires_at,
        idempotency_key=idempotency_key,
    )
    return to_response(link, settings)


@router.get("/links", response_model=PagedLinks)
async def list_links(
    after: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    requester: Requester = Depends(get_requester),
    shortener: ShortenerService = Depends(get_shortener),
    settings: Settings = Depends(get_app_settings),
):
    links = await shortener.list_links(requester.email, after=after, limit=limit)
    return PagedLinks(
        data=[to_response(link, settings) for link in links],
        last=links[-1].code if links else None,
    )


@router.get("/links/{code}", response_model=LinkResponse)
async def get_link_metadata(
    code: str,
    shortener: ShortenerService = Depends(get_shortener),
    settings: Settings = Depends(get_app_settings),
):
    link = await shortener.get(code)
    return to_response(link, settings)


@router.delete("/links/{code}", response_model=LinkResponse)
async def delete_link(
    code: str,
    requester: Requester = Depends(get_requester),
    shortener: ShortenerService = Depends(get_shortener),
    settings: Settings = Depends(get_app_settings),
):
    link = await shortener.delete(requester.email, code)
    return to_response(link, settings)
