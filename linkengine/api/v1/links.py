from fastapi import APIRouter, Depends, HTTPException, Query, status

from linkengine.dependencies import get_current_owner, get_link_service, limit_link_creation
from linkengine.schemas.analytics import AnalyticsSummary, AnalyticsWindow
from linkengine.schemas.link import LinkCreate, LinkPage, LinkResponse, LinkUpdate
from linkengine.services.link_service import LinkService

router = APIRouter(prefix="/links", tags=["links"])


def _not_found():
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Link not found"
    )


@router.post(
    "/",
    response_model=LinkResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_link_creation)]
)
async def create_link(
    payload: LinkCreate,
    owner_id: str = Depends(get_current_owner),
    link_service: LinkService = Depends(get_link_service)
):
    """Create a new short link"""
    return await link_service.create_link(payload, owner_id)


@router.get("/", response_model=LinkPage)
async def list_links(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    owner_id: str = Depends(get_current_owner),
    link_service: LinkService = Depends(get_link_service)
):
    """List the caller's links, newest first"""
    links, total = await link_service.list_links(owner_id, page, page_size)
    return LinkPage(
        items=[LinkResponse.model_validate(link) for link in links],
        page=page,
        page_size=page_size,
        total=total,
    )


@router.get("/{code}", response_model=LinkResponse)
async def get_link(
    code: str,
    owner_id: str = Depends(get_current_owner),
    link_service: LinkService = Depends(get_link_service)
):
    link = await link_service.get_link(code, owner_id)
    if not link:
        raise _not_found()
    return link


@router.patch("/{code}", response_model=LinkResponse)
async def update_link(
    code: str,
    payload: LinkUpdate,
    owner_id: str = Depends(get_current_owner),
    link_service: LinkService = Depends(get_link_service)
):
    """Edit link metadata or gates (drops cached snapshots)"""
    link = await link_service.update_link(code, payload, owner_id)
    if not link:
        raise _not_found()
    return link


@router.delete("/{code}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_link(
    code: str,
    owner_id: str = Depends(get_current_owner),
    link_service: LinkService = Depends(get_link_service)
):
    """Delete a link and its click history"""
    if not await link_service.delete_link(code, owner_id):
        raise _not_found()


@router.get("/{code}/analytics", response_model=AnalyticsSummary)
async def get_link_analytics(
    code: str,
    window: AnalyticsWindow = Query(AnalyticsWindow.LAST_7_DAYS),
    owner_id: str = Depends(get_current_owner),
    link_service: LinkService = Depends(get_link_service)
):
    """Click summary for one link over a trailing window"""
    link = await link_service.get_link(code, owner_id)
    if not link:
        raise _not_found()
    return await link_service.get_summary(link.id, window)
