from fastapi import APIRouter, Depends, HTTPException, Header, Request, Response, status, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List

from app.core.auth import get_current_user, get_optional_user
from app.core.db import get_db
from app.domains.identity.entities import User
from app.domains.pastes.entities import ViewerInfo, PasteListPage
from app.domains.pastes.exceptions import PasteNotFoundError, AuthenticationRequiredError
from app.domains.pastes.schemas import (
    PasteCreate, PasteUpdate, PasteResponse, PasteSummary, PasteListResponse,
    PasteViewResponse, UnlockRequest, VersionMetaResponse, VersionContentResponse,
    InvitedUserResponse, InviteRemoval, TransferRequest, TransferResponse,
    ForkDataResponse, SlugAvailability, validate_slug,
)
from app.domains.pastes.services import (
    PasteService, PasteViewService, FORK_NOT_FOUND, FORK_SERVER_ERROR
)

router = APIRouter(prefix="/pastes", tags=["pastes"])
me_router = APIRouter(prefix="/me", tags=["pastes"])

# raw content must never be sniffed as HTML or framed
RAW_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}


def viewer_from_request(request: Request) -> ViewerInfo:
    return ViewerInfo(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
    )


def to_list_response(page: PasteListPage) -> PasteListResponse:
    return PasteListResponse(
        pastes=[PasteSummary.model_validate(paste) for paste in page.pastes],
        total=page.total,
        page=page.page,
        limit=page.limit,
        total_pages=page.total_pages,
    )


def read_error(e: Exception) -> HTTPException:
    """Map errors raised while reading a paste"""
    if isinstance(e, PasteNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paste not found")
    if isinstance(e, AuthenticationRequiredError):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.get("/slug-available/{slug}", response_model=SlugAvailability)
async def check_slug_available(
    slug: str,
    db: AsyncSession = Depends(get_db)
):
    try:
        validate_slug(slug)
    except ValueError:
        return SlugAvailability(slug=slug, available=False)

    paste_service = PasteService(db)
    return SlugAvailability(slug=slug, available=await paste_service.is_slug_available(slug))


@router.post("", response_model=PasteResponse, status_code=status.HTTP_201_CREATED)
async def create_paste(
    paste_data: PasteCreate,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    """Create a paste; guests allowed when enabled"""
    paste_service = PasteService(db)

    try:
        paste = await paste_service.create_paste(paste_data, current_user)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    return PasteResponse.model_validate(paste)


@router.get("/{slug}", response_model=PasteViewResponse)
async def view_paste(
    slug: str,
    request: Request,
    version: Optional[int] = Query(None, ge=1),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    """Open a paste, optionally at an earlier version"""
    view_service = PasteViewService(db)

    try:
        result = await view_service.view_paste(slug, current_user, viewer_from_request(request), version)
    except (PasteNotFoundError, PermissionError) as e:
        raise read_error(e)

    return PasteViewResponse.model_validate(result)


@router.get("/{slug}/raw", response_class=PlainTextResponse)
async def raw_paste(
    slug: str,
    request: Request,
    version: Optional[int] = Query(None, ge=1),
    password: Optional[str] = Query(None, max_length=100),
    x_paste_password: Optional[str] = Header(None, max_length=100),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    """Paste content as text/plain; password via ?password= or X-Paste-Password"""
    view_service = PasteViewService(db)

    try:
        content = await view_service.read_raw(
            slug, current_user, viewer_from_request(request), password or x_paste_password, version
        )
    except (PasteNotFoundError, PermissionError) as e:
        raise read_error(e)

    return PlainTextResponse(content, headers=RAW_HEADERS)


@router.post("/{slug}/unlock", response_model=PasteViewResponse)
async def unlock_paste(
    slug: str,
    unlock_data: UnlockRequest,
    request: Request,
    version: Optional[int] = Query(None, ge=1),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    """Open a password-protected paste"""
    view_service = PasteViewService(db)

    try:
        result = await view_service.unlock_paste(
            slug, unlock_data.password, current_user, viewer_from_request(request), version
        )
    except (PasteNotFoundError, PermissionError) as e:
        raise read_error(e)

    return PasteViewResponse.model_validate(result)


@router.patch("/{slug}", response_model=PasteResponse)
async def update_paste(
    slug: str,
    update_data: PasteUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Edit a paste; only supplied fields change"""
    paste_service = PasteService(db)

    try:
        paste = await paste_service.get_paste_or_404(slug)
        paste_service.check_can_modify(paste, current_user, "update")
        updated = await paste_service.update_paste(paste.id, update_data, current_user.id)
    except PasteNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paste not found")
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return PasteResponse.model_validate(updated)


@router.delete("/{slug}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_paste(
    slug: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    paste_service = PasteService(db)

    try:
        paste = await paste_service.get_paste_or_404(slug)
        paste_service.check_can_modify(paste, current_user, "delete")
    except PasteNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paste not found")
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    if not await paste_service.delete_paste(paste.id):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete paste")

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{slug}/versions", response_model=List[VersionMetaResponse])
async def list_versions(
    slug: str,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    view_service = PasteViewService(db)

    try:
        versions = await view_service.list_versions(slug, current_user)
    except (PasteNotFoundError, PermissionError) as e:
        raise read_error(e)

    return [VersionMetaResponse.model_validate(meta) for meta in versions]


@router.get("/{slug}/versions/{version_number}", response_model=VersionContentResponse)
async def get_version(
    slug: str,
    version_number: int,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    view_service = PasteViewService(db)

    try:
        content = await view_service.get_version(slug, current_user, version_number)
    except (PasteNotFoundError, PermissionError) as e:
        raise read_error(e)

    return VersionContentResponse(version_number=version_number, content=content)


@router.get("/{slug}/invites", response_model=List[InvitedUserResponse])
async def list_invites(
    slug: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Invited users of a paste (owner or admin)"""
    paste_service = PasteService(db)

    try:
        paste = await paste_service.get_paste_or_404(slug)
        paste_service.check_can_modify(paste, current_user, "update")
    except PasteNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paste not found")
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    invites = await paste_service.invites.list_invites(paste.id)
    return [InvitedUserResponse.model_validate(invite) for invite in invites]


@router.delete("/{slug}/invites")
async def remove_invites(
    slug: str,
    removal: InviteRemoval,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    paste_service = PasteService(db)

    try:
        paste = await paste_service.get_paste_or_404(slug)
        paste_service.check_can_modify(paste, current_user, "update")
    except PasteNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paste not found")
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    removed = await paste_service.remove_invites(paste.id, removal.user_ids)
    return {"removed": removed}


@router.get("/{slug}/fork", response_model=ForkDataResponse)
async def fork_paste(
    slug: str,
    version: Optional[int] = Query(None, ge=1),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db)
):
    """Draft for a new paste based on this one. Nothing is saved until it is posted back."""
    paste_service = PasteService(db)

    is_admin = current_user is not None and current_user.is_admin and not current_user.is_banned
    result = await paste_service.get_fork_data(slug, current_user, is_admin, version)

    if not result.success:
        if result.error == FORK_NOT_FOUND:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)
        if result.error == FORK_SERVER_ERROR:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.error)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=result.error)

    return ForkDataResponse.model_validate(result.data)


@router.post("/{slug}/transfer", response_model=TransferResponse)
async def transfer_paste(
    slug: str,
    transfer_data: TransferRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Hand the paste to another user (owner or admin)"""
    paste_service = PasteService(db)

    try:
        paste = await paste_service.get_paste_or_404(slug)
        paste_service.check_can_modify(paste, current_user, "update")
    except PasteNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Paste not found")
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    current_owner_id = current_user.id if paste.is_owner(current_user.id) else paste.owner_id
    result = await paste_service.transfer_ownership(paste.id, transfer_data.new_owner_id, current_owner_id)

    if not result.success:
        code = status.HTTP_404_NOT_FOUND if "not found" in result.message else status.HTTP_400_BAD_REQUEST
        raise HTTPException(status_code=code, detail=result.message)

    return TransferResponse(success=result.success, message=result.message)


@me_router.get("/pastes", response_model=PasteListResponse)
async def my_pastes(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    paste_service = PasteService(db)
    result = await paste_service.list_user_pastes(current_user.id, page=page, limit=limit, search=search)
    return to_list_response(result)
