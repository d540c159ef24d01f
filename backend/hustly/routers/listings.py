from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, selectinload

from hustly.core.config import get_settings
from hustly.core.database import get_db
from hustly.core.security import get_current_user
from hustly.models.user import User
from hustly.models.listing import Listing
from hustly.models.listing_marketplace import ListingMarketplace
from hustly.schemas.listing import ListingCreate, ListingRead, ListingUpdate

router = APIRouter(prefix="/listings", tags=["listings"])

settings = get_settings()

IMPORT_FIELDS = {"import_from_marketplace", "import_external_id", "import_url"}


def _attach_thumbnail(listing: Listing) -> ListingRead:
    """ListingRead with the first photo as thumbnail_url."""
    data = ListingRead.model_validate(listing)
    if listing.images:
        data.thumbnail_url = f"{settings.media_url}/{listing.images[0].file_path}"
    return data


def _get_owned_listing_or_404(
    listing_id: int,
    current_user: User,
    db: Session,
) -> Listing:
    listing = (
        db.query(Listing)
        .options(selectinload(Listing.images))
        .options(selectinload(Listing.marketplace_links))
        .filter(
            Listing.id == listing_id,
            Listing.owner_id == current_user.id,
        )
        .first()
    )
    if not listing:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Listing not found",
        )
    return listing


@router.get("/", response_model=List[ListingRead])
def list_listings(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    listings = (
        db.query(Listing)
        .filter(Listing.owner_id == current_user.id)
        .options(selectinload(Listing.images))
        .options(selectinload(Listing.marketplace_links))
        .order_by(Listing.created_at.desc(), Listing.id.desc())
        .all()
    )
    return [_attach_thumbnail(l) for l in listings]


@router.post("/", response_model=ListingRead, status_code=status.HTTP_201_CREATED)
def create_listing(
    listing_in: ListingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    listing = Listing(
        **listing_in.model_dump(exclude=IMPORT_FIELDS),
        owner_id=current_user.id,
    )
    db.add(listing)
    db.commit()
    db.refresh(listing)

    # item already live on a marketplace: link it right away
    if listing_in.import_from_marketplace:
        db.add(ListingMarketplace(
            listing_id=listing.id,
            marketplace=listing_in.import_from_marketplace,
            status="active",
            external_item_id=listing_in.import_external_id,
            external_url=listing_in.import_url,
            sku=listing.sku,
        ))
        db.commit()
        db.refresh(listing)

    return _attach_thumbnail(listing)


@router.get("/{listing_id}", response_model=ListingRead)
def get_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    listing = _get_owned_listing_or_404(listing_id, current_user, db)
    return _attach_thumbnail(listing)


@router.put("/{listing_id}", response_model=ListingRead)
def update_listing(
    listing_id: int,
    listing_in: ListingUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    listing = _get_owned_listing_or_404(listing_id, current_user, db)

    # fields the client did not send stay untouched
    for field, value in listing_in.model_dump(exclude_unset=True).items():
        setattr(listing, field, value)

    db.commit()
    db.refresh(listing)
    return _attach_thumbnail(listing)


@router.delete("/{listing_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_listing(
    listing_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    listing = _get_owned_listing_or_404(listing_id, current_user, db)
    db.delete(listing)
    db.commit()
    return None
