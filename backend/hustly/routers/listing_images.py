import os
from pathlib import Path
from typing import List

from fastapi import APIRouter, Depends, UploadFile, File, HTTPException, status
from sqlalchemy.orm import Session

from hustly.core.config import get_settings
from hustly.core.database import get_db
from hustly.core.security import get_current_user
from hustly.models.listing import Listing
from hustly.models.listing_image import ListingImage
from hustly.models.user import User

router = APIRouter(
    prefix="/listings",
    tags=["listings-images"],
)

settings = get_settings()

ALLOWED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")


@router.post("/{listing_id}/images", status_code=status.HTTP_201_CREATED)
async def upload_listing_images(
    listing_id: int,
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    listing = (
        db.query(Listing)
        .filter(Listing.id == listing_id, Listing.owner_id == current_user.id)
        .first()
    )
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")

    # stored as media_root/listings/<listing_id>/NNN.ext
    listing_dir: Path = settings.media_root / "listings" / str(listing_id)
    listing_dir.mkdir(parents=True, exist_ok=True)

    sort_order = (
        db.query(ListingImage)
        .filter(ListingImage.listing_id == listing_id)
        .count()
    )

    created_images = []
    for upload in files:
        ext = os.path.splitext(upload.filename or "image")[1].lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise HTTPException(status_code=400, detail=f"Unsupported file type: {ext}")

        safe_name = f"{sort_order:03d}{ext}"
        contents = await upload.read()
        (listing_dir / safe_name).write_bytes(contents)

        img = ListingImage(
            listing_id=listing_id,
            file_path=f"listings/{listing_id}/{safe_name}",
            sort_order=sort_order,
        )
        db.add(img)
        created_images.append(img)
        sort_order += 1

    db.commit()

    return {
        "listing_id": listing_id,
        "uploaded": [
            {
                "id": img.id,
                "file_path": img.file_path,
                "url": f"{settings.media_url}/{img.file_path}",
            }
            for img in created_images
        ],
    }


@router.delete("/{listing_id}/images/{image_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_listing_image(
    listing_id: int,
    image_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    img = (
        db.query(ListingImage)
        .join(Listing, Listing.id == ListingImage.listing_id)
        .filter(
            ListingImage.id == image_id,
            ListingImage.listing_id == listing_id,
            Listing.owner_id == current_user.id,
        )
        .first()
    )
    if not img:
        raise HTTPException(status_code=404, detail="Image not found")

    (settings.media_root / img.file_path).unlink(missing_ok=True)
    db.delete(img)
    db.commit()
    return None
