"""
Review API Routes - Buyer reviews and admin moderation
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from app.api.deps import success, paginated, PageParams
from app.core.database import get_db
from app.core.roles import Permission
from app.core.security import get_current_user, PermissionChecker
from app.schemas import ReviewCreate, ReviewUpdate, ReviewModerate, ReviewResponse
from app.services.review_service import ReviewService

router = APIRouter(tags=["Reviews"])


@router.post("/reviews", status_code=201)
async def submit_review(
    data: ReviewCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Review a product from one of your delivered orders"""
    review = ReviewService(db).create(data, current_user)
    db.commit()
    db.refresh(review)
    return success(
        ReviewResponse.model_validate(review),
        message="Review submitted successfully. It will be visible after moderation.",
    )


@router.get("/reviews/product/{product_id}")
async def product_reviews(
    product_id: int,
    rating: Optional[int] = Query(None, ge=1, le=5),
    sort_by: str = Query("createdAt", alias="sortBy"),
    pages: PageParams = Depends(),
    db: Session = Depends(get_db)
):
    """Approved reviews with the product's rating summary"""
    service = ReviewService(db)
    reviews, total = service.list_for_product(product_id, rating=rating, sort_by=sort_by,
                                              page=pages.page, limit=pages.limit)
    return paginated(ReviewResponse, reviews, total, pages.page, pages.limit,
                     summary=service.product_summary(product_id))


@router.patch("/reviews/{review_id}")
async def edit_review(
    review_id: int,
    data: ReviewUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    review = ReviewService(db).update_own(review_id, data, current_user)
    db.commit()
    db.refresh(review)
    return success(ReviewResponse.model_validate(review))


@router.delete("/reviews/{review_id}")
async def delete_review(
    review_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Delete your own review; moderators may delete any"""
    ReviewService(db).delete(review_id, current_user)
    db.commit()
    return success(message="Review deleted successfully")


# ==================== MODERATION ====================

@router.get("/admin/reviews")
async def list_reviews(
    status: Optional[str] = None,
    product_id: Optional[int] = Query(None, alias="productId"),
    user_id: Optional[int] = Query(None, alias="userId"),
    rating: Optional[int] = Query(None, ge=1, le=5),
    pages: PageParams = Depends(),
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.REVIEWS_MANAGE]))
):
    reviews, total = ReviewService(db).search(
        status=status.upper() if status else None, product_id=product_id, user_id=user_id, rating=rating,
        page=pages.page, limit=pages.limit,
    )
    return paginated(ReviewResponse, reviews, total, pages.page, pages.limit)


@router.patch("/admin/reviews/{review_id}")
async def moderate_review(
    review_id: int,
    data: ReviewModerate,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.REVIEWS_MANAGE]))
):
    """Approve, hide or reject a review"""
    review = ReviewService(db).moderate(review_id, data, current_user)
    db.commit()
    db.refresh(review)
    return success(ReviewResponse.model_validate(review), message=f"Review {review.status.lower()} successfully")


@router.delete("/admin/reviews/{review_id}")
async def remove_review(
    review_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(PermissionChecker([Permission.REVIEWS_MANAGE]))
):
    ReviewService(db).delete(review_id, current_user)
    db.commit()
    return success(message="Review deleted successfully")
