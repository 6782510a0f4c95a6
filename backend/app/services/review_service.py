"""
Review Service - Verified-purchase product reviews and moderation
"""
from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import desc, func
from sqlalchemy.exc import IntegrityError
from datetime import datetime
import logging

from app.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError
from app.core.roles import Permission, has_permission
from app.models import Order, OrderItem, OrderStatus, Product, Review, ReviewStatus, User
from app.schemas import ReviewCreate, ReviewUpdate, ReviewModerate
from app.services.audit_service import ActivityLogService, ActivityAction

logger = logging.getLogger(__name__)


class ReviewService:
    """
    A buyer may review a product once, and only after an order of theirs
    containing it was delivered. New and edited reviews wait for moderation
    and only APPROVED ones are public.
    """

    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityLogService(db)

    def get_by_id(self, review_id: int) -> Optional[Review]:
        return self.db.query(Review).options(joinedload(Review.user)).filter(Review.id == review_id).first()

    def _require(self, review_id: int) -> Review:
        review = self.get_by_id(review_id)
        if not review:
            raise NotFoundError("Review", review_id)
        return review

    def delivered_order_with(self, user_id: int, product_id: int, order_id: Optional[int] = None) -> Optional[Order]:
        query = self.db.query(Order).join(OrderItem, OrderItem.order_id == Order.id).filter(
            Order.user_id == user_id,
            Order.status == OrderStatus.DELIVERED,
            OrderItem.product_id == product_id,
        )
        if order_id:
            query = query.filter(Order.id == order_id)
        return query.order_by(desc(Order.created_at)).first()

    # ==================== BUYERS ====================

    def create(self, data: ReviewCreate, user: User) -> Review:
        product = self.db.query(Product).filter(Product.id == data.product_id).first()
        if not product:
            raise NotFoundError("Product", data.product_id)

        if self.db.query(Review.id).filter(Review.user_id == user.id, Review.product_id == product.id).first():
            raise ConflictError("You have already reviewed this product")

        order = self.delivered_order_with(user.id, product.id, data.order_id)
        if not order:
            raise PermissionDeniedError("You can only review products from your delivered orders")

        review = Review(
            product_id=product.id,
            user_id=user.id,
            order_id=order.id,
            rating=data.rating,
            title=data.title,
            comment=data.comment,
            status=ReviewStatus.PENDING,
        )
        self.db.add(review)
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise ConflictError("You have already reviewed this product") from exc

        self.activity.log(
            action=ActivityAction.CREATE,
            entity_type="Review",
            entity_id=review.id,
            entity_name=product.name,
            description=f"{data.rating}-star review submitted for {product.name}",
            user=user,
        )
        logger.info(f"Review {review.id} submitted by user {user.id} for product {product.id}")
        return review

    def update_own(self, review_id: int, data: ReviewUpdate, user: User) -> Review:
        review = self._require(review_id)
        if review.user_id != user.id:
            raise PermissionDeniedError("You can only edit your own reviews")

        update_data = data.model_dump(exclude_unset=True)
        for key, value in update_data.items():
            setattr(review, key, value)
        if update_data:
            # edited text goes back through moderation
            review.status = ReviewStatus.PENDING
            review.moderated_at = None
            review.moderated_by = None
        self.db.flush()
        return review

    def delete(self, review_id: int, user: User):
        review = self._require(review_id)
        if review.user_id != user.id and not has_permission(user.role, Permission.REVIEWS_MANAGE):
            raise PermissionDeniedError("You can only delete your own reviews")

        self.db.delete(review)
        self.db.flush()
        self.activity.log(
            action=ActivityAction.DELETE,
            entity_type="Review",
            entity_id=review_id,
            description="Review deleted" if review.user_id == user.id else "Review removed by moderator",
            user=user,
        )

    # ==================== PUBLIC LISTING ====================

    def product_summary(self, product_id: int) -> Dict[str, Any]:
        rows = self.db.query(Review.rating, func.count(Review.id)).filter(
            Review.product_id == product_id,
            Review.status == ReviewStatus.APPROVED,
        ).group_by(Review.rating).all()

        distribution = {rating: 0 for rating in (5, 4, 3, 2, 1)}
        for rating, count in rows:
            distribution[rating] = count
        total = sum(distribution.values())
        average = sum(r * c for r, c in distribution.items()) / total if total else 0
        return {
            "average_rating": round(average, 1),
            "total_reviews": total,
            "rating_distribution": distribution,
        }

    def list_for_product(self, product_id: int, rating: Optional[int] = None, sort_by: str = "createdAt",
                         page: int = 1, limit: int = 20) -> Tuple[List[Review], int]:
        if not self.db.query(Product.id).filter(Product.id == product_id).first():
            raise NotFoundError("Product", product_id)
        return self.search(product_id=product_id, status=ReviewStatus.APPROVED, rating=rating,
                           sort_by=sort_by, page=page, limit=limit)

    # ==================== MODERATION ====================

    def search(
        self,
        status: Optional[str] = None,
        product_id: Optional[int] = None,
        user_id: Optional[int] = None,
        rating: Optional[int] = None,
        sort_by: str = "createdAt",
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Review], int]:
        query = self.db.query(Review).options(joinedload(Review.user))
        if status:
            query = query.filter(Review.status == status)
        if product_id:
            query = query.filter(Review.product_id == product_id)
        if user_id:
            query = query.filter(Review.user_id == user_id)
        if rating:
            query = query.filter(Review.rating == rating)

        order = desc(Review.rating) if sort_by == "rating" else desc(Review.created_at)
        total = query.count()
        reviews = query.order_by(order, desc(Review.id)).offset((page - 1) * limit).limit(limit).all()
        return reviews, total

    def moderate(self, review_id: int, data: ReviewModerate, actor: User) -> Review:
        review = self._require(review_id)
        previous = review.status
        review.status = data.status
        review.moderation_note = data.moderation_note
        review.moderated_by = actor.id
        review.moderated_at = datetime.utcnow()
        self.db.flush()

        self.activity.log(
            action=ActivityAction.STATUS_CHANGE,
            entity_type="Review",
            entity_id=review.id,
            description=f"Review moved from {previous} to {review.status}",
            metadata={"note": data.moderation_note} if data.moderation_note else None,
            user=actor,
        )
        return review
