"""
Partner Service - Partners, profit share invariant, distributions and payouts
"""
from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import func, desc
from sqlalchemy.exc import IntegrityError
from decimal import Decimal
from datetime import date, datetime
import logging

from app.core.exceptions import ValidationError, ConflictError, NotFoundError, PermissionDeniedError
from app.core.money import money, to_decimal, ZERO, HUNDRED
from app.core.roles import Permission, has_permission, can_override_share_limit
from app.models import Partner, ProfitDistribution, DistributionStatus, User
from app.schemas import PartnerCreate, PartnerUpdate, PayoutUpdate
from app.services.audit_service import ActivityLogService, ActivityAction
from app.services.ledger_service import LedgerService
from app.services.profit_service import ProfitCalculator

logger = logging.getLogger(__name__)


def allocate_shares(net_profit: Decimal, shares: List[Tuple[int, Decimal]]) -> Dict[int, Decimal]:
    """
    Split net profit by percentage share, rounded to cents.

    When the shares add up to exactly 100% the rounding residue goes to the
    largest holder so the amounts sum to net profit to the cent.
    """
    amounts = {key: money(net_profit * to_decimal(share) / HUNDRED) for key, share in shares}

    total_share = sum((to_decimal(share) for _, share in shares), ZERO)
    if shares and total_share == HUNDRED:
        residue = money(net_profit) - sum(amounts.values(), ZERO)
        if residue:
            largest = max(shares, key=lambda item: (to_decimal(item[1]), -item[0]))[0]
            amounts[largest] += residue
    return amounts


class PartnerService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityLogService(db)

    def get_by_id(self, partner_id: int) -> Optional[Partner]:
        return self.db.query(Partner).filter(Partner.id == partner_id).first()

    def _require(self, partner_id: int) -> Partner:
        partner = self.get_by_id(partner_id)
        if not partner:
            raise NotFoundError("Partner", partner_id)
        return partner

    def get_all(self, include_inactive: bool = True) -> List[Partner]:
        query = self.db.query(Partner)
        if not include_inactive:
            query = query.filter(Partner.is_active == True)
        return query.order_by(desc(Partner.is_active), desc(Partner.profit_share_percentage), Partner.name).all()

    def active_share_total(self, exclude_partner_id: Optional[int] = None) -> Decimal:
        query = self.db.query(func.coalesce(func.sum(Partner.profit_share_percentage), 0)) \
            .filter(Partner.is_active == True)
        if exclude_partner_id:
            query = query.filter(Partner.id != exclude_partner_id)
        return money(query.scalar())

    def _check_share_limit(self, share, actor: User, exclude_partner_id: Optional[int] = None) -> Optional[str]:
        """Raise if active shares would pass 100%, unless the actor may override. Returns a warning on override."""
        total = self.active_share_total(exclude_partner_id) + money(share)
        if total <= HUNDRED:
            return None
        if can_override_share_limit(actor.role):
            logger.warning(f"Partner share limit overridden by user {actor.id}: total {total}%")
            return f"Total share is {total}% (Super admin override applied)"
        available = HUNDRED - self.active_share_total(exclude_partner_id)
        raise ValidationError(
            f"Total active partner share would be {total}%, which exceeds 100%. "
            f"Available share: {max(available, ZERO)}%"
        )

    def _check_unique(self, email: Optional[str], user_id: Optional[int], exclude_partner_id: Optional[int] = None):
        if email:
            query = self.db.query(Partner).filter(func.lower(Partner.email) == email.lower())
            if exclude_partner_id:
                query = query.filter(Partner.id != exclude_partner_id)
            if query.first():
                raise ConflictError(f"A partner with email {email} already exists")
        if user_id:
            if not self.db.query(User).filter(User.id == user_id).first():
                raise NotFoundError("User", user_id)
            query = self.db.query(Partner).filter(Partner.user_id == user_id)
            if exclude_partner_id:
                query = query.filter(Partner.id != exclude_partner_id)
            if query.first():
                raise ConflictError("That user is already linked to a partner")

    def create(self, data: PartnerCreate, actor: User) -> Tuple[Partner, Optional[str]]:
        self._check_unique(data.email, data.user_id)
        warning = None
        if data.is_active:
            warning = self._check_share_limit(data.profit_share_percentage, actor)

        partner = Partner(**data.model_dump())
        partner.profit_share_percentage = money(data.profit_share_percentage)
        partner.joined_at = data.joined_at or date.today()
        self.db.add(partner)
        self.db.flush()

        self.activity.log(
            action=ActivityAction.CREATE,
            entity_type="Partner",
            entity_id=partner.id,
            entity_name=partner.name,
            description=f"Partner {partner.name} added with {partner.profit_share_percentage}% share",
            metadata={"warning": warning} if warning else None,
            user=actor,
        )
        return partner, warning

    def update(self, partner_id: int, data: PartnerUpdate, actor: User) -> Tuple[Partner, Optional[str]]:
        partner = self._require(partner_id)
        update_data = data.model_dump(exclude_unset=True)

        if "profit_share_percentage" in update_data and \
                not has_permission(actor.role, Permission.PARTNER_PERCENTAGE_EDIT):
            raise PermissionDeniedError("You are not allowed to change partner percentages")

        self._check_unique(update_data.get("email"), update_data.get("user_id"), exclude_partner_id=partner_id)

        new_share = update_data.get("profit_share_percentage", partner.profit_share_percentage)
        will_be_active = update_data.get("is_active", partner.is_active)
        share_changes = "profit_share_percentage" in update_data
        reactivated = will_be_active and not partner.is_active
        warning = None
        if will_be_active and (share_changes or reactivated):
            warning = self._check_share_limit(new_share, actor, exclude_partner_id=partner_id)

        old_values = {key: getattr(partner, key) for key in update_data}
        for key, value in update_data.items():
            setattr(partner, key, value)
        if "profit_share_percentage" in update_data:
            partner.profit_share_percentage = money(new_share)
        self.db.flush()

        self.activity.log(
            action=ActivityAction.UPDATE,
            entity_type="Partner",
            entity_id=partner.id,
            entity_name=partner.name,
            description=f"Partner {partner.name} updated",
            metadata={"old": old_values, "new": update_data, "warning": warning},
            user=actor,
        )
        return partner, warning

    def delete(self, partner_id: int, actor: User) -> bool:
        """Hard delete partners with no distributions; deactivate the rest. Returns True if deleted."""
        partner = self._require(partner_id)
        has_distributions = self.db.query(ProfitDistribution.id) \
            .filter(ProfitDistribution.partner_id == partner_id).first()

        if has_distributions:
            partner.is_active = False
            partner.exit_date = partner.exit_date or date.today()
            deleted = False
        else:
            self.db.delete(partner)
            deleted = True
        self.db.flush()

        self.activity.log(
            action=ActivityAction.DELETE,
            entity_type="Partner",
            entity_id=partner_id,
            entity_name=partner.name,
            description="Partner deleted" if deleted else "Partner deactivated (has distribution history)",
            user=actor,
        )
        return deleted

    def summary(self, actor: User) -> Dict[str, Any]:
        partners = self.get_all()
        active_share = self.active_share_total()
        return {
            "total_partners": len(partners),
            "active_partners": sum(1 for p in partners if p.is_active),
            "total_active_share": active_share,
            "remaining_share": max(HUNDRED - active_share, ZERO),
            "total_profit_paid": money(sum((to_decimal(p.total_profit_received) for p in partners), ZERO)),
            "can_override": can_override_share_limit(actor.role),
        }

    def get_for_user(self, user: User) -> Partner:
        partner = self.db.query(Partner).filter(Partner.user_id == user.id).first()
        if not partner:
            raise NotFoundError("Partner profile")
        return partner


class DistributionService:
    def __init__(self, db: Session):
        self.db = db
        self.activity = ActivityLogService(db)

    def get_by_id(self, distribution_id: int) -> Optional[ProfitDistribution]:
        return self.db.query(ProfitDistribution).options(joinedload(ProfitDistribution.partner)) \
            .filter(ProfitDistribution.id == distribution_id).first()

    def _require(self, distribution_id: int) -> ProfitDistribution:
        distribution = self.get_by_id(distribution_id)
        if not distribution:
            raise NotFoundError("Payout", distribution_id)
        return distribution

    def get_all(
        self,
        status: Optional[str] = None,
        partner_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[ProfitDistribution]:
        query = self.db.query(ProfitDistribution).options(joinedload(ProfitDistribution.partner))
        if status:
            query = query.filter(ProfitDistribution.status == status)
        if partner_id:
            query = query.filter(ProfitDistribution.partner_id == partner_id)
        if start_date:
            query = query.filter(ProfitDistribution.end_date >= start_date)
        if end_date:
            query = query.filter(ProfitDistribution.start_date <= end_date)
        return query.order_by(desc(ProfitDistribution.start_date), ProfitDistribution.id).all()

    def totals(self, distributions: List[ProfitDistribution]) -> Dict[str, Decimal]:
        result = {s: money(ZERO) for s in DistributionStatus.TRANSITIONS}
        for d in distributions:
            result[d.status] += money(d.distribution_amount)
        result["total"] = sum((result[s] for s in DistributionStatus.TRANSITIONS), money(ZERO))
        return result

    # ==================== DISTRIBUTION ====================

    def distribute(self, period_type: str, start_date: date, end_date: date, actor: User) -> Dict[str, Any]:
        """
        Create one PENDING distribution per active partner for the period.
        All rows are written in the caller's transaction, so either every
        partner gets a row or none does.
        """
        if start_date > end_date:
            raise ValidationError("startDate must not be after endDate")

        partners = self.db.query(Partner).filter(Partner.is_active == True).order_by(Partner.id).all()
        if not partners:
            raise ValidationError("No active partners found")

        existing = self.db.query(ProfitDistribution).filter(
            ProfitDistribution.partner_id.in_([p.id for p in partners]),
            ProfitDistribution.start_date <= end_date,
            ProfitDistribution.end_date >= start_date,
        ).first()
        if existing:
            raise ConflictError(
                f"Profit has already been distributed for an overlapping period "
                f"({existing.start_date} to {existing.end_date}, {existing.period_type})"
            )

        period = ProfitCalculator(self.db).calculate_period(start_date, end_date)
        if period.net_profit <= 0:
            raise ValidationError(f"No profit to distribute for this period (net profit {period.net_profit})")

        amounts = allocate_shares(period.net_profit, [(p.id, p.profit_share_percentage) for p in partners])

        distributions = []
        for partner in partners:
            distribution = ProfitDistribution(
                partner_id=partner.id,
                period_type=period_type,
                start_date=start_date,
                end_date=end_date,
                total_revenue=period.revenue,
                total_costs=money(period.total_costs),
                net_profit=period.net_profit,
                partner_share=money(partner.profit_share_percentage),
                distribution_amount=amounts[partner.id],
                status=DistributionStatus.PENDING,
                created_by=actor.id,
            )
            distribution.partner = partner
            self.db.add(distribution)
            distributions.append(distribution)

        try:
            self.db.flush()
        except IntegrityError as exc:
            raise ConflictError("Profit has already been distributed for this period") from exc

        total_distributed = sum((d.distribution_amount for d in distributions), ZERO)
        total_share = sum((to_decimal(p.profit_share_percentage) for p in partners), ZERO)
        warning = None
        if total_share < HUNDRED:
            warning = f"Active partner shares total {money(total_share)}%; {money(period.net_profit - total_distributed)} stays undistributed"

        self.activity.log(
            action=ActivityAction.DISTRIBUTE,
            entity_type="ProfitDistribution",
            entity_name=f"{period_type} {start_date}..{end_date}",
            description=f"Distributed {total_distributed} of net profit {period.net_profit} to {len(partners)} partners",
            metadata={"net_profit": period.net_profit, "partners": len(partners)},
            user=actor,
        )
        logger.info(
            f"Profit distribution {period_type} {start_date}..{end_date}: "
            f"net {period.net_profit}, distributed {total_distributed} to {len(partners)} partners"
        )

        return {
            "distributions": distributions,
            "period": period,
            "total_distributed": total_distributed,
            "warning": warning,
        }

    # ==================== PAYOUTS ====================

    def update(self, distribution_id: int, data: PayoutUpdate, actor: User) -> ProfitDistribution:
        distribution = self._require(distribution_id)
        now = datetime.utcnow()
        target = data.status

        if target is not None:
            current = distribution.status
            if target not in DistributionStatus.TRANSITIONS.get(current, ()):
                raise ConflictError(f"Cannot change payout status from {current} to {target}")

            if target == DistributionStatus.APPROVED:
                distribution.approved_by = actor.id
                distribution.approved_at = now
            elif target == DistributionStatus.PAID:
                if current == DistributionStatus.PENDING:
                    distribution.approved_by = actor.id
                    distribution.approved_at = now
                distribution.paid_at = now
                partner = distribution.partner
                partner.total_profit_received = money(partner.total_profit_received) + money(distribution.distribution_amount)
            elif target == DistributionStatus.REJECTED:
                distribution.approved_by = None
                distribution.approved_at = None
                distribution.paid_at = None
            distribution.status = target

        if data.payment_method is not None:
            distribution.payment_method = data.payment_method
        if data.payment_reference is not None:
            distribution.payment_reference = data.payment_reference
        if data.notes:
            stamped = f"[{now.isoformat()}] {data.notes}"
            distribution.notes = f"{distribution.notes}\n{stamped}" if distribution.notes else stamped

        self.db.flush()

        if target == DistributionStatus.PAID:
            LedgerService(self.db).record_commission(distribution, created_by=actor.id)
            self.db.flush()

        if target is not None:
            self.activity.log(
                action=ActivityAction.PAY if target == DistributionStatus.PAID else ActivityAction.STATUS_CHANGE,
                entity_type="ProfitDistribution",
                entity_id=distribution.id,
                entity_name=distribution.partner.name,
                description=f"Payout {distribution.id} set to {target}",
                metadata={"amount": distribution.distribution_amount},
                user=actor,
            )
            logger.info(f"Payout {distribution.id} -> {target} by user {actor.id}")
        return distribution

    def delete(self, distribution_id: int, actor: User):
        distribution = self._require(distribution_id)
        if distribution.status == DistributionStatus.PAID:
            raise ConflictError("Cannot delete a paid payout")

        self.activity.log(
            action=ActivityAction.DELETE,
            entity_type="ProfitDistribution",
            entity_id=distribution.id,
            entity_name=distribution.partner.name,
            description=f"Payout {distribution.id} ({distribution.status}) deleted",
            metadata={"amount": distribution.distribution_amount},
            user=actor,
        )
        self.db.delete(distribution)
        self.db.flush()
