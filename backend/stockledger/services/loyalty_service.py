# Overview: Service-layer operations for loyalty points earned on paid orders.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import LoyaltyAccount, LoyaltyTransaction
from ..models.loyalty import LOYALTY_BONUS, LOYALTY_EARN
from .concurrency import lock_for_update, run_with_retry


@dataclass(frozen=True)
class LoyaltyAward:
    base_points: int
    bonus_points: int

    @property
    def total(self) -> int:
        return self.base_points + self.bonus_points


def calculate_points(total_cents: int) -> LoyaltyAward:
    """
    LOYALTY_POINTS_PER_UNIT points per whole currency unit, plus
    LOYALTY_BONUS_POINTS once the order reaches LOYALTY_BONUS_THRESHOLD_CENTS.
    """
    cfg = current_app.config
    base = (max(total_cents, 0) // 100) * cfg["LOYALTY_POINTS_PER_UNIT"]
    bonus = cfg["LOYALTY_BONUS_POINTS"] if total_cents >= cfg["LOYALTY_BONUS_THRESHOLD_CENTS"] else 0
    return LoyaltyAward(base_points=base, bonus_points=bonus)


def get_or_create_account(user_id: int) -> LoyaltyAccount:
    account = lock_for_update(db.session.query(LoyaltyAccount).filter_by(user_id=user_id)).first()
    if account is None:
        account = LoyaltyAccount(user_id=user_id, points_balance=0, lifetime_points_earned=0)
        db.session.add(account)
        db.session.flush()
    return account


def add_points_for_order(user_id: int, order_id: int, total_cents: int) -> LoyaltyAward:
    """
    Award points for a paid order. Re-running for the same order returns
    what was already awarded instead of awarding twice.
    """
    def _op():
        existing = db.session.query(LoyaltyTransaction).filter_by(order_id=order_id).all()
        if existing:
            by_type = {tx.transaction_type: tx.points for tx in existing}
            return LoyaltyAward(by_type.get(LOYALTY_EARN, 0), by_type.get(LOYALTY_BONUS, 0))

        award = calculate_points(total_cents)
        account = get_or_create_account(user_id)
        for tx_type, points, reason in (
            (LOYALTY_EARN, award.base_points, "Points earned on order"),
            (LOYALTY_BONUS, award.bonus_points, "Large order bonus"),
        ):
            if points <= 0:
                continue
            account.points_balance += points
            account.lifetime_points_earned += points
            db.session.add(LoyaltyTransaction(
                account_id=account.id,
                order_id=order_id,
                transaction_type=tx_type,
                points=points,
                balance_after=account.points_balance,
                reason=reason,
            ))
        db.session.commit()
        return award

    return run_with_retry(_op)


def get_balance(user_id: int) -> int:
    account = db.session.query(LoyaltyAccount).filter_by(user_id=user_id).first()
    return account.points_balance if account else 0
