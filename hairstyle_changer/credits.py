# Credit ledger: debits user balances and records each consumption

import logging

from sqlalchemy import update
from sqlmodel import Session

from .errors import InsufficientCreditsError
from .models import CreditConsumption, User

logger = logging.getLogger(__name__)


class CreditLedger:
    def __init__(self, session: Session):
        self.session = session

    def consume(self, user: User, credits: int, reason: str = "hairstyle") -> CreditConsumption:
        """Debit ``credits`` from ``user`` inside the session's transaction.

        The balance check and the decrement are one UPDATE statement, so two
        concurrent debits cannot both pass the check. Nothing is committed here.
        """
        if credits <= 0:
            raise ValueError("credits must be positive")

        stmt = (
            update(User)
            .where(User.id == user.id, User.credits >= credits)
            .values(credits=User.credits - credits)
        )
        result = self.session.connection().execute(stmt)
        if user in self.session:
            self.session.refresh(user)
        if result.rowcount != 1:
            raise InsufficientCreditsError(required=credits, available=user.credits)

        consumption = CreditConsumption(user_id=user.id, credits=credits, reason=reason)
        self.session.add(consumption)
        self.session.flush()
        logger.info("credits_consumed user_id=%s credits=%s balance=%s", user.id, credits, user.credits)
        return consumption
