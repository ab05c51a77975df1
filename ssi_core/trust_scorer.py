"""
Trust Scorer
============

score = Σ (type weight + age bonus) + diversity bonus × distinct issuers

Recomputed wholesale from the credential set on every change.
"""

import math
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from .config import DEFAULT_TRUST_WEIGHTS, Settings
from .credential_codec import Credential, parse_timestamp


SECONDS_PER_MONTH = 30 * 24 * 60 * 60


class TrustScorer:
    def __init__(
        self,
        weights: Optional[Dict[str, float]] = None,
        age_bonus_per_month: float = 0.5,
        max_age_bonus: float = 10.0,
        diversity_bonus: float = 2.0
    ):
        self.weights = dict(DEFAULT_TRUST_WEIGHTS if weights is None else weights)
        self.age_bonus_per_month = age_bonus_per_month
        self.max_age_bonus = max_age_bonus
        self.diversity_bonus = diversity_bonus

    @classmethod
    def from_settings(cls, settings: Settings) -> "TrustScorer":
        return cls(
            weights=settings.TRUST_WEIGHTS,
            age_bonus_per_month=settings.AGE_BONUS_PER_MONTH,
            max_age_bonus=settings.MAX_AGE_BONUS,
            diversity_bonus=settings.DIVERSITY_BONUS,
        )

    def score(self, credentials: Iterable[Credential], now: Optional[datetime] = None) -> int:
        """
        Compute the trust score of a credential set

        Args:
            credentials: Verified credentials
            now: Evaluation time (defaults to current UTC time)

        Returns:
            Non-negative integer, half rounded up
        """
        now = now or datetime.now(timezone.utc)
        credentials = list(credentials)
        if not credentials:
            return 0

        contributions = [self.contribution(credential, now) for credential in credentials]
        issuers = {credential.issuer for credential in credentials}

        total = math.fsum(contributions) + self.diversity_bonus * len(issuers)
        return max(0, math.floor(total + 0.5))

    def contribution(self, credential: Credential, now: datetime) -> float:
        """Base weight plus age bonus for one credential"""
        weight = max(0.0, float(self.weights.get(credential.credential_type, 0)))
        return weight + self.age_bonus(credential, now)

    def age_bonus(self, credential: Credential, now: datetime) -> float:
        if not credential.issuance_date:
            return 0.0
        try:
            issued = parse_timestamp(credential.issuance_date)
        except ValueError:
            return 0.0

        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        months = (now - issued).total_seconds() / SECONDS_PER_MONTH
        if months <= 0:
            return 0.0
        return min(months * self.age_bonus_per_month, self.max_age_bonus)
