"""
Rating Policies

A deployment counts reviews toward a product's rating in exactly one way:
either every review counts the moment it is submitted, or only reviews a
moderator has approved count.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Type

from .models import ReviewStatus


class RatingPolicy(ABC):
    """Abstract base class for review counting policies."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Policy name used in configuration."""
        pass

    @property
    @abstractmethod
    def moderated(self) -> bool:
        """Whether reviews go through approval."""
        pass

    @property
    @abstractmethod
    def initial_status(self) -> Optional[ReviewStatus]:
        """Status a newly submitted review is stored with."""
        pass

    @property
    @abstractmethod
    def counted_status(self) -> Optional[ReviewStatus]:
        """Status filter for a full recompute; None counts every review."""
        pass

    def counts(self, status: Optional[str]) -> bool:
        """Whether a review in ``status`` contributes to the aggregate."""
        return self.counted_status is None or status == self.counted_status.value

    @property
    def counts_on_submit(self) -> bool:
        return self.counts(self.initial_status.value if self.initial_status else None)


class ImmediateCountingPolicy(RatingPolicy):
    name = "immediate"
    moderated = False
    initial_status = None
    counted_status = None


class ModerationGatePolicy(RatingPolicy):
    name = "moderated"
    moderated = True
    initial_status = ReviewStatus.PENDING
    counted_status = ReviewStatus.APPROVED


POLICIES: Dict[str, Type[RatingPolicy]] = {
    ImmediateCountingPolicy.name: ImmediateCountingPolicy,
    ModerationGatePolicy.name: ModerationGatePolicy,
}


def get_policy(name: str) -> RatingPolicy:
    """Instantiate the policy configured by ``name``."""
    try:
        return POLICIES[name.strip().lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown rating policy {name!r}; expected one of {sorted(POLICIES)}"
        ) from None
