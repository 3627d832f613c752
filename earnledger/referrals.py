from .models import AccountSummary, TeamStats
from .storage import InMemoryStorage


class ReferralGraph:
    """Read-only projection of who joined through whose referral code.

    Nothing is cached: every call recomputes from the account table, and the
    link is the referee's ``referred_by`` value captured at registration.
    """

    def __init__(self, storage: InMemoryStorage):
        self.storage = storage

    def team_of(self, referral_code: str) -> list[AccountSummary]:
        members = [a for a in self.storage.accounts.values() if a["referred_by"] == referral_code]
        # sorted() is stable, so same-instant joins keep registration order
        members = sorted(members, key=lambda a: a["created_at"])
        return [
            AccountSummary(
                name=a["name"],
                plan_id=a["plan_id"],
                tasks_completed=a["stats"]["tasks_completed"],
                joined_at=a["created_at"],
            )
            for a in members
        ]

    def team_stats(self, referral_code: str) -> TeamStats:
        team = self.team_of(referral_code)
        return TeamStats(
            referral_code=referral_code,
            members=len(team),
            tasks_completed=sum(m.tasks_completed for m in team),
        )
