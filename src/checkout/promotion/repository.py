"""Repository for the PromotionRule aggregate."""

from checkout.domain import checkout
from checkout.promotion.rule import PromotionRule, normalize_code


@checkout.repository(part_of=PromotionRule)
class PromotionRuleRepository:
    def find_by_code(self, code: str) -> PromotionRule | None:
        """Codes are stored upper-cased, so lookups are case-insensitive."""
        code = normalize_code(code)
        if not code:
            return None
        matches = self._dao.query.filter(code=code).all().items
        return matches[0] if matches else None

    def find_live_by_code(self, code: str, now=None) -> PromotionRule | None:
        """The rule behind an entered code, only while it is active and inside its window."""
        rule = self.find_by_code(code)
        if rule is None or not rule.is_active or not rule.is_within_window(now):
            return None
        return rule

    def automatic_rules(self) -> list[PromotionRule]:
        """Active rules that need no code, in a stable order."""
        active = self._dao.query.filter(is_active=True).all().items
        return sorted((rule for rule in active if not rule.code), key=lambda rule: (rule.created_at, str(rule.id)))
