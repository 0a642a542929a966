"""Per-call business configuration.

Settings are read fresh for every engine call: the ``business_settings`` row
wins column by column, the environment fills the gaps.
"""

from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from booking_backend.core import config
from booking_backend.core.timegrid import TimeRange
from booking_backend.models.settings import BusinessSetting


@dataclass(frozen=True)
class BusinessSettings:
    slot_duration: int = config.SLOT_DURATION_MINUTES
    timezone: str = config.BUSINESS_TIMEZONE
    max_advance_days: int = config.MAX_ADVANCE_BOOKING_DAYS
    min_notice_minutes: int = config.MIN_NOTICE_MINUTES
    business_hours: TimeRange | None = None
    guard_lookahead_days: int = config.TEMPLATE_GUARD_LOOKAHEAD_DAYS

    def __post_init__(self) -> None:
        if self.slot_duration < 1:
            raise ValueError(f'Slot duration must be positive, got {self.slot_duration}')
        ZoneInfo(self.timezone)

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def now(self) -> datetime:
        return datetime.now(self.zone)

    def localize(self, moment: datetime) -> datetime:
        """Express ``moment`` in the business timezone; naive values are taken as already local."""
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.zone)
        return moment.astimezone(self.zone)

    def today(self, now: datetime | None = None) -> date:
        return self.localize(now or self.now()).date()


def _env_business_hours() -> TimeRange | None:
    if config.BUSINESS_HOURS_START and config.BUSINESS_HOURS_END:
        return TimeRange.parse(config.BUSINESS_HOURS_START, config.BUSINESS_HOURS_END)
    return None


def load_business_settings(db: Session | None) -> BusinessSettings:
    business_hours = _env_business_hours()
    row = db.query(BusinessSetting).order_by(BusinessSetting.id.asc()).first() if db is not None else None

    if row is None:
        return BusinessSettings(business_hours=business_hours)

    if row.working_hours_start and row.working_hours_end:
        business_hours = TimeRange.parse(row.working_hours_start, row.working_hours_end)

    return BusinessSettings(
        slot_duration=row.slot_duration_minutes or config.SLOT_DURATION_MINUTES,
        timezone=row.timezone or config.BUSINESS_TIMEZONE,
        max_advance_days=row.max_advance_days or config.MAX_ADVANCE_BOOKING_DAYS,
        min_notice_minutes=(
            row.min_notice_minutes if row.min_notice_minutes is not None else config.MIN_NOTICE_MINUTES
        ),
        business_hours=business_hours,
    )
