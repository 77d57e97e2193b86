# turnos/slot_validator.py

from datetime import datetime, timedelta
from typing import Optional

from turnos.errors import RejectionReason, ValidationRejection
from turnos.scheduling_config import BusinessWindow, SchedulingConfig


def matching_window(start: datetime, config: SchedulingConfig) -> Optional[BusinessWindow]:
    for window in config.windows:
        if window.contains_slot(start, config.duration):
            return window
    return None


def validate_slot(start: datetime, config: SchedulingConfig, now: datetime) -> BusinessWindow:
    """Check the shop-wide rules for a candidate start time.

    Order matters: callers render the first failing reason.
      1. the whole [start, start+duration) fits one business window
      2. the day is a working day
      3. start is further away than the minimum lead time
      4. start is not beyond the maximum advance window, when one is set

    Returns the matched window, raises ValidationRejection otherwise.
    """
    window = matching_window(start, config)
    if window is None:
        raise ValidationRejection(
            RejectionReason.OUTSIDE_BUSINESS_HOURS,
            f"Appointments must fit within business hours: {config.hours_description()} "
            f"(appointments last {config.duration_minutes} minutes)",
        )

    if not config.is_working_day(start):
        raise ValidationRejection(
            RejectionReason.NON_WORKING_DAY,
            "The shop is closed on that day",
        )

    if start <= now + config.min_lead:
        raise ValidationRejection(
            RejectionReason.INSUFFICIENT_LEAD_TIME,
            f"Appointments must be booked at least {config.min_lead_hours:g} hours in advance",
        )

    if config.max_advance_days is not None and start - now > timedelta(days=config.max_advance_days):
        raise ValidationRejection(
            RejectionReason.MAX_ADVANCE_EXCEEDED,
            f"Appointments cannot be booked more than {config.max_advance_days} days ahead",
        )

    return window
