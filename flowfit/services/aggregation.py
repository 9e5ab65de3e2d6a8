"""
flowfit/services/aggregation.py

Collapses raw step samples into one total per UTC calendar date.

Dates are taken from the UTC-normalised start instant, never from the device
timezone or the sample's own offset, so a sample recorded at 23:30-05:00 counts
towards the following UTC day regardless of where the device is.
"""

import math
from collections import defaultdict
from datetime import date, timezone
from typing import Iterable

from flowfit.schemas import DailyStepRecord, RawActivitySample


def aggregate_steps_per_day(
    samples: Iterable[RawActivitySample],
) -> list[DailyStepRecord]:
    """
    Sum sample values per UTC date and return records in ascending date order.

    Values are summed as given; validation is the caller's job. math.fsum keeps
    fractional totals independent of input order.
    """
    per_date: dict[date, list[float]] = defaultdict(list)

    for sample in samples:
        day = sample.start_instant.astimezone(timezone.utc).date()
        per_date[day].append(sample.value)

    return [
        DailyStepRecord(date_utc=day, total_steps=math.fsum(values))
        for day, values in sorted(per_date.items())
    ]
