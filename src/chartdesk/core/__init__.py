"""Core helpers shared across chartdesk modules."""

from chartdesk.core.utils import (
    combine_date_time,
    format_money,
    new_id,
    parse_calendar_date,
    parse_timestamp,
    to_iso,
    to_money,
)
