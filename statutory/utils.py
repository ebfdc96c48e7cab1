# statutory/utils.py
from datetime import timedelta

from dateutil.relativedelta import relativedelta
from django.utils import timezone

# frequency -> offsets from the start date, one per charge
FREQUENCY_OFFSETS = {
    'monthly': [relativedelta(months=i) for i in range(1, 13)],
    'quarterly': [relativedelta(months=3 * i) for i in range(1, 5)],
    'bi_annually': [relativedelta(months=6 * i) for i in range(1, 3)],
    'annually': [relativedelta(years=i) for i in range(1, 4)],
    'one_time': [timedelta(days=30)],
}


def start_of_day(value):
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def default_description(frequency, charge_type, index, due_date):
    if frequency == 'monthly':
        return f"Monthly {charge_type} - {due_date:%B %Y}"
    if frequency == 'quarterly':
        return f"Quarterly {charge_type} - Q{index + 1} {due_date:%Y}"
    if frequency == 'bi_annually':
        return f"Bi-annual {charge_type} - {due_date:%B %Y}"
    if frequency == 'annually':
        return f"Annual {charge_type} - {due_date:%Y}"
    return ''


def expand_due_dates(frequency, start=None):
    """
    Due dates for a charge of the given frequency.

    Returns one dict per charge with `due_date` (start of day) and `status`;
    the first charge is approved straight away, the rest wait for review.
    Unknown frequencies are treated as one-time charges.
    """
    start = timezone.localtime(start or timezone.now())
    offsets = FREQUENCY_OFFSETS.get(frequency, FREQUENCY_OFFSETS['one_time'])
    return [
        {
            'due_date': start_of_day(start + offset),
            'status': 'approved' if index == 0 else 'pending',
        }
        for index, offset in enumerate(offsets)
    ]
