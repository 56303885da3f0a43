"""Plain helpers shared by the test modules"""
from datetime import date, datetime, time, timedelta

from clinicdesk.models.doctor_schedule import day_of_week_for
from clinicdesk.services import ActorContext

MONDAY = 1


def next_weekday(day_of_week, weeks_ahead=1):
    """A date strictly in the future falling on day_of_week (0 = Sunday)"""
    start = date.today() + timedelta(days=1)
    offset = (day_of_week - day_of_week_for(start)) % 7
    return start + timedelta(days=offset + 7 * (weeks_ahead - 1))


def at(on_date, hhmm):
    hour, minute = (int(part) for part in hhmm.split(':'))
    return datetime.combine(on_date, time(hour, minute))


def actor(user):
    return ActorContext.from_user(user)
