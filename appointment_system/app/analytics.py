"""
Time-windowed rollups over the appointment ledger.

Everything here is a read: callers pass the current time explicitly and the
ledger is never modified. Series are keyed by typed buckets (a ``date`` for
daily granularity, a ``YearMonth`` for monthly) and always emitted in
chronological order of the key, never in string order of the label.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import NamedTuple, Union

from dateutil.relativedelta import relativedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import Appointment, Client, Provider, APPOINTMENT_STATUSES, SESSION_TYPES

logger = logging.getLogger(__name__)

PERIODS = ('week', 'month', 'quarter', 'year')
DEFAULT_PERIOD = 'month'


@dataclass(frozen=True)
class ProviderScope:
    provider_id: int


@dataclass(frozen=True)
class PlatformScope:
    pass


Scope = Union[ProviderScope, PlatformScope]


class YearMonth(NamedTuple):
    year: int
    month: int

    @property
    def label(self):
        return f"{self.year:04d}-{self.month:02d}"


def normalize_period(period):
    return period if period in PERIODS else DEFAULT_PERIOD


def window_start(period, now: datetime) -> datetime:
    period = normalize_period(period)
    if period == 'week':
        return now - timedelta(days=7)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == 'quarter':
        return midnight.replace(month=(now.month - 1) // 3 * 3 + 1, day=1)
    if period == 'year':
        return midnight.replace(month=1, day=1)
    return midnight.replace(day=1)


def bucket_by_month(period):
    return normalize_period(period) in ('quarter', 'year')


def bucket_key(day, by_month):
    if isinstance(day, datetime):
        day = day.date()
    return YearMonth(day.year, day.month) if by_month else day


def bucket_label(key):
    return key.label if isinstance(key, YearMonth) else key.isoformat()


class BucketSeries:
    """Accumulator keyed by bucket; iteration is ordered by key value."""

    def __init__(self):
        self._totals = {}

    def add(self, key, value=1):
        self._totals[key] = self._totals.get(key, 0) + value

    def get(self, key):
        return self._totals.get(key, 0)

    def keys(self):
        return sorted(self._totals)

    def __len__(self):
        return len(self._totals)


def aligned(*series):
    """Sorted union of the keys of several series."""
    keys = set()
    for s in series:
        keys.update(s.keys())
    return sorted(keys)


def _money(value):
    return round(float(value or 0), 2)


def provider_analytics(db: Session, provider_id, period, now: datetime):
    period = normalize_period(period)
    start = window_start(period, now)
    by_month = bucket_by_month(period)

    appointments = db.query(Appointment).filter(
        Appointment.provider_id == provider_id,
        Appointment.date >= start.date()
    ).all()

    earnings = BucketSeries()
    counts = BucketSeries()
    session_types = {}
    for appointment in appointments:
        key = bucket_key(appointment.date, by_month)
        counts.add(key)
        if appointment.status == 'completed':
            earnings.add(key, appointment.amount)
        session_types[appointment.session_type] = session_types.get(appointment.session_type, 0) + 1

    keys = aligned(counts, earnings)
    labels = [bucket_label(k) for k in keys]

    client_ids = {appointment.client_id for appointment in appointments}
    new_clients = 0
    if client_ids:
        first_visits = db.query(Appointment.client_id, func.min(Appointment.date)).filter(
            Appointment.provider_id == provider_id,
            Appointment.client_id.in_(client_ids)
        ).group_by(Appointment.client_id).all()
        new_clients = sum(1 for _, first in first_visits if first >= start.date())

    average_rating = db.query(func.avg(Appointment.rating)).filter(
        Appointment.provider_id == provider_id,
        Appointment.status == 'completed',
        Appointment.rating.isnot(None)
    ).scalar()

    observed_types = [t for t in SESSION_TYPES if t in session_types]

    report = {
        "period": period,
        "start": start.isoformat(),
        "earnings": {
            "labels": labels,
            "data": [_money(earnings.get(k)) for k in keys],
        },
        "appointments": {
            "labels": labels,
            "data": [counts.get(k) for k in keys],
        },
        "clientStats": {
            "totalClients": len(client_ids),
            "newClients": new_clients,
            "returningClients": len(client_ids) - new_clients,
            "averageRating": round(float(average_rating or 0), 2),
        },
        "sessionTypes": {
            "labels": observed_types,
            "data": [session_types[t] for t in observed_types],
        },
        "monthlyTrends": {"labels": [], "appointments": [], "earnings": []},
    }

    if period == 'year':
        monthly_counts = BucketSeries()
        monthly_earnings = BucketSeries()
        for appointment in appointments:
            if appointment.status == 'completed':
                key = bucket_key(appointment.date, by_month=True)
                monthly_counts.add(key)
                monthly_earnings.add(key, appointment.amount)
        months = monthly_counts.keys()
        report["monthlyTrends"] = {
            "labels": [bucket_label(k) for k in months],
            "appointments": [monthly_counts.get(k) for k in months],
            "earnings": [_money(monthly_earnings.get(k)) for k in months],
        }

    logger.info(f"Provider {provider_id} analytics for {period}: {len(appointments)} appointments since {start.date()}")
    return report


def platform_analytics(db: Session, period, now: datetime):
    period = normalize_period(period)
    start = window_start(period, now)
    by_month = bucket_by_month(period)

    created_in_window = db.query(Appointment).filter(Appointment.created_at >= start).all()
    completed_in_window = [a for a in created_in_window if a.status == 'completed']

    platform_stats = {
        "totalUsers": db.query(func.count(Client.id)).scalar(),
        "totalProviders": db.query(func.count(Provider.id)).scalar(),
        "totalAppointments": len(created_in_window),
        "completedAppointments": len(completed_in_window),
        "totalRevenue": _money(sum(a.amount for a in completed_in_window)),
    }

    new_users = BucketSeries()
    for (created_at,) in db.query(Client.created_at).filter(Client.created_at >= start):
        new_users.add(bucket_key(created_at, by_month))
    new_providers = BucketSeries()
    for (created_at,) in db.query(Provider.created_at).filter(Provider.created_at >= start):
        new_providers.add(bucket_key(created_at, by_month))
    growth_keys = aligned(new_users, new_providers)

    revenue = BucketSeries()
    revenue_counts = BucketSeries()
    completed_by_date = db.query(Appointment.date, Appointment.amount).filter(
        Appointment.status == 'completed',
        Appointment.date >= start.date()
    )
    for day, amount in completed_by_date:
        key = bucket_key(day, by_month)
        revenue.add(key, amount)
        revenue_counts.add(key)
    revenue_keys = revenue.keys()

    status_counts = {}
    for appointment in created_in_window:
        status_counts[appointment.status] = status_counts.get(appointment.status, 0) + 1
    observed_statuses = [s for s in APPOINTMENT_STATUSES if s in status_counts]

    provider_counts = {
        "verified": db.query(func.count(Provider.id)).filter(Provider.is_verified.is_(True)).scalar(),
        "pending": db.query(func.count(Provider.id)).filter(Provider.is_verified.is_(False)).scalar(),
        "active": db.query(func.count(Provider.id)).filter(Provider.is_active.is_(True)).scalar(),
        "inactive": db.query(func.count(Provider.id)).filter(Provider.is_active.is_(False)).scalar(),
    }

    return {
        "period": period,
        "start": start.isoformat(),
        "platformStats": platform_stats,
        "userGrowth": {
            "labels": [bucket_label(k) for k in growth_keys],
            "users": [new_users.get(k) for k in growth_keys],
            "providers": [new_providers.get(k) for k in growth_keys],
        },
        "revenueAnalytics": {
            "labels": [bucket_label(k) for k in revenue_keys],
            "revenue": [_money(revenue.get(k)) for k in revenue_keys],
            "appointments": [revenue_counts.get(k) for k in revenue_keys],
        },
        "providerStats": provider_counts,
        "appointmentStatus": {
            "labels": observed_statuses,
            "data": [status_counts[s] for s in observed_statuses],
        },
    }


def analytics(db: Session, scope: Scope, period, now: datetime):
    if isinstance(scope, ProviderScope):
        return provider_analytics(db, scope.provider_id, period, now)
    if isinstance(scope, PlatformScope):
        return platform_analytics(db, period, now)
    raise TypeError(f"Unknown analytics scope: {scope!r}")


def dashboard(db: Session, provider_id, now: datetime):
    month_start = date(now.year, now.month, 1)
    next_month = month_start + relativedelta(months=1)

    base = db.query(Appointment).filter(Appointment.provider_id == provider_id)
    total_earnings = db.query(func.sum(Appointment.amount)).filter(
        Appointment.provider_id == provider_id,
        Appointment.status == 'completed'
    ).scalar()

    return {
        "totalAppointments": base.count(),
        "pendingAppointments": base.filter(Appointment.status == 'pending').count(),
        "completedThisMonth": base.filter(
            Appointment.status == 'completed',
            Appointment.date >= month_start,
            Appointment.date < next_month
        ).count(),
        "totalEarnings": _money(total_earnings),
    }
