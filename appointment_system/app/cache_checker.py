# cache_checker.py
import json
from datetime import timedelta
from .models import Provider
from .slots import available_slots, slots_cache_key
from .dependencies import CACHE_EXPIRY_SECONDS, CACHE_SYNC_DAYS, SLOT_MINUTES, SessionLocal, get_redis_client, utcnow
import logging

logger = logging.getLogger(__name__)


def acquire_lock(redis_client, lock_key, ttl=10):
    return redis_client.set(lock_key, "locked", nx=True, ex=ttl)


def release_lock(redis_client, lock_key):
    redis_client.delete(lock_key)


def compare_time_slots(correct_time_slots, cached_time_slots):
    discrepancies = []
    correct_set = {tuple(sorted(slot.items())) for slot in correct_time_slots}
    cached_set = {tuple(sorted(slot.items())) for slot in cached_time_slots}

    for item in correct_set - cached_set:
        discrepancies.append(f"Missing in cache: {dict(item)}")

    for item in cached_set - correct_set:
        discrepancies.append(f"Unexpected in cache: {dict(item)}")

    return discrepancies


def sync_provider_slots(db, redis_client, provider_id, day, slot_minutes=SLOT_MINUTES):
    """Rewrite one cached slot list if it disagrees with the ledger; returns True when rewritten."""
    cache_key = slots_cache_key(provider_id, day, slot_minutes)
    cached = redis_client.get(cache_key)
    if cached is None:
        return False

    correct_time_slots = [slot._asdict() for slot in available_slots(db, provider_id, day, slot_minutes)]
    diff = compare_time_slots(correct_time_slots, json.loads(cached))
    if not diff:
        return False

    logger.info(f"Discrepancy found for {cache_key}: {diff}")
    redis_client.setex(cache_key, CACHE_EXPIRY_SECONDS, json.dumps(correct_time_slots))
    return True


def check_and_sync_cache(days=CACHE_SYNC_DAYS):
    redis_client = get_redis_client()
    today = utcnow().date()
    db = SessionLocal()

    try:
        providers = db.query(Provider).filter(Provider.is_active.is_(True)).all()

        for provider in providers:
            lock_key = f"lock:provider:{provider.id}:slots"

            if acquire_lock(redis_client, lock_key):
                try:
                    updated = sum(
                        sync_provider_slots(db, redis_client, provider.id, today + timedelta(days=offset))
                        for offset in range(days)
                    )
                    if updated:
                        logger.info(f"Cache updated for provider {provider.id} ({updated} days).")
                    else:
                        logger.info(f"Cache is consistent for provider {provider.id}.")
                finally:
                    release_lock(redis_client, lock_key)
            else:
                logger.info(f"Cache check skipped for provider {provider.id} because another process is running.")
    finally:
        db.close()
