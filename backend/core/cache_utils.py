"""
Caching utilities for computed figures
Uses the default Django cache (Redis in production, local memory otherwise)

Project totals are cached under a per-project version number. Invalidation
bumps the version, so a reader that computed its figures before a price
change committed stores them under a key nobody reads anymore.
"""
from django.core.cache import cache
import hashlib
import logging
import time

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
PROJECT_TOTALS_CACHE_TTL = 300  # 5 minutes

PROJECT_TOTALS_PREFIX = "project_totals"
PROJECT_TOTALS_VERSION_PREFIX = "project_totals_version"


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    # Convert args and kwargs to a stable string representation
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def _version_key(project_id):
    return f"{PROJECT_TOTALS_VERSION_PREFIX}:{int(project_id)}"


def _fresh_version():
    # Never reuses a number from before an eviction of the version key
    return time.time_ns()


def project_totals_version(project_id):
    key = _version_key(project_id)
    version = cache.get(key)
    if version is None:
        cache.add(key, _fresh_version(), None)
        version = cache.get(key)
    return version


def project_totals_cache_key(project_id):
    return make_cache_key(PROJECT_TOTALS_PREFIX, int(project_id), project_totals_version(project_id))


def get_cached_project_totals(project_id):
    """
    Get cached totals of a project
    Returns tuple: (cached_data, cache_key)
    The key is bound to the version current at call time: pass it back to
    cache_project_totals once the figures are computed.
    """
    cache_key = project_totals_cache_key(project_id)
    cached_data = cache.get(cache_key)
    if cached_data is not None:
        logger.debug(f"Cache HIT for {PROJECT_TOTALS_PREFIX}: project {project_id}")
    return cached_data, cache_key


def cache_project_totals(cache_key, data, ttl=None):
    """Cache totals of a project"""
    cache.set(cache_key, data, ttl or PROJECT_TOTALS_CACHE_TTL)
    logger.debug(f"Cached project totals: {cache_key}")


def bump_project_totals_version(project_id):
    key = _version_key(project_id)
    try:
        return cache.incr(key)
    except ValueError:
        # Version key missing or evicted
        version = _fresh_version()
        cache.set(key, version, None)
        return version


def invalidate_project_totals(project_ids):
    """Drop cached totals of the given projects"""
    project_ids = {int(pid) for pid in project_ids if pid is not None}
    if not project_ids:
        return
    try:
        for project_id in project_ids:
            bump_project_totals_version(project_id)
        logger.info(f"Invalidated cached totals of {len(project_ids)} project(s)")
    except Exception as e:
        logger.warning(f"Could not invalidate project totals cache: {str(e)}")
