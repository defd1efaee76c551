"""
Unit tests for sync support services (cache, audit, security, performance).
"""
import pytest

from apps.worker.services.audit import AuditService
from apps.worker.services.cache import CacheService, sync_cache_key
from apps.worker.services.performance import PerformanceMonitor
from apps.worker.services.security import AccessDenied, SecurityService


class _Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_cache_expires_after_ttl():
    clock = _Clock()
    cache = CacheService(default_ttl=300, clock=clock)
    cache.set(sync_cache_key("p1"), "value")
    clock.now += 299
    assert cache.get("emr-sync:p1") == "value"
    clock.now += 1
    assert cache.get("emr-sync:p1") is None


def test_cache_per_entry_ttl():
    clock = _Clock()
    cache = CacheService(default_ttl=5, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=10)
    clock.now += 6
    assert cache.get("a") is None
    assert cache.get("b") == 2


def test_audit_is_bounded_and_filterable():
    audit = AuditService(max_entries=3)
    for i in range(5):
        audit.record("emr_sync", f"p{i % 2}", outcome="success")
    assert len(audit.entries()) == 3
    assert [e.patient_id for e in audit.entries("p0")] == ["p0", "p0"]


def test_security_roles():
    security = SecurityService()
    security.validate_access("p1", role="nurse")
    with pytest.raises(AccessDenied):
        security.validate_access("p1", role="billing_clerk")


def test_security_blocks_cross_facility():
    with pytest.raises(AccessDenied):
        SecurityService().validate_access("p1", role="nurse", facility_id="f1", patient_facility_id="f2")


def test_data_hash_is_order_independent():
    a = SecurityService.data_hash({"x": 1, "y": [1, 2]})
    b = SecurityService.data_hash({"y": [1, 2], "x": 1})
    assert a == b
    assert len(a) == 64
    assert a != SecurityService.data_hash({"x": 2, "y": [1, 2]})


def test_performance_spans():
    perf = PerformanceMonitor()
    with perf.span("health_check"):
        pass
    with perf.span("health_check"):
        pass
    snapshot = perf.snapshot()
    assert "health_check" in snapshot
    assert snapshot["health_check"] >= 0
