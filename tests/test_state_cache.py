"""Tests for the in-memory application state cache."""

from datetime import date

import pytest

from certsync.schemas import Category, CertificateStatus
from certsync.state import CertificateStateCache
from certsync.sync.service import SyncService


@pytest.fixture
def cache(store) -> CertificateStateCache:
    """Offline cache over a real local store."""
    cache = CertificateStateCache(SyncService(store, None))
    cache.initialize()
    return cache


def test_initialize_loads_sorted_by_expiry(store, make_certificate):
    """Test certificates load on initialize, soonest expiry first."""
    later = make_certificate(name="Later", expiry_date=date(2030, 1, 1))
    sooner = make_certificate(name="Sooner", expiry_date=date(2026, 1, 1))
    store.save_certificate(later)
    store.save_certificate(sooner)

    cache = CertificateStateCache(SyncService(store, None))
    cache.initialize()

    assert cache.is_initialized
    assert [c.name for c in cache.certificates] == ["Sooner", "Later"]


def test_add_certificate(cache, store, make_certificate):
    """Test added certificates are visible in state and in the store."""
    cert = make_certificate()

    cache.add_certificate(cert, b"%PDF")

    assert cache.get_certificate(cert.id).name == cert.name
    assert store.get_certificate_file(cert.id) == b"%PDF"


def test_update_certificate(cache, store, make_certificate):
    """Test updates persist and refresh the viewed certificate."""
    cert = cache.add_certificate(make_certificate())
    cache.set_current_viewing(cert)

    updated = cache.update_certificate(cert.id, name="Advanced Fire Fighting")

    assert updated.name == "Advanced Fire Fighting"
    assert store.get_certificate(cert.id).name == "Advanced Fire Fighting"
    assert cache.current_viewing.name == "Advanced Fire Fighting"
    assert len(cache.certificates) == 1


def test_update_certificate_rejects_id_change(cache, make_certificate):
    """Test id is immutable."""
    cert = cache.add_certificate(make_certificate())

    with pytest.raises(ValueError):
        cache.update_certificate(cert.id, id="other")
    with pytest.raises(KeyError):
        cache.update_certificate("missing", name="x")


def test_selection(cache, make_certificate):
    """Test toggling and clearing selection."""
    first = cache.add_certificate(make_certificate(name="First"))
    second = cache.add_certificate(make_certificate(name="Second"))

    cache.toggle_selection(first.id)
    cache.toggle_selection(second.id)
    assert [c.id for c in cache.get_selected_certificates()] == [first.id, second.id]

    cache.toggle_selection(first.id)
    assert cache.selected_ids == [second.id]

    cache.clear_selection()
    assert cache.selected_ids == []


def test_delete_clears_selection_and_view(cache, store, make_certificate):
    """Test deleting the viewed, selected certificate resets both."""
    cert = cache.add_certificate(make_certificate())
    cache.toggle_selection(cert.id)
    cache.set_current_viewing(cert)

    cache.delete_certificate(cert.id)

    assert cache.certificates == []
    assert cache.selected_ids == []
    assert cache.current_viewing is None
    assert store.get_certificate(cert.id) is None


def test_by_category(cache, make_certificate):
    """Test category filter."""
    cache.add_certificate(make_certificate(name="BST", category=Category.GWO))
    cache.add_certificate(make_certificate(name="BFF", category=Category.STCW))

    assert [c.name for c in cache.get_certificates_by_category(Category.GWO)] == ["BST"]
    assert [c.name for c in cache.get_certificates_by_category("STCW")] == ["BFF"]
    assert cache.get_certificates_by_category(Category.OPITO) == []


def test_statistics_derived_from_expiry(cache, make_certificate):
    """Test statistics ignore the stale cached status."""
    today = date(2025, 6, 1)
    cache.add_certificate(make_certificate(expiry_date=date(2024, 6, 15), status="valid"))
    cache.add_certificate(make_certificate(expiry_date=date(2025, 6, 20)))
    cache.add_certificate(make_certificate(expiry_date=date(2028, 1, 15)))

    assert cache.get_statistics(today) == {"valid": 1, "expired": 1, "upcoming": 1}


def test_subscribe_and_unsubscribe(cache, make_certificate):
    """Test listeners see changes until they unsubscribe."""
    calls = []
    unsubscribe = cache.subscribe(lambda state: calls.append(len(state.certificates)))

    cache.add_certificate(make_certificate())
    assert calls == [1]

    unsubscribe()
    cache.add_certificate(make_certificate())
    assert calls == [1]


def test_refresh_after_sync(store, mock_remote, make_remote_certificate):
    """Test a sync that downloads records refreshes state."""
    service = SyncService(store, mock_remote)
    cache = CertificateStateCache(service)
    cache.initialize(start_scheduler=False)
    assert cache.certificates == []

    mock_remote.fetch_certificates_since.return_value = [
        make_remote_certificate("cert-remote", name="OPITO BOSIET", category="OPITO")
    ]
    service.sync()

    assert [c.name for c in cache.certificates] == ["OPITO BOSIET"]


def test_initialize_twice_registers_one_listener(store, mock_remote, make_remote_certificate):
    """Test repeat initialize does not refresh twice per sync."""
    service = SyncService(store, mock_remote)
    cache = CertificateStateCache(service)
    cache.initialize(start_scheduler=False)
    cache.initialize(start_scheduler=False)
    calls = []
    cache.subscribe(lambda state: calls.append(len(state.certificates)))

    mock_remote.fetch_certificates_since.return_value = [make_remote_certificate("cert-remote")]
    service.sync()

    assert calls == [1]
    mock_remote.get_current_user.assert_called_once()


def test_update_expiry_rederives_status(cache, make_certificate):
    """Test changing the expiry date refreshes the cached status hint."""
    cert = cache.add_certificate(
        make_certificate(expiry_date=date(2099, 1, 1), status="valid")
    )

    updated = cache.update_certificate(cert.id, expiry_date=date(2000, 1, 1))

    assert updated.status == CertificateStatus.EXPIRED
    assert cache.update_certificate(cert.id, name="Renamed").status == CertificateStatus.EXPIRED
