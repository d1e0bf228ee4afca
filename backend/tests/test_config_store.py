from datetime import datetime, timedelta
from pathlib import Path

import pytest

from devwp.core.database import Base, create_session_factory
from devwp.core.errors import StoreError
from devwp.modules.sites.schemas import Multisite, SiteRecord
from devwp.system.config_store import ConfigStore


@pytest.fixture
def store():
    engine, SessionLocal = create_session_factory("sqlite://")
    store = ConfigStore(engine, SessionLocal)
    store.initialize()
    yield store
    engine.dispose()


def test_initialize_seeds_defaults(store):
    settings = store.list_settings()

    assert settings["webroot_path"] == str(Path.home() / "www")
    assert settings["xdebug_enabled"] == "false"


def test_initialize_keeps_existing_values(store):
    store.save_setting("webroot_path", "/srv/www")
    store.initialize()

    assert store.get_setting("webroot_path") == "/srv/www"


def test_site_round_trip(store):
    now = datetime(2024, 5, 1, 12, 30, 15)
    site = SiteRecord(
        domain="demo.test",
        aliases="www.demo.test shop.demo.test",
        web_root="public",
        multisite=Multisite(enabled=True, type="subdirectory"),
        created_at=now,
        updated_at=now,
    )

    store.save_site(site)

    assert store.get_site("demo.test") == site


def test_disabled_multisite_reads_back_as_absent(store):
    store.save_site(SiteRecord(domain="plain.test", multisite=Multisite(enabled=False, type="subdomain")))

    site = store.get_site("plain.test")
    assert site.multisite is None
    assert site.aliases is None
    assert site.web_root is None


def test_save_site_is_upsert(store):
    created = datetime(2024, 1, 1)
    store.save_site(SiteRecord(domain="demo.test", aliases="a.test", created_at=created))
    store.save_site(SiteRecord(domain="demo.test", aliases="b.test"))

    sites = store.list_sites()
    assert len(sites) == 1
    assert sites[0].aliases == "b.test"
    assert sites[0].created_at == created


def test_list_sites_ordered_by_creation(store):
    base = datetime(2024, 1, 1)
    store.save_site(SiteRecord(domain="c.test", created_at=base + timedelta(days=2)))
    store.save_site(SiteRecord(domain="a.test", created_at=base + timedelta(days=1)))
    store.save_site(SiteRecord(domain="b.test", created_at=base))

    assert [s.domain for s in store.list_sites()] == ["b.test", "a.test", "c.test"]


def test_delete_site(store):
    store.save_site(SiteRecord(domain="demo.test"))

    store.delete_site("demo.test")

    assert store.get_site("demo.test") is None
    store.delete_site("demo.test")


def test_quotes_are_stored_verbatim(store):
    store.save_setting("a'b", "c'd")

    assert store.get_setting("a'b") == "c'd"
    assert store.list_settings()["a'b"] == "c'd"


def test_setting_upsert_and_delete(store):
    store.save_setting("theme", "dark")
    store.save_setting("theme", "light")
    assert store.get_setting("theme") == "light"

    store.delete_setting("theme")
    assert store.get_setting("theme") is None


def test_store_failure_raises_store_error(store):
    Base.metadata.drop_all(bind=store.engine)

    with pytest.raises(StoreError) as exc:
        store.save_site(SiteRecord(domain="demo.test"))
    assert "no such table" in exc.value.diagnostic


def test_well_known_settings_fall_back_on_failure(store):
    Base.metadata.drop_all(bind=store.engine)

    assert store.get_webroot_path() == str(Path.home() / "www")
    assert store.get_xdebug_enabled() is False


def test_xdebug_flag_parsing(store):
    store.save_setting("xdebug_enabled", "true")
    assert store.get_xdebug_enabled() is True

    store.save_setting("xdebug_enabled", "yes")
    assert store.get_xdebug_enabled() is False


def test_migrate_existing_sites(store, tmp_path):
    for name in ("old.test", "known.test", ".git", ".cache"):
        (tmp_path / name).mkdir()
    (tmp_path / "notes.txt").write_text("not a site")
    store.save_site(SiteRecord(domain="known.test", aliases="www.known.test"))

    migrated = store.migrate_existing_sites(str(tmp_path))

    assert migrated == ["old.test"]
    assert store.get_site("old.test").domain == "old.test"
    assert store.get_site("known.test").aliases == "www.known.test"
    assert store.migrate_existing_sites(str(tmp_path)) == []


def test_migrate_without_webroot(store, tmp_path):
    assert store.migrate_existing_sites(str(tmp_path / "missing")) == []
