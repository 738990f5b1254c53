"""Tests for the on-disk metadata cache."""

import pytest

from litlink.cache import MetadataCache


@pytest.fixture
def store(tmp_path):
    with MetadataCache(tmp_path / "cache") as cache:
        yield cache


def test_lookup_distinguishes_absent_from_recorded_miss(store):
    assert store.lookup("crossref", "10.1/new") == (False, None)

    store.set_missing("crossref", "10.1/gone")
    store.set("crossref", "10.1/x", {"title": ["A"]})

    assert store.lookup("crossref", "10.1/gone") == (True, None)
    assert store.lookup("crossref", "10.1/x") == (True, {"title": ["A"]})
    assert store.get("crossref", "10.1/gone") is None


def test_params_and_api_are_part_of_the_key(store):
    store.set("crossref", "sepsis", ["a"], params={"rows": 10})
    assert store.get("crossref", "sepsis", params={"rows": 20}) is None
    assert store.get("doaj", "sepsis", params={"rows": 10}) is None
    assert store.get("crossref", "sepsis", params={"rows": 10}) == ["a"]


def test_ttl_per_api(tmp_path):
    with MetadataCache(tmp_path / "c", default_ttl=100, miss_ttl=5, ttls={"pubmed": 10}) as cache:
        cache.set("pubmed", "1", {"pmid": "1"})
        cache.set("crossref", "10.1/x", {})
        cache.set_missing("crossref", "10.1/gone")

        _, pubmed_expire = cache._cache.get(cache._key("pubmed", "1"), expire_time=True)
        _, crossref_expire = cache._cache.get(cache._key("crossref", "10.1/x"), expire_time=True)
        _, miss_expire = cache._cache.get(cache._key("crossref", "10.1/gone"), expire_time=True)

    assert crossref_expire - pubmed_expire == pytest.approx(90, abs=2)
    assert pubmed_expire - miss_expire == pytest.approx(5, abs=2)


def test_clear_one_api_or_everything(store):
    store.set("crossref", "10.1/a", 1)
    store.set_missing("crossref", "10.1/b")
    store.set("pubmed", "7", 2)

    assert store.clear("crossref") == 2
    assert store.get("pubmed", "7") == 2

    assert store.clear() == 1
    assert store.stats()["size"] == 0


def test_stats_counts_hits_and_misses(store):
    store.set("crossref", "10.1/a", 1)
    store.get("crossref", "10.1/a")
    store.get("crossref", "10.1/unknown")

    s = store.stats()

    assert s["size"] == 1
    assert s["hits"] == 1
    assert s["misses"] == 1
    assert s["directory"].endswith("cache")
