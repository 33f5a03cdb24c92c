"""Tests for the ingestion pipeline."""

import pytest

from conftest import FakeFetcher, raw

from cotton_finder.config import DEFAULT_TARGET_COUNTS
from cotton_finder.errors import IngestionError
from cotton_finder.models import RawProductData
from cotton_finder.pipeline import (
    CategoryTarget,
    IngestionPipeline,
    IngestionResult,
    SearchTarget,
    UrlListTarget,
    resolve_search_query,
    site_search_term,
    targets_from_counts,
)
from cotton_finder.shutdown import CancellationToken


def _url(slug: str, gender: str = "woman") -> str:
    return f"https://www.zara.com/ca/en/{gender}/{slug}.html"


def _pipeline(fetcher, sleep, **kwargs) -> IngestionPipeline:
    return IngestionPipeline(fetcher, sleep=sleep, **kwargs)


class TestCategoryRuns:
    """Tests for CategoryTarget runs."""

    def test_overfetches_and_stops_at_count(self, no_sleep):
        urls = [_url(f"tee-p{i}") for i in range(1, 10)]
        fetcher = FakeFetcher(
            pages={u: raw(f"Tee {i}") for i, u in enumerate(urls)},
            listings={("tops", "female"): urls},
        )

        result = _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 3))

        assert fetcher.discover_calls == [("tops", "female", 6)]
        assert len(result.accepted) == 3
        assert fetcher.fetched == urls[:3]

    def test_below_threshold_is_skipped(self, no_sleep):
        urls = [_url("blend-p1"), _url("tee-p2"), _url("poly-p3")]
        fetcher = FakeFetcher(
            pages={
                urls[0]: raw("Blend Tee", materials="60% cotton, 40% polyester"),
                urls[1]: raw("Cotton Tee", materials="95% cotton, 5% elastane"),
                urls[2]: raw("Poly Tee", materials="100% polyester"),
            },
            listings={("tops", "female"): urls},
        )

        result = _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 5))

        assert [p.name for p in result.accepted] == ["Cotton Tee"]
        assert result.skipped == 2
        assert result.failed == 0
        assert all(not p.is_curated for p in result.accepted)

    def test_failures_are_counted_not_raised(self, no_sleep):
        urls = [_url("a-p1"), _url("b-p2"), _url("c-p3"), _url("d-p4")]
        fetcher = FakeFetcher(
            pages={
                urls[0]: RuntimeError("connection reset"),
                urls[1]: None,
                urls[2]: raw("Unknown Product"),
                urls[3]: raw("Cotton Tee"),
            },
            listings={("tops", "female"): urls},
        )

        result = _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 2))

        assert result.failed == 3
        assert [p.name for p in result.accepted] == ["Cotton Tee"]
        assert result.attempted == 4

    def test_malformed_page_data_is_counted_not_raised(self, no_sleep):
        urls = [_url("a-p1"), _url("b-p2"), _url("c-p3")]
        fetcher = FakeFetcher(
            pages={
                urls[0]: RawProductData(name=["Cotton Tee"], materials="100% cotton"),
                urls[1]: RawProductData(name="Cotton Tee", price="n/a", sizes="M", materials="100% cotton"),
                urls[2]: RawProductData(name="Poplin Shirt", materials={"cotton": 100}),
            },
            listings={("tops", "female"): urls},
        )

        result = _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 3))

        assert [p.url for p in result.accepted] == [urls[1]]
        assert result.accepted[0].price is None
        assert result.accepted[0].sizes_available == ["M"]
        assert result.failed == 2

    def test_all_failed_raises_with_result(self, no_sleep):
        urls = [_url("a-p1"), _url("b-p2")]
        fetcher = FakeFetcher(pages={}, listings={("tops", "female"): urls})

        with pytest.raises(IngestionError) as exc_info:
            _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 2))

        assert exc_info.value.result.failed == 2
        assert exc_info.value.result.accepted == []

    def test_empty_listing_is_not_an_error(self, no_sleep):
        fetcher = FakeFetcher()
        result = _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 2))
        assert result.attempted == 0

    def test_discovery_error_gives_empty_result(self, no_sleep):
        fetcher = FakeFetcher()

        def broken(*args, **kwargs):
            raise RuntimeError("listing down")

        fetcher.discover_product_urls = broken
        result = _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 2))
        assert result.attempted == 0

    def test_zero_count_does_nothing(self, no_sleep):
        fetcher = FakeFetcher(listings={("tops", "female"): [_url("a-p1")]})
        result = _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 0))
        assert result.attempted == 0
        assert fetcher.discover_calls == []


class TestThrottlingAndSessions:
    """Tests for per-run session reuse and fetch delays."""

    def test_delay_between_fetches_only(self, no_sleep):
        urls = [_url(f"tee-p{i}") for i in range(1, 5)]
        fetcher = FakeFetcher(
            pages={u: raw("Cotton Tee") for u in urls},
            listings={("tops", "female"): urls},
        )

        _pipeline(fetcher, no_sleep, delay_range=(1.0, 2.0)).run(CategoryTarget("tops", "female", 4))

        assert len(no_sleep.calls) == 3
        assert all(1.0 <= d <= 2.0 for d in no_sleep.calls)

    def test_zero_delay_never_sleeps(self, no_sleep):
        urls = [_url(f"tee-p{i}") for i in range(1, 4)]
        fetcher = FakeFetcher(
            pages={u: raw("Cotton Tee") for u in urls},
            listings={("tops", "female"): urls},
        )
        _pipeline(fetcher, no_sleep, delay_range=(0, 0)).run(CategoryTarget("tops", "female", 3))
        assert no_sleep.calls == []

    def test_curated_runs_use_curated_delay(self, no_sleep):
        urls = [_url("a-p1"), _url("b-p2")]
        fetcher = FakeFetcher(pages={u: raw("Cotton Tee") for u in urls})
        pipeline = _pipeline(fetcher, no_sleep, delay_range=(0, 0), curated_delay_range=(5.0, 6.0))

        pipeline.run(UrlListTarget({"tops": urls}))

        assert len(no_sleep.calls) == 1
        assert 5.0 <= no_sleep.calls[0] <= 6.0

    def test_one_session_per_run(self, no_sleep):
        urls = [_url(f"tee-p{i}") for i in range(1, 4)]
        fetcher = FakeFetcher(
            pages={u: raw("Cotton Tee") for u in urls},
            listings={("tops", "female"): urls},
        )

        _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 3))

        assert fetcher.sessions_opened == 1
        assert fetcher.sessions_closed == 1

    def test_session_closed_when_run_raises(self, no_sleep):
        fetcher = FakeFetcher(pages={}, listings={("tops", "female"): [_url("a-p1")]})
        with pytest.raises(IngestionError):
            _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 1))
        assert fetcher.sessions_closed == 1


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_cancel_returns_partial_result(self, no_sleep):
        urls = [_url(f"tee-p{i}") for i in range(1, 6)]
        fetcher = FakeFetcher(
            pages={u: raw("Cotton Tee") for u in urls},
            listings={("tops", "female"): urls},
        )
        token = CancellationToken()

        def cancel_after_second(url):
            if url == urls[1]:
                token.cancel()

        fetcher.on_fetch = cancel_after_second
        result = _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 5), token)

        assert result.cancelled is True
        assert len(result.accepted) == 2
        assert fetcher.fetched == urls[:2]

    def test_cancelled_failures_do_not_raise(self, no_sleep):
        urls = [_url("a-p1"), _url("b-p2")]
        fetcher = FakeFetcher(pages={}, listings={("tops", "female"): urls})
        token = CancellationToken()
        fetcher.on_fetch = lambda url: token.cancel()

        result = _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 2), token)

        assert result.cancelled is True
        assert result.failed == 1

    def test_already_cancelled_fetches_nothing(self, no_sleep):
        fetcher = FakeFetcher(
            pages={_url("a-p1"): raw("Cotton Tee")},
            listings={("tops", "female"): [_url("a-p1")]},
        )
        token = CancellationToken()
        token.cancel()

        result = _pipeline(fetcher, no_sleep).run(CategoryTarget("tops", "female", 1), token)

        assert fetcher.fetched == []
        assert result.cancelled is True


class TestUrlListRuns:
    """Tests for curated URL list runs."""

    def test_one_failure_among_many(self, no_sleep):
        urls = [f"https://www.zara.com/ca/en/item-p{i}.html" for i in range(1, 6)]
        pages = {u: raw(f"Cotton Shirt {i}") for i, u in enumerate(urls)}
        pages[urls[2]] = None
        fetcher = FakeFetcher(pages=pages)

        result = _pipeline(fetcher, no_sleep).run(UrlListTarget({"tops": urls}))

        assert len(result.accepted) == 4
        assert result.failed == 1

    def test_curated_accepted_regardless_of_cotton(self, no_sleep):
        url = "https://www.zara.com/ca/en/joggers-p1.html"
        fetcher = FakeFetcher(pages={url: raw("Interlock Joggers", materials="60% cotton, 40% polyester")})

        result = _pipeline(fetcher, no_sleep).run(UrlListTarget({"pants": [url]}))

        product = result.accepted[0]
        assert product.is_curated is True
        assert product.category == "pants"
        assert product.cotton_percentage == 60

    def test_name_overrides_bucket(self, no_sleep):
        url = "https://www.zara.com/ca/en/slim-jeans-p02005706.html"
        fetcher = FakeFetcher(pages={url: raw("Slim Jeans")})

        result = _pipeline(fetcher, no_sleep).run(UrlListTarget({"skirts": [url]}))

        assert result.accepted[0].category == "pants"

    def test_bucket_used_when_name_has_no_signal(self, no_sleep):
        url = "https://www.zara.com/ca/en/palazzo-p1.html"
        fetcher = FakeFetcher(pages={url: raw("Soft Touch Palazzo")})

        result = _pipeline(fetcher, no_sleep).run(UrlListTarget({"Trousers": [url]}))

        assert result.accepted[0].category == "pants"

    def test_urls_are_canonicalized_before_fetch(self, no_sleep):
        canonical = "https://www.zara.com/ca/en/basic-cotton-t-shirt-p03253320.html"
        fetcher = FakeFetcher(pages={canonical: raw("Basic Cotton T-Shirt")})

        result = _pipeline(fetcher, no_sleep).run(UrlListTarget({"tops": [canonical + "?v1=506473367"]}))

        assert fetcher.fetched == [canonical]
        assert result.accepted[0].url == canonical

    def test_bad_image_url_does_not_abort_batch(self, no_sleep):
        good = "https://www.zara.com/ca/en/tee-p1.html"
        bad_images = "https://www.zara.com/ca/en/tee-p2.html"
        broken = "https://www.zara.com/ca/en/tee-p3.html"
        pages = {
            good: raw("Cotton Tee"),
            bad_images: RawProductData(
                name="Cotton Polo", materials="100% cotton", images=["http://[broken/x.jpg"]
            ),
            broken: RawProductData(name="Cotton Shirt", materials=["100% cotton"]),
        }
        fetcher = FakeFetcher(pages=pages)

        result = _pipeline(fetcher, no_sleep).run(UrlListTarget({"tops": [good, bad_images, broken]}))

        assert [p.name for p in result.accepted] == ["Cotton Tee", "Cotton Polo"]
        assert result.accepted[1].images == []
        assert result.failed == 1

    def test_malformed_curated_url_is_counted(self, no_sleep):
        good = "https://www.zara.com/ca/en/tee-p1.html"
        fetcher = FakeFetcher(pages={good: raw("Cotton Tee")})

        result = _pipeline(fetcher, no_sleep).run(UrlListTarget({"tops": ["http://[broken/tee-p9.html", good]}))

        assert [p.url for p in result.accepted] == [good]
        assert result.failed == 1
        assert fetcher.fetched == [good]


class TestSearchRuns:
    """Tests for SearchTarget resolution and runs."""

    def test_tshirt_query_splits_across_genders(self):
        targets = resolve_search_query("cotton t-shirt", 10)
        assert targets == [
            CategoryTarget("tshirts", "male", 5),
            CategoryTarget("tshirts", "female", 5),
        ]

    @pytest.mark.parametrize("query", ["tee", "Tees", "white tee"])
    def test_tee_terms(self, query):
        assert {t.category for t in resolve_search_query(query, 4)} == {"tshirts"}

    def test_shirt_query(self):
        assert {t.category for t in resolve_search_query("linen shirt", 4)} == {"shirts"}

    def test_dress_query_is_female_only(self):
        assert resolve_search_query("summer dress", 10) == [CategoryTarget("dresses", "female", 10)]

    def test_pants_query(self):
        targets = resolve_search_query("wide trousers", 6)
        assert targets == [CategoryTarget("pants", "male", 3), CategoryTarget("pants", "female", 3)]

    def test_unmatched_query_samples_default_categories(self):
        targets = resolve_search_query("something cozy", 10)
        assert targets == [
            CategoryTarget("shirts", "male", 2),
            CategoryTarget("shirts", "female", 2),
            CategoryTarget("pants", "male", 2),
            CategoryTarget("pants", "female", 2),
            CategoryTarget("dresses", "female", 4),
        ]

    def test_search_run_stops_at_limit(self, no_sleep):
        male = [_url(f"tee-p{i}", "man") for i in range(1, 10)]
        female = [_url(f"tee-p{i}") for i in range(10, 20)]
        pages = {u: raw("Cotton Tee") for u in male + female}
        fetcher = FakeFetcher(
            pages=pages,
            listings={("tshirts", "male"): male, ("tshirts", "female"): female},
        )

        result = _pipeline(fetcher, no_sleep).run(SearchTarget("tee", limit=4))

        assert len(result.accepted) == 4
        assert {p.gender for p in result.accepted} == {"male", "female"}
        assert fetcher.sessions_opened == 1

    @pytest.mark.parametrize("query,expected", [
        ("cotton", "cotton"),
        ("100% Cotton", "cotton"),
        ("organic cotton clothes", "cotton"),
        ("cotton t-shirt", None),
        ("linen", None),
    ])
    def test_site_search_term(self, query, expected):
        assert site_search_term(query) == expected

    def test_cotton_query_uses_site_search_sections(self, no_sleep):
        woman = [_url(f"tee-p{i}") for i in range(1, 6)]
        man = [_url(f"tee-p{i}", "man") for i in range(10, 15)]
        pages = {u: raw("Cotton Tee") for u in woman + man}
        pages[woman[0]] = raw("Blend Tee", materials="60% cotton, 40% polyester")
        fetcher = FakeFetcher(
            pages=pages,
            searches={("cotton", "WOMAN"): woman, ("cotton", "MAN"): man},
        )

        result = _pipeline(fetcher, no_sleep).run(SearchTarget("cotton", limit=4))

        assert fetcher.search_calls == [("cotton", "WOMAN", 8), ("cotton", "MAN", 8)]
        assert fetcher.discover_calls == []
        assert [p.url for p in result.accepted] == woman[1:3] + man[:2]
        assert result.skipped == 1

    def test_empty_site_search_falls_back_to_categories(self, no_sleep):
        shirts = [_url("shirt-p1")]
        fetcher = FakeFetcher(
            pages={shirts[0]: raw("Cotton Shirt")},
            listings={("shirts", "female"): shirts},
        )

        result = _pipeline(fetcher, no_sleep).run(SearchTarget("cotton", limit=3))

        assert len(fetcher.search_calls) == 2
        assert fetcher.discover_calls
        assert [p.url for p in result.accepted] == shirts


class TestTargetsAndResults:
    """Tests for target building and result aggregation."""

    def test_default_counts(self):
        targets = targets_from_counts(DEFAULT_TARGET_COUNTS)
        assert len(targets) == 11
        assert CategoryTarget("dresses", "female", 10) in targets
        assert CategoryTarget("shirts", "male", 5) in targets

    def test_zero_counts_dropped(self):
        assert targets_from_counts({"male_shirts": 0, "female_tops": 2}) == [
            CategoryTarget("tops", "female", 2),
        ]

    def test_by_category(self, no_sleep):
        urls = [
            "https://www.zara.com/ca/en/man/linen-shirt-p1.html",
            "https://www.zara.com/ca/en/woman/poplin-shirt-p2.html",
            "https://www.zara.com/ca/en/woman/midi-skirt-p3.html",
        ]
        fetcher = FakeFetcher(pages={
            urls[0]: raw("Linen Shirt"),
            urls[1]: raw("Poplin Shirt"),
            urls[2]: raw("Midi Skirt"),
        })
        result = _pipeline(fetcher, no_sleep).run(UrlListTarget({"tops": urls}))

        assert result.by_category() == {"female_skirts": 1, "female_tops": 1, "male_tops": 1}

    def test_merge(self):
        total = IngestionResult(skipped=1)
        total.merge(IngestionResult(failed=2, cancelled=True))
        assert (total.skipped, total.failed, total.cancelled) == (1, 2, True)

    def test_run_many_continues_after_failed_target(self, no_sleep):
        fetcher = FakeFetcher(
            pages={_url("tee-p2"): raw("Cotton Tee")},
            listings={
                ("shirts", "female"): [_url("bad-p1")],
                ("tops", "female"): [_url("tee-p2")],
            },
        )

        result = _pipeline(fetcher, no_sleep).run_many([
            CategoryTarget("shirts", "female", 1),
            CategoryTarget("tops", "female", 1),
        ])

        assert len(result.accepted) == 1
        assert result.failed == 1

    def test_run_many_raises_when_everything_failed(self, no_sleep):
        fetcher = FakeFetcher(listings={
            ("shirts", "female"): [_url("bad-p1")],
            ("tops", "female"): [_url("bad-p2")],
        })
        with pytest.raises(IngestionError) as exc_info:
            _pipeline(fetcher, no_sleep).run_many([
                CategoryTarget("shirts", "female", 1),
                CategoryTarget("tops", "female", 1),
            ])
        assert exc_info.value.result.failed == 2
