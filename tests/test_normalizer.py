"""Tests for RecordNormalizer and ProductRecord."""

from decimal import Decimal

from catalog_scraper.scrapers.base import ProductRecord
from catalog_scraper.scrapers.normalizer import RecordNormalizer

from factories import BASE_URL


def _normalizer():
    return RecordNormalizer(base_url=BASE_URL, default_currency="CAD")


class TestNormalize:
    def test_coerces_a_raw_candidate(self):
        record = _normalizer().normalize({
            "title": "  Classic Shoe  ",
            "brand": "Birkenstock",
            "price": "$99.99",
            "original_price": 129.99,
            "url": "/en/product/classic/P1.html?color=001",
            "image": "//cdn.brownsshoes.com/p1.jpg",
            "images": ["/images/p1.jpg", "/images/p1.jpg", "/images/p1-b.jpg"],
            "colors": ["Black", "Black", ""],
            "sizes": [8, "8", 9],
            "in_stock": "no",
            "product_id": 123,
        })

        assert record.title == "Classic Shoe"
        assert record.price == Decimal("99.99")
        assert record.original_price == Decimal("129.99")
        assert record.currency == "CAD"
        assert record.url == f"{BASE_URL}/en/product/classic/P1.html"
        assert record.image == "https://cdn.brownsshoes.com/p1.jpg"
        assert record.images == [f"{BASE_URL}/images/p1.jpg", f"{BASE_URL}/images/p1-b.jpg"]
        assert record.colors == ["Black"]
        assert record.sizes == ["8", "9"]
        assert record.in_stock is False
        assert record.product_id == "123"

    def test_image_falls_back_to_first_gallery_entry(self):
        record = _normalizer().normalize({"title": "A", "url": "/en/product/a/A1.html", "images": ["/i/a.jpg"]})
        assert record.image == f"{BASE_URL}/i/a.jpg"

    def test_stock_defaults_to_true_without_signal(self):
        record = _normalizer().normalize({"title": "A", "url": "/en/product/a/A1.html"})
        assert record.in_stock is True

    def test_original_price_must_exceed_price(self):
        normalizer = _normalizer()

        equal = normalizer.normalize({"title": "A", "url": "/x", "price": 100, "original_price": 100})
        lower = normalizer.normalize({"title": "A", "url": "/x", "price": 100, "original_price": 80})
        no_price = normalizer.normalize({"title": "A", "url": "/x", "original_price": 80})

        assert equal.original_price is None
        assert lower.original_price is None
        assert no_price.original_price is None

    def test_non_dict_candidate(self):
        assert _normalizer().normalize(None) is None
        assert _normalizer().normalize_many([None, {"title": "A", "url": "/x"}])[0].title == "A"


class TestDetailMerge:
    def test_detail_enriches_base_record(self):
        normalizer = _normalizer()
        base = normalizer.normalize({
            "title": "Classic Shoe",
            "brand": "Birkenstock",
            "price": 100,
            "url": "/en/product/classic/P1.html",
            "colors": ["Black"],
            "sizes": ["8", "9"],
            "product_id": "P1",
        })

        merged = normalizer.normalize(
            {
                "title": "Classic Shoe (Detail)",
                "brand": None,
                "price": 90,
                "original_price": 100,
                "url": "/en/product/some-other-slug/P1.html",
                "colors": [],
                "sizes": ["8", "9", "10"],
                "description": "Cork footbed",
                "materials": ["Suede"],
            },
            base=base,
        )

        assert merged.title == "Classic Shoe (Detail)"
        assert merged.brand == "Birkenstock"
        assert merged.price == Decimal("90")
        assert merged.original_price == Decimal("100")
        assert merged.url == f"{BASE_URL}/en/product/classic/P1.html"
        assert merged.colors == ["Black"]
        assert merged.sizes == ["8", "9", "10"]
        assert merged.description == "Cork footbed"
        assert merged.materials == ["Suede"]
        assert merged.product_id == "P1"

    def test_blank_detail_strings_do_not_override(self):
        normalizer = _normalizer()
        base = normalizer.normalize({"title": "Boot", "url": "/en/product/boot/B1.html"})
        merged = normalizer.normalize({"title": "   "}, base=base)
        assert merged.title == "Boot"


class TestProductRecord:
    def test_post_init_drops_stale_original_price(self):
        record = ProductRecord(title="A", url="u", price=Decimal("10"), original_price=Decimal("5"))
        assert record.original_price is None

    def test_completeness(self):
        assert ProductRecord(title="A", url="u").is_complete
        assert not ProductRecord(title=None, url="u").is_complete
        assert not ProductRecord(title="A", url=None).is_complete

    def test_identity_keys(self):
        record = ProductRecord(title="A", url="https://x/p", product_id="P1")
        assert record.identity_key == "id:P1"
        assert record.identity_keys() == ["id:P1", "url:https://x/p"]

        by_url = ProductRecord(title="A", url="https://x/p")
        assert by_url.identity_key == "url:https://x/p"
        assert ProductRecord(title="A", url=None).identity_key is None

    def test_to_dict(self):
        record = ProductRecord(
            title="A",
            url="https://x/p",
            price=Decimal("90"),
            original_price=Decimal("100"),
            in_stock=None,
            product_id="P1",
            description="Soft",
            color_name="Taupe",
        )

        item = record.to_dict()
        assert list(item) == [
            "title",
            "brand",
            "price",
            "originalPrice",
            "currency",
            "url",
            "image",
            "images",
            "colors",
            "sizes",
            "inStock",
            "productId",
        ]
        assert item["price"] == 90.0
        assert item["originalPrice"] == 100.0
        assert item["inStock"] is None

        enriched = record.to_dict(include_enrichment=True)
        assert enriched["description"] == "Soft"
        assert enriched["colorName"] == "Taupe"
        assert enriched["materials"] == []
