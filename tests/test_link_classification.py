"""Tests for URL normalization, link classification and the dedup set."""

import threading

import pytest

from article_crawler.config import ClassifierConfig
from article_crawler.errors import InvalidUrlError
from article_crawler.pipeline.pipeline_data import LinkLabel
from article_crawler.pipeline.stages.duplicate_detection_stage import DuplicateDetector
from article_crawler.pipeline.stages.link_classification_stage import LinkClassifier, URLNormalizer

from conftest import SEED_HTML, SEED_URL


PAGE = "https://planet.example.com/"


class TestURLNormalizer:
    def test_lowercases_and_strips(self):
        normalizer = URLNormalizer()
        assert normalizer.normalize("HTTP://Planet.Example.COM:80/News/Story/?id=7#top") == \
            "http://planet.example.com/News/Story?id=7"

    def test_drops_only_default_ports(self):
        normalizer = URLNormalizer()
        assert normalizer.normalize("https://planet.example.com:443/a") == "https://planet.example.com/a"
        assert normalizer.normalize("https://planet.example.com:8443/a") == "https://planet.example.com:8443/a"

    def test_root_path(self):
        assert URLNormalizer().normalize("https://planet.example.com/") == "https://planet.example.com"

    @pytest.mark.parametrize("url", [
        "ftp://planet.example.com/file",
        "/relative/path",
        "http:///no-host",
        "http://planet.example.com:99999/",
        "",
        None,
    ])
    def test_rejects_non_http_urls(self, url):
        with pytest.raises(InvalidUrlError):
            URLNormalizer().normalize(url)

    def test_same_domain_ignores_www(self):
        normalizer = URLNormalizer()
        assert normalizer.is_same_domain("https://www.planet.example.com/a", PAGE)
        assert not normalizer.is_same_domain("https://other.example.org/a", PAGE)


class TestLinkClassifier:
    def test_dated_slug_is_article_and_tag_is_category(self):
        classifier = LinkClassifier()

        article = classifier.classify(
            "https://planet.example.com/2024/05/01/some-article-title", "Some article title", PAGE)
        category = classifier.classify("https://planet.example.com/tag/politics", "Politics", PAGE)

        assert article.label is LinkLabel.ARTICLE
        assert category.label is LinkLabel.CATEGORY

    def test_article_score(self):
        link = LinkClassifier().classify(
            "https://planet.example.com/2024/05/01/some-article-title", "Some article title", PAGE)
        assert link.score == 5.0

    def test_slug_without_date_reaches_threshold(self):
        link = LinkClassifier().classify(
            "https://planet.example.com/news/world/storm-knocks-out-power", "Storm knocks out power", PAGE)
        assert link.label is LinkLabel.ARTICLE
        assert link.score == 2.0

    def test_navigation_anchor_is_penalized(self):
        link = LinkClassifier().classify(
            "https://planet.example.com/news/world/storm-knocks-out-power", "Read more", PAGE)
        assert link.label is LinkLabel.IGNORED
        assert link.score == 0.0

    def test_short_path_is_ignored(self):
        link = LinkClassifier().classify("https://planet.example.com/about", "About the paper", PAGE)
        assert link.label is LinkLabel.IGNORED

    @pytest.mark.parametrize("url", [
        "https://planet.example.com/category/sports",
        "https://planet.example.com/topics/climate",
        "https://planet.example.com/author/jane-doe",
        "https://planet.example.com/news/page/2",
        "https://planet.example.com/news?page=3",
    ])
    def test_listing_pages_are_categories(self, url):
        assert LinkClassifier().classify(url, "Listing", PAGE).label is LinkLabel.CATEGORY

    @pytest.mark.parametrize("url", [
        "mailto:desk@planet.example.com",
        "javascript:void(0)",
        "https://planet.example.com/#top",
        "https://planet.example.com/2024/05/01/chart-of-the-day.png",
        "https://planet.example.com/2024/05/01/annual-report-full-text.pdf",
        "https://planet.example.com/news/feed",
        "https://other.example.org/2024/05/01/some-article-title",
    ])
    def test_out_of_scope_links_are_ignored(self, url):
        assert LinkClassifier().classify(url, "Some link text", PAGE).label is LinkLabel.IGNORED

    def test_www_variant_is_same_site(self):
        link = LinkClassifier().classify(
            "https://www.planet.example.com/2024/05/01/some-article-title", "Some article title", PAGE)
        assert link.label is LinkLabel.ARTICLE

    def test_cross_domain_when_allowed(self):
        url = "https://other.example.org/2024/05/01/some-article-title"
        assert LinkClassifier(ClassifierConfig(allow_cross_domain=True)).classify(
            url, "Some article title", PAGE).label is LinkLabel.ARTICLE

    def test_allowed_domains_include_subdomains(self):
        classifier = LinkClassifier(ClassifierConfig(allowed_domains=("example.org",)))
        link = classifier.classify(
            "https://news.example.org/2024/05/01/some-article-title", "Some article title", PAGE)
        assert link.label is LinkLabel.ARTICLE

    def test_query_is_part_of_identity(self):
        link = LinkClassifier().classify(
            "https://planet.example.com/2024/05/01/some-article-title?id=4#c", "Some article title", PAGE)
        assert link.url == "https://planet.example.com/2024/05/01/some-article-title?id=4"


class TestClassifyDocument:
    def test_seed_page(self, parse):
        doc = parse(SEED_HTML, SEED_URL)
        links = LinkClassifier().classify_document(doc)

        articles = [link.url for link in links if link.label is LinkLabel.ARTICLE]
        categories = [link.url for link in links if link.label is LinkLabel.CATEGORY]

        assert articles == [
            "https://planet.example.com/2024/05/01/council-approves-transit-budget",
            "https://planet.example.com/2024/05/02/storm-knocks-out-power",
            "https://planet.example.com/2024/05/03/library-reopens-after-renovation",
        ]
        assert categories == [
            "https://planet.example.com/tag/politics",
            "https://planet.example.com/category/sports",
        ]

    def test_each_url_once(self, parse):
        doc = parse(SEED_HTML, SEED_URL)
        urls = [link.url for link in LinkClassifier().classify_document(doc)]
        assert len(urls) == len(set(urls))

    def test_best_score_wins(self, parse):
        html = """
        <a href="/news/world/storm-knocks-out-power">More</a>
        <a href="/news/world/storm-knocks-out-power">Storm knocks out power</a>
        """
        links = LinkClassifier().classify_document(parse(html, SEED_URL))

        assert len(links) == 1
        assert links[0].label is LinkLabel.ARTICLE
        assert links[0].anchor_text == "Storm knocks out power"

    def test_trailing_slash_is_kept(self, parse):
        html = '<a href="/news/2024/05/01/some-article-title/">Some article title</a>'
        links = LinkClassifier().classify_document(parse(html, SEED_URL))

        assert len(links) == 1
        assert links[0].label is LinkLabel.ARTICLE
        assert links[0].url == "https://planet.example.com/news/2024/05/01/some-article-title/"

    def test_spellings_of_one_url_are_grouped(self, parse):
        html = """
        <a href="/2024/05/01/some-article-title/">More</a>
        <a href="HTTPS://Planet.Example.com:443/2024/05/01/some-article-title#top">Some article title</a>
        """
        links = LinkClassifier().classify_document(parse(html, SEED_URL))

        assert len(links) == 1
        assert links[0].url == "https://planet.example.com/2024/05/01/some-article-title/"
        assert links[0].label is LinkLabel.ARTICLE
        assert links[0].anchor_text == "Some article title"

    def test_conflicting_labels_at_equal_score_are_ignored(self, parse):
        class Contrary(LinkClassifier):
            """Labels by anchor text so the same URL can disagree with itself."""

            def classify(self, url, anchor_text, page_url):
                link = super().classify(url, anchor_text, page_url)
                if anchor_text == "Sports":
                    return type(link)(link.url, anchor_text, LinkLabel.CATEGORY, link.score)
                return link

        html = """
        <a href="/2024/05/01/some-article-title">Headline</a>
        <a href="/2024/05/01/some-article-title">Sports</a>
        """
        links = Contrary().classify_document(parse(html, SEED_URL))

        assert len(links) == 1
        assert links[0].label is LinkLabel.IGNORED


class TestDuplicateDetector:
    def test_admits_once_per_normalized_url(self):
        detector = DuplicateDetector()
        assert detector.mark_seen("https://planet.example.com/a/")
        assert not detector.mark_seen("HTTPS://planet.example.com/a#frag")
        assert detector.get_stats() == {'admitted': 1, 'duplicates': 1, 'unique_urls': 1}

    def test_invalid_url_raises(self):
        with pytest.raises(InvalidUrlError):
            DuplicateDetector().mark_seen("not a url")

    def test_concurrent_admission_has_one_winner(self):
        detector = DuplicateDetector()
        winners = []
        barrier = threading.Barrier(8)

        def race():
            barrier.wait()
            if detector.mark_seen("https://planet.example.com/2024/05/01/some-article-title"):
                winners.append(threading.current_thread().name)

        threads = [threading.Thread(target=race) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(winners) == 1
