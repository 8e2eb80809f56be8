"""
Command Line Interface for the Article Crawler.

Results are written to stdout as JSON lines, one object per URL; logging
goes to stderr.

Usage Examples:
--------------

# Crawl the articles linked from a front page
article-crawler crawl https://news.example.com

# Crawl through a SOCKS5 proxy with 8 workers, stop after 50 results
article-crawler crawl https://news.example.com --proxy socks5://127.0.0.1:1080 --threads 8 --limit 50

# Also follow category pages found on the front page
article-crawler crawl https://news.example.com --follow-categories

# Extract known article URLs
article-crawler articles https://news.example.com/2024/05/01/some-story https://news.example.com/2024/05/02/other-story

# Crawl with custom configuration
article-crawler crawl https://news.example.com -c config/production.yaml

# Create default configuration
article-crawler config --create-default -o config/default.yaml

# Validate configuration
article-crawler config --validate config/my_config.yaml

# Verbose logging
article-crawler -v crawl https://news.example.com
"""

import argparse
import json
import logging
import sys
from contextlib import closing
from dataclasses import replace
from itertools import islice
from pathlib import Path

from .config.crawler_config import ConfigLoader, ProxyConfig, validate_config, ConfigurationError
from .core.crawl_pipeline import stream_articles
from .core.site import Site
from .errors import CrawlError


def setup_logging(verbose: bool = False, log_file: str = None):
    """
    Setup logging configuration.

    Args:
        verbose: Enable debug-level logging if True
        log_file: Also write the log to this file
    """
    level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

    # Set third-party loggers to WARNING to reduce noise
    if not verbose:
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('requests').setLevel(logging.WARNING)


def load_config(args):
    """Configuration file (or defaults) with command line overrides applied."""
    logger = logging.getLogger(__name__)

    if args.config:
        logger.info(f"Loading configuration from {args.config}")
        config = ConfigLoader.load_from_yaml(args.config)
    else:
        config = ConfigLoader.create_default_config()

    overrides = {}
    if args.proxy:
        overrides['proxy'] = ProxyConfig.parse(args.proxy)
    if args.threads is not None:
        overrides['workers'] = args.threads
    if args.timeout is not None:
        overrides['timeout_seconds'] = args.timeout
    if args.retries is not None:
        overrides['max_retries'] = args.retries
    if args.min_body_length is not None:
        overrides['min_body_length'] = args.min_body_length
    if args.user_agent:
        overrides['user_agent'] = args.user_agent
    if getattr(args, 'follow_categories', False):
        overrides['follow_categories'] = True

    config = replace(config, **overrides)
    if getattr(args, 'allow_cross_domain', False):
        config = replace(config, classifier=replace(config.classifier, allow_cross_domain=True))

    validate_config(config)
    return config


def emit_results(results, limit=None) -> int:
    """Print results as JSON lines; returns the number of failures."""
    failures = 0
    with closing(results):
        for result in islice(results, limit):
            if not result.ok:
                failures += 1
            print(json.dumps(result.to_dict(), ensure_ascii=False), flush=True)
    return failures


def crawl_command(args):
    """
    Execute the crawl command.

    Args:
        args: Parsed command-line arguments
    """
    logger = logging.getLogger(__name__)

    try:
        config = load_config(args)
        site = Site.builder(args.url).config(config).build()
        logger.info(f"Streaming {len(site.article_links)} article links from {site.url}")

        failures = emit_results(site.into_stream(), args.limit)
        logger.info(f"Crawl finished with {failures} failed URLs")

    except (ConfigurationError, CrawlError) as e:
        logger.error(f"Crawl failed: {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Crawl interrupted by user")
        sys.exit(130)


def articles_command(args):
    """
    Execute the articles command.

    Args:
        args: Parsed command-line arguments
    """
    logger = logging.getLogger(__name__)

    try:
        config = load_config(args)
        failures = emit_results(stream_articles(args.urls, config), args.limit)
        logger.info(f"Extraction finished with {failures} failed URLs")

    except (ConfigurationError, CrawlError) as e:
        logger.error(f"Extraction failed: {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Extraction interrupted by user")
        sys.exit(130)


def config_command(args):
    """
    Execute the config command.

    Args:
        args: Parsed command-line arguments
    """
    logger = logging.getLogger(__name__)

    try:
        if args.create_default:
            config = ConfigLoader.create_default_config()
            output_path = args.output or 'config/default.yaml'

            ConfigLoader.save_to_yaml(config, output_path)
            print(f"Default configuration created at: {output_path}")

        elif args.validate:
            config = ConfigLoader.load_from_yaml(args.validate)
            validate_config(config)
            print(f"Configuration is valid: {args.validate}")

        else:
            print("Error: Please specify --create-default or --validate", file=sys.stderr)
            sys.exit(1)

    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        logger.error(f"Configuration error: {e}")
        sys.exit(1)


def add_crawl_options(parser: argparse.ArgumentParser):
    parser.add_argument(
        '-c', '--config',
        help='Path to YAML configuration file (default: use built-in defaults)'
    )
    parser.add_argument(
        '--proxy',
        metavar='URL',
        help='Proxy for all requests: http://, https:// or socks5://host:port'
    )
    parser.add_argument(
        '--threads',
        type=int,
        metavar='N',
        help='Number of concurrent workers'
    )
    parser.add_argument(
        '--timeout',
        type=float,
        metavar='SECONDS',
        help='Per-request timeout in seconds'
    )
    parser.add_argument(
        '--retries',
        type=int,
        metavar='N',
        help='Retries for failed connections'
    )
    parser.add_argument(
        '--min-body-length',
        type=int,
        metavar='CHARS',
        help='Minimum body text length for a successful article'
    )
    parser.add_argument(
        '--user-agent',
        metavar='STRING',
        help='Custom User-Agent string'
    )
    parser.add_argument(
        '--limit',
        type=int,
        metavar='N',
        help='Stop after N results'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='article-crawler',
        description='Article Crawler - discover, fetch and extract news articles',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s crawl https://news.example.com
  %(prog)s crawl https://news.example.com --proxy socks5://127.0.0.1:1080 --limit 50
  %(prog)s articles https://news.example.com/2024/05/01/some-story
  %(prog)s config --create-default -o config/default.yaml
  %(prog)s config --validate config/my_config.yaml
        """
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose (debug) logging'
    )
    parser.add_argument(
        '--log-file',
        metavar='FILE',
        help='Also write the log to FILE'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # ========================================================================
    # CRAWL COMMAND
    # ========================================================================
    crawl_parser = subparsers.add_parser(
        'crawl',
        help='Crawl the articles linked from a site page',
        description='Fetch a seed page, classify its links and extract every article'
    )
    crawl_parser.add_argument('url', help='Seed URL (usually the front page)')
    add_crawl_options(crawl_parser)
    crawl_parser.add_argument(
        '--follow-categories',
        action='store_true',
        help='Also fetch category pages found on the seed page'
    )
    crawl_parser.add_argument(
        '--allow-cross-domain',
        action='store_true',
        help='Keep article links that point to other domains'
    )
    crawl_parser.set_defaults(func=crawl_command)

    # ========================================================================
    # ARTICLES COMMAND
    # ========================================================================
    articles_parser = subparsers.add_parser(
        'articles',
        help='Extract a list of known article URLs',
        description='Fetch and extract each URL without link classification'
    )
    articles_parser.add_argument('urls', nargs='+', help='Article URL(s)')
    add_crawl_options(articles_parser)
    articles_parser.set_defaults(func=articles_command)

    # ========================================================================
    # CONFIG COMMAND
    # ========================================================================
    config_parser = subparsers.add_parser(
        'config',
        help='Configuration management',
        description='Create or validate configuration files'
    )
    config_parser.add_argument(
        '--create-default',
        action='store_true',
        help='Create a default configuration file'
    )
    config_parser.add_argument(
        '--validate',
        metavar='FILE',
        help='Validate a configuration file'
    )
    config_parser.add_argument(
        '-o', '--output',
        metavar='FILE',
        help='Output path for created configuration (default: config/default.yaml)'
    )
    config_parser.set_defaults(func=config_command)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.log_file)

    if hasattr(args, 'func'):
        args.func(args)
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == '__main__':
    main()
