"""
Premium Bandai Product Monitor - Source Package

Modules:
- config: Configuration loading and validation
- state_store: Durable monitor state (etag, known product ids, watchlist)
- sitemap_fetcher: Conditional sitemap fetching with retry logic
- sitemap_parser: XML parsing of product sitemap entries
- url_status_checker: HEAD-based liveness checks for product images
- watchlist: Re-probing of detected-but-not-yet-live products
- notifier: Discord webhook notifications
- monitor: Poll cycle and polling loop
"""

__version__ = "1.0.0"
