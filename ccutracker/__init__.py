"""Steam concurrent-player tracker: polling, aggregation and read API."""
