"""Infrastructure: persistence, cache backends and event dispatchers."""
