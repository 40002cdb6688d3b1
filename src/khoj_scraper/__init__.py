"""khoj-scraper: the extraction core of the Khoj scraping service."""

__version__ = "0.1.0"
