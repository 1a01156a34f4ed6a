"""TCG Price Tracker: tcgcsv.com catalog and price ingestion."""

__version__ = "0.1.0"
