"""Periodic provider price scraper.

Logs in to the control API, scrapes every provider in the catalog with a
bounded number of concurrent pipelines and reports prices and run
boundaries back to the API.
"""

__version__ = "0.1.0"
