from price_scraper.cli import run

run()
