"""HTTP surface for the product scraper."""
