"""
unfurl scraper module.
"""
