"""
Content extractors for news article pages.
"""
