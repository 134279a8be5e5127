"""
Activity publisher: stores pedagogical activities in Airtable and publishes
them to WordPress with generated images.
"""

__version__ = '1.0.0'
