"""
Repository Layer - Data Access

Repositories wrap the Supabase tables and return domain models.
"""
from stockbridge.repositories.alert_repository import AlertRepository
from stockbridge.repositories.credentials_repository import CredentialsRepository
from stockbridge.repositories.listing_repository import LinkRepository, ProductRepository

__all__ = [
    'AlertRepository',
    'CredentialsRepository',
    'LinkRepository',
    'ProductRepository',
]
