"""
🧰 SCHEDULED PUBLISHER - Services
"""

from .file_storage import FileStorageService, storage_service
from .credentials import CredentialStore
from .publish_ledger import PublishLedger, publish_ledger

__all__ = [
    'FileStorageService', 'storage_service',
    'CredentialStore',
    'PublishLedger', 'publish_ledger',
]
