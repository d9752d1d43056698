class IndexStoreError(Exception):
    """Raised when a store transaction fails; the transaction has been rolled back."""
