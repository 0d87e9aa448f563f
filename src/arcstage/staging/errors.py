"""Staging errors."""


class StagingError(Exception):
    """Base exception for source manifest and archive layout operations."""


class UnknownCollectionError(StagingError, KeyError):
    """Raised when an operation names a collection id absent from the layout."""

    def __init__(self, collection_id: str) -> None:
        self.collection_id = collection_id
        super().__init__(f"Unknown collection: {collection_id}")

    def __str__(self) -> str:
        return f"Unknown collection: {self.collection_id}"


class LayoutIntegrityError(StagingError):
    """Raised when a layout references manifest ids missing from the source collection."""

    def __init__(self, manifest_ids: list[str]) -> None:
        self.manifest_ids = list(manifest_ids)
        super().__init__(f"Layout references unknown manifests: {', '.join(self.manifest_ids)}")
