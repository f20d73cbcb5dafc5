"""
Exception taxonomy for poster generation.

Fatal kinds abort the request and are surfaced to the caller with a short,
machine-readable `kind`. Recoverable kinds are raised and caught inside the
compositor and only ever show up in the logs.
"""


class PosterError(Exception):
    """Base class for every poster maker error."""

    kind = "poster_error"
    status_code = 500
    fatal = True

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


# ========= FATAL =========

class TemplateNotFound(PosterError):
    """Template not found"""

    kind = "template_not_found"
    status_code = 404


class TemplateImageUnavailable(PosterError):
    """Template image could not be loaded"""

    kind = "template_image_unavailable"


class BlobStoreFailure(PosterError):
    """Blob store operation failed"""

    kind = "blob_store_failure"


class BlobFetchError(BlobStoreFailure):
    """Could not fetch image from blob store"""


# ========= RECOVERABLE =========

class FieldDataMalformed(PosterError):
    """Text field payload is malformed"""

    kind = "field_data_malformed"
    status_code = 400
    fatal = False


class FieldAssetMissing(PosterError):
    """No usable upload for field"""

    kind = "field_asset_missing"
    status_code = 400
    fatal = False
