class StudioError(Exception):
    """Base class for every failure raised inside the studio."""

    code = "STUDIO_ERROR"


class DecodeError(StudioError):
    code = "DECODE_ERROR"


class SurfaceError(StudioError):
    code = "SURFACE_ERROR"


class AIUnavailable(StudioError):
    """The generative collaborator failed or answered with unusable data."""

    code = "AI_UNAVAILABLE"


class SafetyRefusal(StudioError):
    """The generative collaborator declined to produce content."""

    code = "SAFETY_REFUSAL"


class StudioBusyError(StudioError):
    code = "STUDIO_BUSY"


class AssetNotFound(StudioError):
    code = "ASSET_NOT_FOUND"


class InvalidAssetState(StudioError):
    code = "INVALID_ASSET_STATE"
