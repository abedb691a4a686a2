"""Exception types raised across the visualization pipeline."""


class WallpaintError(Exception):
    """Base class for all pipeline errors."""


class InputValidationError(WallpaintError, ValueError):
    """The caller supplied an unusable request (missing color, bad mask, ...)."""


class ImageDecodeError(WallpaintError, RuntimeError):
    """The uploaded image cannot be decoded or normalized."""


class DetectorError(WallpaintError, RuntimeError):
    """A surface detector call failed or returned a malformed payload."""


class SynthesisError(WallpaintError, RuntimeError):
    """The image synthesizer failed or returned no usable image."""


class MaskDimensionError(WallpaintError, RuntimeError):
    """A paint mask does not match the pixel size of its image."""
