"""Exception hierarchy for treedangler."""


class TreeDanglerError(Exception):
    """Base exception for all treedangler errors."""

    pass


class ConfigError(TreeDanglerError):
    """Invalid configuration file or value."""

    def __init__(self, path, reason):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid configuration '{path}': {reason}")


class GeometryError(TreeDanglerError):
    """Errors raised by the planar geometry stages."""

    pass


class UnionError(GeometryError):
    """Polygon union failed for one spine's cells."""

    def __init__(self, spine_id, reason):
        self.spine_id = spine_id
        self.reason = reason
        super().__init__(f"Union failed for spine '{spine_id}': {reason}")


class RasterError(TreeDanglerError):
    """Errors raised by the raster stages."""

    pass


class RasterUnavailableError(RasterError):
    """No drawing surface could be obtained for rasterization."""

    def __init__(self, width, height):
        self.width = width
        self.height = height
        super().__init__(f"No drawing surface available for {width}x{height} raster")


class SceneError(TreeDanglerError):
    """Errors related to scene files."""

    pass


class SceneLoadError(SceneError):
    """Error loading a scene or edit stream."""

    def __init__(self, path, reason):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load scene '{path}': {reason}")
