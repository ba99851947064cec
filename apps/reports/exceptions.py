class GeometryError(ValueError):
    """Page geometry that cannot lay out a single line of text."""

    def __init__(self, field: str, value, message: str = ""):
        self.field = field
        self.value = value
        super().__init__(message or f"Invalid page geometry: {field}={value!r}")
