class InvalidGeometryError(ValueError):
    """ Non-finite, negative or out-of-bounds inverse depth / pixel values.
    Raised at the point of insertion, such values are never stored. """


class FrozenDepthMapError(RuntimeError):
    """ Depth maps owned by a built pyramid are read only. """


class DatasetParsingError(ValueError):
    def __init__(self, line_no: int, line: str, what: str):
        super().__init__(f"line {line_no}: cannot parse {what}: {line!r}")
        self.line_no = line_no
        self.line = line
