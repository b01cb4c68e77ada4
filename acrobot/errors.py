"""Exceptions raised by the accessor layer, the agent and its persistence."""


class ControlError(Exception):
    """Base class for every error raised by this package."""


class MujocoError(ControlError):
    """The MuJoCo engine rejected a scene or a load path.

    The engine's own message is kept verbatim; the original exception is
    chained as ``__cause__``.
    """

    def __init__(self, message: str):
        super().__init__(f"MuJoCo error: {message}")
        self.message = message


class NameNotFound(ControlError):
    """A named object does not exist in the loaded model."""

    def __init__(self, obj_type, name: str):
        super().__init__(f"Given name not found: `{name}` ({obj_type.name.lower()})")
        self.obj_type = obj_type
        self.name = name


class ObjectTypeMismatch(ControlError):
    """A handle of one object category was used where another is required."""

    def __init__(self, expected, found):
        super().__init__(
            f"Object type mismatch: expected {expected.name}, found {found.name}"
        )
        self.expected = expected
        self.found = found


class JointKindMismatch(ControlError):
    """The joint's declared kind differs from the kind requested by the caller."""

    def __init__(self, expected, found):
        super().__init__(
            f"Joint kind mismatch: expected {expected.__name__}, found {found.__name__}"
        )
        self.expected = expected
        self.found = found


class MissingCapability(ControlError):
    """The object has no storage for the requested runtime quantity."""

    def __init__(self, object_id, what: str):
        super().__init__(f"{object_id} has no {what}")
        self.object_id = object_id


class ActuatorStateless(MissingCapability):
    def __init__(self, object_id):
        super().__init__(object_id, "activation state")


class PluginStateless(MissingCapability):
    def __init__(self, object_id):
        super().__init__(object_id, "plugin state")


class BodyNotMocap(MissingCapability):
    def __init__(self, object_id):
        super().__init__(object_id, "mocap frame")


class PersistenceError(ControlError):
    """Saving or loading an agent failed (I/O or decode)."""

    def __init__(self, path, reason: str):
        super().__init__(f"Failed to persist agent at `{path}`: {reason}")
        self.path = path
        self.reason = reason
