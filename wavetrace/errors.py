"""Exception types raised by wavetrace.

Every error is fatal for a render: the CLI reports it and exits.
"""


class WavetraceError(Exception):
    pass


class ConfigError(WavetraceError):
    pass


class SceneError(WavetraceError):
    pass


class DeviceError(WavetraceError):
    """Adapter/device request or buffer allocation failed."""


class KernelError(WavetraceError):
    """The compiled kernel module could not be loaded."""


class StageConstructionError(WavetraceError):
    """A stage's binding layout does not match the kernel entry point."""


class ReadbackError(WavetraceError):
    pass


class DenoiseError(WavetraceError):
    pass
